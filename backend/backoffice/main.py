from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select

from backoffice.config import settings
from backoffice.core.database import engine, Base, async_session_maker
from backoffice.core.exceptions import BackofficeError
from backoffice.core.logging_config import setup_logging, get_logger
from backoffice.models import User, UserRole
from backoffice.api.auth import router as auth_router
from backoffice.api.transactions import router as transactions_router
from backoffice.api.users import router as users_router
from backoffice.api.settings import router as settings_router
from backoffice.services.auth_service import hash_password
from backoffice.services.settings_service import get_or_create_settings

setup_logging()
logger = get_logger(__name__)


async def ensure_superuser():
    """Создать суперадмина из настроек, если такого логина ещё нет."""
    async with async_session_maker() as session:
        r = await session.execute(select(User).where(User.login == settings.superuser_login))
        if r.scalar_one_or_none() is not None:
            return
        user = User(
            name=settings.superuser_name,
            role=UserRole.SUPER_ADMIN,
            login=settings.superuser_login,
            password_hash=hash_password(settings.superuser_password),
            is_active=True,
        )
        session.add(user)
        await session.commit()
        logger.info("Создан суперадмин: %s", settings.superuser_login)


async def seed_settings():
    async with async_session_maker() as session:
        await get_or_create_settings(session)
        await session.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Таблицы БД проверены/созданы")
    await ensure_superuser()
    await seed_settings()
    yield
    await engine.dispose()


app = FastAPI(title="Back-office Forex", version="1.0.0", lifespan=lifespan)


@app.exception_handler(BackofficeError)
async def backoffice_error_handler(request: Request, exc: BackofficeError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Необработанная ошибка: %s", exc)
    detail = "Erreur interne du serveur"
    err_str = str(exc).lower()
    if "duplicate key" in err_str or "unique constraint" in err_str:
        detail = "Conflit de données (doublon). Actualisez la page et réessayez."
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(auth_router)
app.include_router(transactions_router)
app.include_router(users_router)
app.include_router(settings_router)


@app.get("/health")
def health():
    return {"status": "ok"}
