"""Фикстуры для тестов: отдельная SQLite-БД, пользователи всех ролей, токены."""
import os
import tempfile

# Настройки читаются при импорте backoffice, поэтому окружение задаётся до него
_TMP_DIR = tempfile.mkdtemp(prefix="backoffice-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/api.db"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["SUPERUSER_LOGIN"] = "admin"
os.environ["SUPERUSER_PASSWORD"] = "admin-pass"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from backoffice.core.database import Base
from backoffice.models import User, UserRole
from backoffice.schemas.user import UserInfo

SUPERUSER_LOGIN = "admin"
SUPERUSER_PASSWORD = "admin-pass"
PASSWORD = "secret-123"

# Порядок важен: первый исполнитель получает все валидированные транзакции
API_USERS = [
    ("executor", UserRole.EXECUTOR, "Exécuteur Principal"),
    ("executor2", UserRole.EXECUTOR, "Exécuteur Second"),
    ("cashier", UserRole.CASHIER, "Caissier Douala"),
    ("cashier2", UserRole.CASHIER, "Caissier Yaoundé"),
    ("auditor", UserRole.AUDITOR, "Auditeur"),
    ("accounting", UserRole.ACCOUNTING, "Comptable"),
    ("director", UserRole.DIRECTOR, "Directeur"),
    ("delegate", UserRole.DELEGATE, "Délégué"),
    ("cash_manager", UserRole.CASH_MANAGER, "Responsable Caisse"),
]


def login(client, username, password):
    r = client.post("/auth/login", data={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture(scope="session")
def client():
    """Клиент приложения; lifespan создаёт таблицы, суперадмина и настройки."""
    from backoffice.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="session")
def admin_headers(client):
    return login(client, SUPERUSER_LOGIN, SUPERUSER_PASSWORD)


@pytest.fixture(scope="session")
def api_users(client, admin_headers):
    """login -> {"id", "name", "headers"} для каждой роли."""
    users = {}
    for user_login, role, name in API_USERS:
        r = client.post(
            "/users",
            json={
                "name": name,
                "role": role.value,
                "login": user_login,
                "password": PASSWORD,
                "agency": "Douala",
            },
            headers=admin_headers,
        )
        assert r.status_code == 200, r.text
        users[user_login] = {
            "id": r.json()["id"],
            "name": name,
            "headers": login(client, user_login, PASSWORD),
        }
    return users


@pytest.fixture
async def session_maker(tmp_path):
    """Отдельная БД на каждый тест сервисов."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'service.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make(role: UserRole, name: str, is_active: bool = True, agency: str = "Douala") -> UserInfo:
        user = User(name=name, role=role, agency=agency, is_active=is_active)
        db.add(user)
        await db.flush()
        return UserInfo(id=user.id, name=user.name, role=role.value, agency=agency)
    return _make
