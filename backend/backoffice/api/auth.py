"""Веб-авторизация: логин по login+пароль, JWT, проверка прав по таблице ролей."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database import get_db
from backoffice.core.logging_config import get_logger
from backoffice.core.permissions import (
    Permission,
    check_permission,
    get_menu_items,
    has_permission,
    normalize_permission,
    role_display_name,
    role_permissions,
)
from backoffice.models import User
from backoffice.schemas.user import UserInfo
from backoffice.services.auth_service import (
    create_access_token,
    decode_token,
    hash_password,
    verify_password,
)

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer(auto_error=False)
logger = get_logger(__name__)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInfo


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[UserInfo]:
    has_header = credentials is not None and credentials.scheme.lower() == "bearer"
    if not has_header:
        return None
    payload = decode_token(credentials.credentials)
    if not payload or "sub" not in payload:
        logger.warning("Токен не прошёл проверку (неверный или истёк)")
        return None
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    return UserInfo(
        id=user_id,
        name=payload.get("name", ""),
        role=payload.get("role", ""),
        login=payload.get("login", ""),
        agency=payload.get("agency"),
    )


async def require_auth(
    current_user: Optional[UserInfo] = Depends(get_current_user),
) -> UserInfo:
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentification requise",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


def require_permission(permission: Permission):
    async def _check(current_user: UserInfo = Depends(require_auth)) -> UserInfo:
        if not has_permission(current_user.role, permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissions insuffisantes")
        return current_user
    return _check


@router.post("/login", response_model=LoginResponse)
async def login(
    form: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    username = (form.username or "").strip().lower()
    if not username:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Identifiants invalides")
    result = await db.execute(
        select(User).where(
            func.lower(User.login) == username,
            User.is_active == True,
        )
    )
    user = result.scalar_one_or_none()
    if not user or not user.password_hash or not verify_password(form.password, user.password_hash):
        logger.warning("Неудачный вход: %s", username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Identifiants invalides",
        )
    token = create_access_token(
        subject=user.id,
        role=user.role.value,
        name=user.name,
        login=user.login or "",
        agency=user.agency,
    )
    return LoginResponse(
        access_token=token,
        user=UserInfo(
            id=user.id, name=user.name, role=user.role.value,
            login=user.login or "", agency=user.agency,
        ),
    )


class MenuItem(BaseModel):
    id: str
    label: str
    href: str


class MeResponse(BaseModel):
    id: int
    name: str
    role: str
    role_label: str
    login: str
    agency: Optional[str] = None
    permissions: List[str]
    menu_items: List[MenuItem]


@router.get("/me", response_model=MeResponse)
async def me(current_user: UserInfo = Depends(require_auth)):
    """Текущий пользователь, его права и пункты меню по роли."""
    return MeResponse(
        id=current_user.id,
        name=current_user.name,
        role=current_user.role,
        role_label=role_display_name(current_user.role),
        login=current_user.login,
        agency=current_user.agency,
        permissions=sorted(role_permissions(current_user.role)),
        menu_items=[MenuItem(**m) for m in get_menu_items(current_user.role)],
    )


@router.get("/check")
async def check(
    permission: str = Query(..., description='Маршрут "/expenses", "expenses:create" или "create_expenses"'),
    current_user: UserInfo = Depends(require_auth),
):
    return {
        "permission": normalize_permission(permission),
        "allowed": check_permission(current_user.role, permission),
    }


class ChangePasswordBody(BaseModel):
    old_password: str
    new_password: str


@router.post("/change-password")
async def change_password(
    body: ChangePasswordBody,
    current_user: UserInfo = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
):
    """Смена пароля текущего пользователя (требуется старый пароль)."""
    if not body.new_password or len(body.new_password) < 6:
        raise HTTPException(status_code=400, detail="Le nouveau mot de passe doit contenir au moins 6 caractères")
    result = await db.execute(select(User).where(User.id == current_user.id))
    user = result.scalar_one_or_none()
    if not user or not user.password_hash:
        raise HTTPException(status_code=404, detail="Utilisateur non trouvé")
    if not verify_password(body.old_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Mot de passe actuel incorrect")
    user.password_hash = hash_password(body.new_password)
    db.add(user)
    await db.flush()
    logger.info("Пароль изменён: user id=%s", user.id)
    return {"ok": True}
