from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.auth import require_permission
from backoffice.core.database import get_db
from backoffice.core.logging_config import get_logger
from backoffice.core.permissions import Permission
from backoffice.models import User, UserRole
from backoffice.schemas.user import UserCreate, UserInfo, UserResponse, UserUpdate
from backoffice.services.auth_service import hash_password

logger = get_logger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


def _user_to_response(u: User) -> UserResponse:
    return UserResponse(
        id=u.id,
        name=u.name,
        email=u.email,
        role=u.role.value,
        agency=u.agency,
        telegram_id=u.telegram_id,
        login=u.login,
        is_active=u.is_active,
    )


def _check_role_assignment(current_user: UserInfo, role: Optional[UserRole]) -> None:
    if role == UserRole.SUPER_ADMIN and current_user.role != UserRole.SUPER_ADMIN.value:
        raise HTTPException(status_code=403, detail="Seul un super administrateur peut attribuer ce rôle")


async def _login_taken(db: AsyncSession, login: str, exclude_id: Optional[int] = None) -> bool:
    q = select(User.id).where(User.login == login)
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    return (await db.execute(q)).scalar_one_or_none() is not None


@router.get("", response_model=list[UserResponse])
async def list_users(
    role: Optional[UserRole] = None,
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(require_permission(Permission.VIEW_USERS)),
):
    q = select(User).order_by(User.id)
    if role is not None:
        q = q.where(User.role == role)
    if not include_inactive:
        q = q.where(User.is_active == True)
    result = await db.execute(q)
    return [_user_to_response(u) for u in result.scalars().all()]


@router.post("", response_model=UserResponse)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserInfo = Depends(require_permission(Permission.CREATE_USERS)),
):
    _check_role_assignment(current_user, data.role)
    login = data.login.strip() if data.login else None
    if login and await _login_taken(db, login):
        raise HTTPException(status_code=400, detail="Identifiant déjà utilisé")
    user = User(
        name=data.name.strip(),
        email=data.email,
        role=data.role,
        agency=data.agency,
        telegram_id=data.telegram_id,
        login=login,
        password_hash=hash_password(data.password) if data.password else None,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Создан пользователь id=%s роль=%s (%s)", user.id, user.role.value, current_user.name)
    return _user_to_response(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserInfo = Depends(require_permission(Permission.EDIT_USERS)),
):
    _check_role_assignment(current_user, data.role)
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="Utilisateur non trouvé")
    if data.login is not None and data.login.strip():
        if await _login_taken(db, data.login.strip(), exclude_id=user.id):
            raise HTTPException(status_code=400, detail="Identifiant déjà utilisé")
    if data.name is not None:
        user.name = data.name
    if data.email is not None:
        user.email = data.email or None
    if data.role is not None:
        user.role = data.role
    if data.agency is not None:
        user.agency = data.agency or None
    if data.telegram_id is not None:
        user.telegram_id = data.telegram_id
    if data.login is not None:
        user.login = data.login.strip() or None
    if data.password is not None and data.password.strip():
        user.password_hash = hash_password(data.password)
    if data.is_active is not None:
        user.is_active = data.is_active
    await db.flush()
    await db.refresh(user)
    return _user_to_response(user)
