from typing import Optional

from pydantic import BaseModel, Field

from backoffice.models import UserRole


class UserInfo(BaseModel):
    """Текущий пользователь из JWT. Его же получают сервисы как actor."""
    id: int
    name: str
    role: str
    login: str = ""
    agency: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    role: str
    agency: Optional[str] = None
    telegram_id: Optional[int] = None
    login: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    role: UserRole
    email: Optional[str] = None
    agency: Optional[str] = None
    login: Optional[str] = None
    password: Optional[str] = None
    telegram_id: Optional[int] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[UserRole] = None
    email: Optional[str] = None
    agency: Optional[str] = None
    login: Optional[str] = None
    password: Optional[str] = None
    telegram_id: Optional[int] = None
    is_active: Optional[bool] = None
