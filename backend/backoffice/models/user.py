import enum
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Enum, Boolean, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.database import Base


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    DIRECTOR = "director"
    DELEGATE = "delegate"
    ACCOUNTING = "accounting"
    CASHIER = "cashier"
    AUDITOR = "auditor"
    EXECUTOR = "executor"
    CASH_MANAGER = "cash_manager"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False
    )
    agency: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    telegram_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    login: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
