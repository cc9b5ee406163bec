"""Глобальные настройки: курс EUR и минимальная комиссия перевода."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Numeric, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.database import Base

GLOBAL_SETTINGS_ID = "global"


class AppSettings(Base):
    """Одна строка с id='global'."""
    __tablename__ = "app_settings"

    id: Mapped[str] = mapped_column(String(16), primary_key=True, default=GLOBAL_SETTINGS_ID)
    eur: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)  # XAF за 1 EUR
    transfer_commission_min_xaf: Mapped[int] = mapped_column(BigInteger, nullable=False)
    changed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
