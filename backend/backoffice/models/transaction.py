import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import JSON, String, Enum, BigInteger, Numeric, DateTime, ForeignKey, Text, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.database import Base


class TransactionType(str, enum.Enum):
    RECEPTION = "reception"
    EXCHANGE = "exchange"
    TRANSFER = "transfer"
    CARD = "card"
    RECEIPT = "receipt"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    EXECUTED = "executed"
    COMPLETED = "completed"
    PENDING_DELETE = "pending_delete"


def _enum(cls):
    return Enum(cls, values_callable=lambda e: [m.value for m in e])


class Transaction(Base):
    """
    Операция клиента. Статус меняется только через services/transaction_service.py.
    Суммы (amount, commission_amount): целые, в минимальных единицах валюты.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_status", "status"),
        Index("idx_transactions_executor_id", "executor_id"),
        Index("idx_transactions_type_status", "type", "status"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    type: Mapped[TransactionType] = mapped_column(_enum(TransactionType), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="XAF", nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    agency: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Заполняются аудитором один раз, при переходе из pending
    real_amount_eur: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    commission_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    executor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    receipt_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    executor_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    delete_validated_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delete_validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    executor = relationship("User", foreign_keys=[executor_id])
