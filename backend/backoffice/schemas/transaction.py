from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, HttpUrl

from backoffice.models import TransactionType


class TransactionCreate(BaseModel):
    type: TransactionType
    description: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, description="Сумма в минимальных единицах валюты")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    details: Optional[dict[str, Any]] = None


class RealAmountSubmit(BaseModel):
    real_amount_eur: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class ExecuteBody(BaseModel):
    receipt_url: HttpUrl
    executor_comment: Optional[str] = None


class TransactionResponse(BaseModel):
    id: str
    type: str
    status: str
    description: str
    amount: int
    currency: str
    created_by: str
    agency: Optional[str] = None
    details: Optional[dict] = None
    rejection_reason: Optional[str] = None
    real_amount_eur: Optional[Decimal] = None
    commission_amount: Optional[int] = None
    executor_id: Optional[int] = None
    executed_at: Optional[str] = None
    receipt_url: Optional[str] = None
    executor_comment: Optional[str] = None
    delete_validated_by: Optional[str] = None
    delete_validated_at: Optional[str] = None
    created_at: str
    updated_at: str


class RealAmountResponse(BaseModel):
    transaction: TransactionResponse
    message: str


class DeletionResponse(BaseModel):
    id: str
    type: str
    status: str = "deleted"
    deleted_by: str
    deleted_at: str
    message: str
