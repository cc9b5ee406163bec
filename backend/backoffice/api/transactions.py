from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.auth import require_permission
from backoffice.core.database import get_db
from backoffice.core.logging_config import get_logger
from backoffice.core.permissions import Permission
from backoffice.models import Transaction, TransactionStatus, UserRole
from backoffice.schemas.transaction import (
    DeletionResponse,
    ExecuteBody,
    RealAmountResponse,
    RealAmountSubmit,
    TransactionCreate,
    TransactionResponse,
)
from backoffice.schemas.user import UserInfo
from backoffice.services import transaction_service
from backoffice.services.settings_service import load_rate_provider
from backoffice.services.telegram_notify import notify_status_change

logger = get_logger(__name__)
router = APIRouter(prefix="/transactions", tags=["transactions"])

RequireView = require_permission(Permission.VIEW_TRANSACTIONS)
RequireCreate = require_permission(Permission.CREATE_TRANSACTIONS)
RequireAudit = require_permission(Permission.EDIT_TRANSACTIONS)
RequireExecute = require_permission(Permission.EXECUTE_TRANSACTIONS)
RequireDeleteRequest = require_permission(Permission.DELETE_TRANSACTIONS)
RequireDeleteApproval = require_permission(Permission.VALIDATE_DELETE_TRANSACTIONS)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _to_response(tx: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        type=tx.type.value,
        status=tx.status.value,
        description=tx.description,
        amount=tx.amount,
        currency=tx.currency,
        created_by=tx.created_by,
        agency=tx.agency,
        details=tx.details,
        rejection_reason=tx.rejection_reason,
        real_amount_eur=tx.real_amount_eur,
        commission_amount=tx.commission_amount,
        executor_id=tx.executor_id,
        executed_at=_iso(tx.executed_at),
        receipt_url=tx.receipt_url,
        executor_comment=tx.executor_comment,
        delete_validated_by=tx.delete_validated_by,
        delete_validated_at=_iso(tx.delete_validated_at),
        created_at=_iso(tx.created_at) or "",
        updated_at=_iso(tx.updated_at) or "",
    )


def _notify(background: BackgroundTasks, tx: Transaction, actor: UserInfo) -> None:
    background.add_task(
        notify_status_change,
        tx.id,
        tx.status.value,
        tx.amount,
        tx.currency,
        actor.name,
        created_by=tx.created_by,
        executor_id=tx.executor_id,
        reason=tx.rejection_reason,
    )


@router.get("", response_model=list[TransactionResponse])
async def list_transactions(
    status: Optional[TransactionStatus] = None,
    mine: bool = Query(False, description="Только созданные текущим пользователем"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireView),
):
    """Список транзакций. Кассир видит только свои, исполнитель только назначенные ему."""
    created_by = user.name if mine or user.role == UserRole.CASHIER.value else None
    executor_id = user.id if user.role == UserRole.EXECUTOR.value else None
    rows = await transaction_service.list_transactions(
        db, status=status, created_by=created_by, executor_id=executor_id, limit=limit,
    )
    return [_to_response(tx) for tx in rows]


@router.get("/pending", response_model=list[TransactionResponse])
async def list_pending(
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireAudit),
):
    """Очередь аудитора: транзакции, ожидающие реальной суммы."""
    return [_to_response(tx) for tx in await transaction_service.list_pending(db)]


@router.get("/assigned", response_model=list[TransactionResponse])
async def list_assigned(
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireExecute),
):
    """Валидированные транзакции, назначенные текущему исполнителю."""
    return [_to_response(tx) for tx in await transaction_service.list_for_executor(db, user.id)]


@router.get("/{tx_id}", response_model=TransactionResponse)
async def get_transaction(
    tx_id: str,
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(RequireView),
):
    return _to_response(await transaction_service.get_transaction(db, tx_id))


@router.post("", response_model=TransactionResponse)
async def create_transaction(
    data: TransactionCreate,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireCreate),
):
    tx = await transaction_service.create_transaction(db, data, user)
    _notify(background, tx, user)
    return _to_response(tx)


@router.post("/{tx_id}/real-amount", response_model=RealAmountResponse)
async def submit_real_amount(
    tx_id: str,
    body: RealAmountSubmit,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireAudit),
):
    rates = await load_rate_provider(db)
    tx = await transaction_service.submit_real_amount(db, tx_id, body.real_amount_eur, user, rates)
    if tx.status == TransactionStatus.VALIDATED:
        message = "Transaction validée automatiquement"
    else:
        message = "Transaction rejetée automatiquement : commission inférieure au minimum"
    _notify(background, tx, user)
    return RealAmountResponse(transaction=_to_response(tx), message=message)


@router.post("/{tx_id}/execute", response_model=TransactionResponse)
async def execute_transaction(
    tx_id: str,
    body: ExecuteBody,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireExecute),
):
    tx = await transaction_service.execute_transaction(
        db, tx_id, user, str(body.receipt_url), body.executor_comment,
    )
    _notify(background, tx, user)
    return _to_response(tx)


@router.post("/{tx_id}/close", response_model=TransactionResponse)
async def close_transaction(
    tx_id: str,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireCreate),
):
    tx = await transaction_service.close_transaction(db, tx_id, user)
    _notify(background, tx, user)
    return _to_response(tx)


@router.delete("/{tx_id}", response_model=TransactionResponse)
async def request_delete(
    tx_id: str,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireDeleteRequest),
):
    """Кассир запрашивает удаление своей завершённой транзакции."""
    tx = await transaction_service.request_delete(db, tx_id, user)
    _notify(background, tx, user)
    return _to_response(tx)


@router.post("/{tx_id}/validate-delete", response_model=DeletionResponse)
async def approve_delete(
    tx_id: str,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(RequireDeleteApproval),
):
    tx = await transaction_service.get_transaction(db, tx_id)
    amount, currency, created_by = tx.amount, tx.currency, tx.created_by
    done = await transaction_service.approve_delete(db, tx_id, user)
    role_label = "le comptable" if done.approver_role == UserRole.ACCOUNTING.value else "la direction"
    background.add_task(
        notify_status_change, done.id, "deleted", amount, currency, user.name, created_by=created_by,
    )
    return DeletionResponse(
        id=done.id,
        type=done.type,
        deleted_by=done.deleted_by,
        deleted_at=done.deleted_at.isoformat(),
        message=f"Transaction {done.id} supprimée par {role_label}",
    )
