"""
Жизненный цикл транзакции:
pending -> validated|rejected -> executed -> completed -> pending_delete -> (удалена).

Каждый переход это один условный UPDATE/DELETE "WHERE id = :id AND status = :ожидаемый".
Если строка не затронута, переход проиграл гонку или статус уже другой: StateConflictError,
транзакция не меняется. Порядок проверок: право роли -> существование -> личность -> статус.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.core.exceptions import (
    AuthorizationError,
    InvalidInputError,
    NotFoundError,
    StateConflictError,
)
from backoffice.core.logging_config import get_logger
from backoffice.core.permissions import Permission, has_permission
from backoffice.models import Transaction, TransactionStatus, TransactionType
from backoffice.schemas.transaction import TransactionCreate
from backoffice.schemas.user import UserInfo
from backoffice.services.commission import SUPPORTED_CURRENCIES, RateProvider, evaluate_with_provider
from backoffice.services.executor_assignment import pick_executor
from backoffice.services.transaction_id import generate_transaction_id
from backoffice.services.transaction_status import can_transition

logger = get_logger(__name__)

_ID_ATTEMPTS = 5


@dataclass(frozen=True)
class DeletionConfirmation:
    id: str
    type: str
    deleted_by: str
    deleted_at: datetime
    approver_role: str


def _require(actor: UserInfo, permission: Permission, message: str) -> None:
    if not has_permission(actor.role, permission):
        logger.warning("Отказано: %s (роль %s) без права %s", actor.name, actor.role, permission.value)
        raise AuthorizationError(message)


async def get_transaction(db: AsyncSession, tx_id: str) -> Transaction:
    tx = await db.get(Transaction, tx_id)
    if tx is None:
        raise NotFoundError("Transaction non trouvée")
    return tx


async def _apply(
    db: AsyncSession,
    tx_id: str,
    expected: TransactionStatus,
    values: dict,
    extra_where: Sequence = (),
) -> Transaction:
    """Условный UPDATE. При 0 затронутых строк: NotFoundError или StateConflictError."""
    if "status" in values and not can_transition(expected, values["status"]):
        raise StateConflictError(
            f"Transition {expected.value} -> {values['status'].value} interdite"
        )
    stmt = (
        update(Transaction)
        .where(Transaction.id == tx_id, Transaction.status == expected, *extra_where)
        .values(**values, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        current = await db.get(Transaction, tx_id, populate_existing=True)
        if current is None:
            raise NotFoundError("Transaction non trouvée")
        raise StateConflictError(
            f"La transaction est au statut {current.status.value}, attendu {expected.value}"
        )
    return await db.get(Transaction, tx_id, populate_existing=True)


async def create_transaction(db: AsyncSession, data: TransactionCreate, actor: UserInfo) -> Transaction:
    _require(actor, Permission.CREATE_TRANSACTIONS,
             "Seuls les caissiers peuvent créer des transactions")
    description = (data.description or "").strip()
    if not description:
        raise InvalidInputError("La description est requise")
    if data.amount <= 0:
        raise InvalidInputError("Le montant doit être supérieur à zéro")
    currency = (data.currency or settings.default_currency).upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise InvalidInputError(f"Devise non prise en charge : {currency}")

    tx_id = None
    for _ in range(_ID_ATTEMPTS):
        candidate = generate_transaction_id()
        if await db.get(Transaction, candidate) is None:
            tx_id = candidate
            break
    if tx_id is None:
        raise StateConflictError("Impossible de générer un identifiant unique, réessayez")

    # Квитанция (receipt) не проходит аудит и создаётся сразу завершённой
    status = TransactionStatus.COMPLETED if data.type == TransactionType.RECEIPT else TransactionStatus.PENDING
    tx = Transaction(
        id=tx_id,
        type=data.type,
        status=status,
        description=description,
        amount=data.amount,
        currency=currency,
        created_by=actor.name,
        agency=actor.agency,
        details=data.details or {},
    )
    db.add(tx)
    await db.flush()
    await db.refresh(tx)
    logger.info("Создана транзакция %s (%s, %s %s) кассиром %s",
                tx.id, tx.type.value, tx.amount, tx.currency, actor.name)
    return tx


async def submit_real_amount(
    db: AsyncSession,
    tx_id: str,
    real_amount_eur: Decimal,
    actor: UserInfo,
    rates: RateProvider,
) -> Transaction:
    """Аудитор вводит реальную сумму в EUR; комиссия решает validated/rejected."""
    _require(actor, Permission.EDIT_TRANSACTIONS,
             "Seuls les auditeurs peuvent valider ou rejeter les transactions")
    if real_amount_eur is None or Decimal(real_amount_eur) <= 0:
        raise InvalidInputError("realAmountEUR doit être un nombre positif")
    tx = await get_transaction(db, tx_id)
    if tx.status != TransactionStatus.PENDING:
        raise StateConflictError(
            f"Le montant réel ne peut être saisi que sur une transaction en attente (statut: {tx.status.value})"
        )

    decision = evaluate_with_provider(tx.amount, tx.currency, real_amount_eur, rates)
    values = {
        "status": decision.status,
        "real_amount_eur": Decimal(real_amount_eur),
        "commission_amount": decision.commission,
        "rejection_reason": decision.rejection_reason,
    }
    executor_id = None
    if decision.accepted:
        executor_id = await pick_executor(db)
        values["executor_id"] = executor_id

    tx = await _apply(
        db, tx_id, TransactionStatus.PENDING, values,
        extra_where=(Transaction.real_amount_eur.is_(None),),
    )
    logger.info("Транзакция %s: реальная сумма %s EUR, комиссия %s -> %s (аудитор %s)",
                tx.id, real_amount_eur, decision.commission, decision.status.value, actor.name)
    if decision.accepted and executor_id is None:
        logger.warning("Транзакция %s валидирована, но исполнитель не назначен: нет активных исполнителей",
                       tx.id)
    return tx


async def execute_transaction(
    db: AsyncSession,
    tx_id: str,
    actor: UserInfo,
    receipt_url: str,
    executor_comment: Optional[str] = None,
) -> Transaction:
    _require(actor, Permission.EXECUTE_TRANSACTIONS,
             "Seuls les exécuteurs peuvent exécuter les transactions")
    if not receipt_url:
        raise InvalidInputError("receiptUrl est requis")
    tx = await get_transaction(db, tx_id)
    if tx.executor_id is None or tx.executor_id != actor.id:
        raise AuthorizationError("Cette transaction n'est pas assignée à cet exécuteur")
    tx = await _apply(
        db, tx_id, TransactionStatus.VALIDATED,
        {
            "status": TransactionStatus.EXECUTED,
            "receipt_url": receipt_url,
            "executor_comment": executor_comment,
            "executed_at": datetime.utcnow(),
        },
        extra_where=(Transaction.executor_id == actor.id,),
    )
    logger.info("Транзакция %s исполнена (исполнитель id=%s)", tx.id, actor.id)
    return tx


async def close_transaction(db: AsyncSession, tx_id: str, actor: UserInfo) -> Transaction:
    """Кассир-создатель закрывает исполненную транзакцию."""
    _require(actor, Permission.CREATE_TRANSACTIONS,
             "Seuls les caissiers peuvent clôturer les transactions")
    tx = await get_transaction(db, tx_id)
    # Сравнение по имени, а не по id: created_by хранит отображаемое имя кассира.
    # Имя берётся из JWT и живёт до истечения токена (jwt_expire_minutes), поэтому
    # переименование или деактивация кассира вступают в силу только после нового входа.
    if tx.created_by != actor.name:
        raise AuthorizationError("Vous ne pouvez clôturer que vos propres transactions")
    tx = await _apply(
        db, tx_id, TransactionStatus.EXECUTED,
        {"status": TransactionStatus.COMPLETED},
    )
    logger.info("Транзакция %s закрыта кассиром %s", tx.id, actor.name)
    return tx


async def request_delete(db: AsyncSession, tx_id: str, actor: UserInfo) -> Transaction:
    _require(actor, Permission.DELETE_TRANSACTIONS,
             "Seuls les caissiers peuvent demander la suppression de transactions")
    tx = await get_transaction(db, tx_id)
    if tx.created_by != actor.name:
        raise AuthorizationError(
            "Vous ne pouvez demander la suppression que de vos propres transactions"
        )
    if tx.status != TransactionStatus.COMPLETED:
        raise StateConflictError("Seules les transactions terminées peuvent être supprimées")
    tx = await _apply(
        db, tx_id, TransactionStatus.COMPLETED,
        {"status": TransactionStatus.PENDING_DELETE},
    )
    logger.info("Запрошено удаление транзакции %s (%s)", tx.id, actor.name)
    return tx


async def approve_delete(db: AsyncSession, tx_id: str, actor: UserInfo) -> DeletionConfirmation:
    """
    Бухгалтерия или дирекция подтверждает удаление. Строка удаляется физически.
    Проигравший в гонке одновременных подтверждений получает StateConflictError;
    повторное подтверждение после удаления получает NotFoundError, строки уже нет.
    """
    _require(actor, Permission.VALIDATE_DELETE_TRANSACTIONS,
             "Seuls les comptables et la direction peuvent valider les suppressions")
    tx = await get_transaction(db, tx_id)
    if tx.status != TransactionStatus.PENDING_DELETE:
        raise StateConflictError(
            "Seules les transactions en attente de suppression peuvent être validées"
        )
    if tx.delete_validated_by:
        raise StateConflictError("Cette suppression a déjà été validée")
    tx_type = tx.type.value

    result = await db.execute(
        delete(Transaction)
        .where(
            Transaction.id == tx_id,
            Transaction.status == TransactionStatus.PENDING_DELETE,
            Transaction.delete_validated_by.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StateConflictError("Cette suppression a déjà été validée")
    db.expunge(tx)
    deleted_at = datetime.utcnow()
    logger.info("Транзакция %s удалена, подтвердил %s (%s)", tx_id, actor.name, actor.role)
    return DeletionConfirmation(
        id=tx_id,
        type=tx_type,
        deleted_by=actor.name,
        deleted_at=deleted_at,
        approver_role=actor.role,
    )


async def list_transactions(
    db: AsyncSession,
    status: Optional[TransactionStatus] = None,
    created_by: Optional[str] = None,
    executor_id: Optional[int] = None,
    limit: int = 100,
) -> list[Transaction]:
    q = select(Transaction).order_by(Transaction.created_at.desc()).limit(limit)
    if status is not None:
        q = q.where(Transaction.status == status)
    if created_by is not None:
        q = q.where(Transaction.created_by == created_by)
    if executor_id is not None:
        q = q.where(Transaction.executor_id == executor_id)
    result = await db.execute(q)
    return list(result.scalars().all())


async def list_pending(db: AsyncSession) -> list[Transaction]:
    """Очередь аудитора: старые сверху."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.status == TransactionStatus.PENDING)
        .order_by(Transaction.created_at.asc())
    )
    return list(result.scalars().all())


async def list_for_executor(db: AsyncSession, executor_id: int) -> list[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.executor_id == executor_id,
            Transaction.status == TransactionStatus.VALIDATED,
        )
        .order_by(Transaction.updated_at.asc())
    )
    return list(result.scalars().all())
