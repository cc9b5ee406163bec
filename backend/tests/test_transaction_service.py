"""Сервис транзакций: переходы, проверки прав и личности, конфликты статусов."""
from decimal import Decimal

import pytest

from backoffice.core.exceptions import (
    AuthorizationError,
    InvalidInputError,
    NotFoundError,
    StateConflictError,
)
from backoffice.models import Transaction, TransactionStatus, TransactionType, UserRole
from backoffice.schemas.transaction import TransactionCreate
from backoffice.services import transaction_service as svc
from backoffice.services.commission import StaticRateProvider
from backoffice.services.executor_assignment import pick_executor

RATES = StaticRateProvider({"XAF": 650}, threshold=5000)
RECEIPT_URL = "https://files.example.com/receipts/1.pdf"


def _transfer(amount=1_000_000, **kwargs):
    return TransactionCreate(type=TransactionType.TRANSFER, description="Virement client", amount=amount, **kwargs)


def _snapshot(tx: Transaction) -> dict:
    return {c.key: getattr(tx, c.key) for c in Transaction.__table__.columns}


async def _reload(db, tx_id) -> Transaction:
    return await db.get(Transaction, tx_id, populate_existing=True)


@pytest.fixture
async def staff(make_user):
    """Executor создаётся первым: он и будет назначаться."""
    return {
        "executor": await make_user(UserRole.EXECUTOR, "Exécuteur 1"),
        "executor2": await make_user(UserRole.EXECUTOR, "Exécuteur 2"),
        "cashier": await make_user(UserRole.CASHIER, "Caissier A"),
        "cashier2": await make_user(UserRole.CASHIER, "Caissier B"),
        "auditor": await make_user(UserRole.AUDITOR, "Auditeur"),
        "accounting": await make_user(UserRole.ACCOUNTING, "Comptable"),
        "director": await make_user(UserRole.DIRECTOR, "Directeur"),
    }


async def _completed(db, staff) -> Transaction:
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    await svc.execute_transaction(db, tx.id, staff["executor"], RECEIPT_URL)
    return await svc.close_transaction(db, tx.id, staff["cashier"])


async def test_create_transaction(db, staff):
    tx = await svc.create_transaction(db, _transfer(details={"beneficiary": "M. Ndiaye"}), staff["cashier"])
    assert tx.id.startswith("TRX-")
    assert tx.status == TransactionStatus.PENDING
    assert tx.currency == "XAF"
    assert tx.created_by == "Caissier A"
    assert tx.agency == "Douala"
    assert tx.details == {"beneficiary": "M. Ndiaye"}
    assert tx.real_amount_eur is None
    assert tx.executor_id is None


async def test_create_normalizes_currency(db, staff):
    tx = await svc.create_transaction(db, _transfer(currency="eur"), staff["cashier"])
    assert tx.currency == "EUR"


async def test_receipt_is_created_completed(db, staff):
    data = TransactionCreate(type=TransactionType.RECEIPT, description="Reçu", amount=15_000)
    tx = await svc.create_transaction(db, data, staff["cashier"])
    assert tx.status == TransactionStatus.COMPLETED


async def test_only_cashier_creates(db, staff):
    with pytest.raises(AuthorizationError):
        await svc.create_transaction(db, _transfer(), staff["auditor"])


async def test_blank_description_rejected(db, staff):
    with pytest.raises(InvalidInputError):
        await svc.create_transaction(db, _transfer().model_copy(update={"description": "   "}), staff["cashier"])


async def test_submit_real_amount_validates_and_assigns_first_executor(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    tx = await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    assert tx.status == TransactionStatus.VALIDATED
    assert tx.real_amount_eur == Decimal("1500")
    assert tx.commission_amount == 25_000
    assert tx.rejection_reason is None
    assert tx.executor_id == staff["executor"].id


async def test_submit_real_amount_rejects_low_commission(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    tx = await svc.submit_real_amount(db, tx.id, Decimal("1590"), staff["auditor"], RATES)
    assert tx.status == TransactionStatus.REJECTED
    assert tx.commission_amount == 0
    assert tx.rejection_reason == "Commission 0 inférieure au minimum requis 5000"
    assert tx.executor_id is None


async def test_second_submission_is_a_conflict_and_keeps_first_values(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    before = _snapshot(await _reload(db, tx.id))
    with pytest.raises(StateConflictError):
        await svc.submit_real_amount(db, tx.id, Decimal("1590"), staff["auditor"], RATES)
    assert _snapshot(await _reload(db, tx.id)) == before


async def test_concurrent_submission_loses_the_race(session_maker, db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await db.commit()

    async with session_maker() as first, session_maker() as second:
        await svc.get_transaction(first, tx.id)
        await svc.get_transaction(second, tx.id)
        await svc.submit_real_amount(first, tx.id, Decimal("1500"), staff["auditor"], RATES)
        await first.commit()
        with pytest.raises(StateConflictError):
            await svc.submit_real_amount(second, tx.id, Decimal("1590"), staff["auditor"], RATES)
        await second.rollback()

    stored = await _reload(db, tx.id)
    assert stored.status == TransactionStatus.VALIDATED
    assert stored.commission_amount == 25_000


async def test_submit_requires_audit_permission(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    with pytest.raises(AuthorizationError):
        await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["cashier"], RATES)


async def test_permission_checked_before_existence(db, staff):
    with pytest.raises(AuthorizationError):
        await svc.submit_real_amount(db, "TRX-20240101-0000-000", Decimal("1500"), staff["cashier"], RATES)
    with pytest.raises(NotFoundError):
        await svc.submit_real_amount(db, "TRX-20240101-0000-000", Decimal("1500"), staff["auditor"], RATES)


@pytest.mark.parametrize("real", [Decimal("0"), Decimal("-10")])
async def test_submit_rejects_non_positive_amount(db, staff, real):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    with pytest.raises(InvalidInputError):
        await svc.submit_real_amount(db, tx.id, real, staff["auditor"], RATES)
    assert (await _reload(db, tx.id)).status == TransactionStatus.PENDING


async def test_unsupported_currency_is_refused_at_creation(db, staff):
    with pytest.raises(InvalidInputError):
        await svc.create_transaction(db, _transfer(currency="USD"), staff["cashier"])
    assert await svc.list_transactions(db) == []


async def test_eur_transaction_commission_is_in_cents(db, staff):
    tx = await svc.create_transaction(db, _transfer(amount=150_000, currency="EUR"), staff["cashier"])
    tx = await svc.submit_real_amount(db, tx.id, Decimal("1400"), staff["auditor"], RATES)
    assert tx.commission_amount == 10_000
    assert tx.status == TransactionStatus.VALIDATED

    low = await svc.create_transaction(db, _transfer(amount=150_000, currency="EUR"), staff["cashier"])
    low = await svc.submit_real_amount(db, low.id, Decimal("1495"), staff["auditor"], RATES)
    assert low.commission_amount == 500
    assert low.status == TransactionStatus.REJECTED


async def test_validation_without_executors_leaves_it_unassigned(db, make_user):
    cashier = await make_user(UserRole.CASHIER, "Caissier")
    auditor = await make_user(UserRole.AUDITOR, "Auditeur")
    await make_user(UserRole.EXECUTOR, "Exécuteur inactif", is_active=False)
    tx = await svc.create_transaction(db, _transfer(), cashier)
    tx = await svc.submit_real_amount(db, tx.id, Decimal("1500"), auditor, RATES)
    assert tx.status == TransactionStatus.VALIDATED
    assert tx.executor_id is None


async def test_pick_executor_skips_inactive(db, make_user):
    await make_user(UserRole.EXECUTOR, "Ancien", is_active=False)
    active = await make_user(UserRole.EXECUTOR, "Actif")
    await make_user(UserRole.EXECUTOR, "Nouveau")
    assert await pick_executor(db) == active.id


async def test_pick_executor_none(db, make_user):
    await make_user(UserRole.CASHIER, "Caissier")
    assert await pick_executor(db) is None


async def test_execute_by_assigned_executor(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    tx = await svc.execute_transaction(db, tx.id, staff["executor"], RECEIPT_URL, "Payé au guichet")
    assert tx.status == TransactionStatus.EXECUTED
    assert tx.receipt_url == RECEIPT_URL
    assert tx.executor_comment == "Payé au guichet"
    assert tx.executed_at is not None


async def test_execute_by_other_executor_is_forbidden(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    before = _snapshot(await _reload(db, tx.id))
    with pytest.raises(AuthorizationError):
        await svc.execute_transaction(db, tx.id, staff["executor2"], RECEIPT_URL)
    assert _snapshot(await _reload(db, tx.id)) == before


async def test_execute_requires_receipt_url(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    with pytest.raises(InvalidInputError):
        await svc.execute_transaction(db, tx.id, staff["executor"], "")


async def test_execute_twice_is_a_conflict(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    await svc.execute_transaction(db, tx.id, staff["executor"], RECEIPT_URL)
    with pytest.raises(StateConflictError):
        await svc.execute_transaction(db, tx.id, staff["executor"], RECEIPT_URL)


async def test_close_by_creator_only(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    await svc.execute_transaction(db, tx.id, staff["executor"], RECEIPT_URL)
    with pytest.raises(AuthorizationError):
        await svc.close_transaction(db, tx.id, staff["cashier2"])
    tx = await svc.close_transaction(db, tx.id, staff["cashier"])
    assert tx.status == TransactionStatus.COMPLETED


async def test_close_before_execution_is_a_conflict(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    with pytest.raises(StateConflictError):
        await svc.close_transaction(db, tx.id, staff["cashier"])
    assert (await _reload(db, tx.id)).status == TransactionStatus.VALIDATED


async def test_rejected_transaction_is_terminal(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1590"), staff["auditor"], RATES)
    with pytest.raises(StateConflictError):
        await svc.close_transaction(db, tx.id, staff["cashier"])
    with pytest.raises(StateConflictError):
        await svc.request_delete(db, tx.id, staff["cashier"])


async def test_delete_flow(db, staff):
    tx = await _completed(db, staff)
    tx = await svc.request_delete(db, tx.id, staff["cashier"])
    assert tx.status == TransactionStatus.PENDING_DELETE

    done = await svc.approve_delete(db, tx.id, staff["accounting"])
    assert done.id == tx.id
    assert done.type == "transfer"
    assert done.deleted_by == "Comptable"
    assert done.approver_role == "accounting"
    with pytest.raises(NotFoundError):
        await svc.get_transaction(db, tx.id)


async def test_director_can_approve_delete(db, staff):
    tx = await _completed(db, staff)
    await svc.request_delete(db, tx.id, staff["cashier"])
    done = await svc.approve_delete(db, tx.id, staff["director"])
    assert done.approver_role == "director"


async def test_request_delete_by_other_cashier_is_forbidden(db, staff):
    tx = await _completed(db, staff)
    with pytest.raises(AuthorizationError):
        await svc.request_delete(db, tx.id, staff["cashier2"])


async def test_request_delete_requires_completed(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    with pytest.raises(StateConflictError):
        await svc.request_delete(db, tx.id, staff["cashier"])


async def test_approve_without_request_is_a_conflict_and_changes_nothing(db, staff):
    tx = await _completed(db, staff)
    before = _snapshot(await _reload(db, tx.id))
    with pytest.raises(StateConflictError):
        await svc.approve_delete(db, tx.id, staff["accounting"])
    assert _snapshot(await _reload(db, tx.id)) == before


async def test_approve_requires_permission(db, staff):
    tx = await _completed(db, staff)
    await svc.request_delete(db, tx.id, staff["cashier"])
    with pytest.raises(AuthorizationError):
        await svc.approve_delete(db, tx.id, staff["cashier"])
    with pytest.raises(AuthorizationError):
        await svc.approve_delete(db, tx.id, staff["auditor"])
    assert (await _reload(db, tx.id)).status == TransactionStatus.PENDING_DELETE


async def test_receipt_can_be_deleted_directly(db, staff):
    data = TransactionCreate(type=TransactionType.RECEIPT, description="Reçu", amount=15_000)
    tx = await svc.create_transaction(db, data, staff["cashier"])
    await svc.request_delete(db, tx.id, staff["cashier"])
    done = await svc.approve_delete(db, tx.id, staff["director"])
    assert done.type == "receipt"


async def test_list_queries(db, staff):
    first = await svc.create_transaction(db, _transfer(), staff["cashier"])
    second = await svc.create_transaction(db, _transfer(), staff["cashier2"])
    third = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, third.id, Decimal("1500"), staff["auditor"], RATES)

    pending = await svc.list_pending(db)
    assert [t.id for t in pending] == [first.id, second.id]

    assigned = await svc.list_for_executor(db, staff["executor"].id)
    assert [t.id for t in assigned] == [third.id]
    assert await svc.list_for_executor(db, staff["executor2"].id) == []

    mine = await svc.list_transactions(db, created_by="Caissier A")
    assert {t.id for t in mine} == {first.id, third.id}
    validated = await svc.list_transactions(db, status=TransactionStatus.VALIDATED)
    assert [t.id for t in validated] == [third.id]
    assert len(await svc.list_transactions(db, limit=2)) == 2


async def test_second_approval_after_deletion_is_not_found(db, staff):
    tx = await _completed(db, staff)
    await svc.request_delete(db, tx.id, staff["cashier"])
    await svc.approve_delete(db, tx.id, staff["accounting"])
    with pytest.raises(NotFoundError):
        await svc.approve_delete(db, tx.id, staff["director"])


async def test_creator_is_matched_by_name(db, staff):
    tx = await svc.create_transaction(db, _transfer(), staff["cashier"])
    await svc.submit_real_amount(db, tx.id, Decimal("1500"), staff["auditor"], RATES)
    await svc.execute_transaction(db, tx.id, staff["executor"], RECEIPT_URL)
    renamed = staff["cashier"].model_copy(update={"name": "Caissier A (renommé)"})
    with pytest.raises(AuthorizationError):
        await svc.close_transaction(db, tx.id, renamed)
    assert (await _reload(db, tx.id)).status == TransactionStatus.EXECUTED
