from backoffice.models import TransactionStatus

# pending_delete -> физическое удаление строки, отдельного статуса нет
ALLOWED_TRANSITIONS: dict[TransactionStatus, list[TransactionStatus]] = {
    TransactionStatus.PENDING: [TransactionStatus.VALIDATED, TransactionStatus.REJECTED],
    TransactionStatus.VALIDATED: [TransactionStatus.EXECUTED],
    TransactionStatus.EXECUTED: [TransactionStatus.COMPLETED],
    TransactionStatus.COMPLETED: [TransactionStatus.PENDING_DELETE],
    TransactionStatus.REJECTED: [],
    TransactionStatus.PENDING_DELETE: [],
}


def can_transition(current: TransactionStatus, new: TransactionStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])
