from backoffice.core.database import Base
from backoffice.models.user import User, UserRole
from backoffice.models.transaction import Transaction, TransactionStatus, TransactionType
from backoffice.models.app_settings import AppSettings, GLOBAL_SETTINGS_ID

__all__ = [
    "AppSettings",
    "Base",
    "GLOBAL_SETTINGS_ID",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "User",
    "UserRole",
]
