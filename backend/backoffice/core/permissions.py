"""
RBAC: роль × право. Право: строка вида action_resource (view_transactions, import_ria_csv).
Таблица неизменяемая и строится один раз при импорте; проверка никогда не бросает исключений.
"""
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Optional, FrozenSet

from backoffice.models.user import UserRole


class Permission(str, Enum):
    VIEW_DASHBOARD = "view_dashboard"

    VIEW_USERS = "view_users"
    CREATE_USERS = "create_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"

    VIEW_AGENCIES = "view_agencies"
    CREATE_AGENCIES = "create_agencies"
    EDIT_AGENCIES = "edit_agencies"
    DELETE_AGENCIES = "delete_agencies"

    VIEW_TRANSACTIONS = "view_transactions"
    CREATE_TRANSACTIONS = "create_transactions"
    EDIT_TRANSACTIONS = "edit_transactions"              # ввод реальной суммы аудитором
    DELETE_TRANSACTIONS = "delete_transactions"          # запрос на удаление своей транзакции
    EXECUTE_TRANSACTIONS = "execute_transactions"
    VALIDATE_DELETE_TRANSACTIONS = "validate_delete_transactions"

    VIEW_RECEPTION = "view_reception"
    CREATE_RECEPTION = "create_reception"
    EDIT_RECEPTION = "edit_reception"
    DELETE_RECEPTION = "delete_reception"

    VIEW_TRANSFER = "view_transfer"
    CREATE_TRANSFER = "create_transfer"
    EDIT_TRANSFER = "edit_transfer"
    DELETE_TRANSFER = "delete_transfer"

    VIEW_EXCHANGE = "view_exchange"
    CREATE_EXCHANGE = "create_exchange"
    EDIT_EXCHANGE = "edit_exchange"
    DELETE_EXCHANGE = "delete_exchange"

    VIEW_CARDS = "view_cards"
    CREATE_CARDS = "create_cards"
    EDIT_CARDS = "edit_cards"
    DELETE_CARDS = "delete_cards"

    VIEW_RATES = "view_rates"
    CREATE_RATES = "create_rates"
    EDIT_RATES = "edit_rates"
    DELETE_RATES = "delete_rates"

    VIEW_EXPENSES = "view_expenses"
    CREATE_EXPENSES = "create_expenses"
    EDIT_EXPENSES = "edit_expenses"
    DELETE_EXPENSES = "delete_expenses"

    VIEW_REPORTS = "view_reports"
    CREATE_REPORTS = "create_reports"
    EDIT_REPORTS = "edit_reports"
    DELETE_REPORTS = "delete_reports"

    VIEW_SETTINGS = "view_settings"
    EDIT_SETTINGS = "edit_settings"

    VIEW_RECEIPTS = "view_receipts"
    VIEW_CASH = "view_cash"

    VIEW_CASH_SETTLEMENTS = "view_cash_settlements"
    CREATE_CASH_SETTLEMENTS = "create_cash_settlements"
    EDIT_CASH_SETTLEMENTS = "edit_cash_settlements"
    VALIDATE_CASH_SETTLEMENTS = "validate_cash_settlements"

    VIEW_RIA_DASHBOARD = "view_ria_dashboard"
    VIEW_RIA_TRANSACTIONS = "view_ria_transactions"
    IMPORT_RIA_CSV = "import_ria_csv"


P = Permission

_CRUD = ("view", "create", "edit", "delete")


def _all(resource: str) -> List[Permission]:
    return [Permission(f"{action}_{resource}") for action in _CRUD]


_ROLE_PERMISSIONS = {
    UserRole.SUPER_ADMIN: [
        P.VIEW_DASHBOARD,
        *_all("users"),
        *_all("agencies"),
        *_all("transactions"),
        *_all("exchange"),
        *_all("cards"),
        *_all("rates"),
        *_all("expenses"),
        *_all("reports"),
        P.VIEW_SETTINGS,
        P.EDIT_SETTINGS,
        P.VIEW_RECEIPTS,
        P.VIEW_CASH,
        P.VIEW_CASH_SETTLEMENTS,
        P.VIEW_RIA_DASHBOARD,
        P.VIEW_RIA_TRANSACTIONS,
        P.IMPORT_RIA_CSV,
    ],
    UserRole.DIRECTOR: [
        P.VIEW_DASHBOARD,
        P.VIEW_USERS, P.CREATE_USERS, P.EDIT_USERS, P.DELETE_USERS,
        P.VIEW_AGENCIES, P.CREATE_AGENCIES, P.EDIT_AGENCIES,
        P.VIEW_TRANSACTIONS, P.VALIDATE_DELETE_TRANSACTIONS,
        P.VIEW_TRANSFER,
        P.VIEW_CARDS,
        P.VIEW_RATES, P.EDIT_RATES,
        P.VIEW_EXPENSES,
        P.VIEW_REPORTS, P.CREATE_REPORTS, P.EDIT_REPORTS,
        P.VIEW_RECEIPTS,
        P.VIEW_CASH,
        P.VIEW_CASH_SETTLEMENTS, P.VALIDATE_CASH_SETTLEMENTS,
        P.VIEW_RIA_DASHBOARD, P.VIEW_RIA_TRANSACTIONS,
    ],
    UserRole.DELEGATE: [
        P.VIEW_DASHBOARD,
        P.VIEW_USERS, P.EDIT_USERS,
        P.VIEW_AGENCIES,
        P.VIEW_TRANSACTIONS, P.VALIDATE_DELETE_TRANSACTIONS,
        P.VIEW_TRANSFER,
        P.VIEW_CARDS,
        P.VIEW_RATES,
        P.VIEW_EXPENSES, P.EDIT_EXPENSES,
        P.VIEW_REPORTS, P.CREATE_REPORTS,
        P.VIEW_RECEIPTS,
        P.VIEW_CASH,
        P.VIEW_RIA_DASHBOARD,
    ],
    UserRole.ACCOUNTING: [
        P.VIEW_DASHBOARD,
        P.VIEW_TRANSACTIONS, P.VALIDATE_DELETE_TRANSACTIONS,
        P.VIEW_RATES, P.EDIT_RATES,
        P.VIEW_EXPENSES, P.CREATE_EXPENSES, P.EDIT_EXPENSES, P.DELETE_EXPENSES,
        P.VIEW_REPORTS, P.CREATE_REPORTS, P.EDIT_REPORTS,
        P.VIEW_RECEIPTS,
        P.VIEW_CASH,
        P.VIEW_CASH_SETTLEMENTS, P.VALIDATE_CASH_SETTLEMENTS,
        P.VIEW_RIA_DASHBOARD, P.VIEW_RIA_TRANSACTIONS,
    ],
    UserRole.CASHIER: [
        P.VIEW_DASHBOARD,
        P.VIEW_TRANSACTIONS, P.CREATE_TRANSACTIONS, P.DELETE_TRANSACTIONS,
        P.VIEW_TRANSFER, P.CREATE_TRANSFER, P.EDIT_TRANSFER,
        P.VIEW_EXCHANGE, P.CREATE_EXCHANGE, P.EDIT_EXCHANGE,
        P.VIEW_EXPENSES, P.CREATE_EXPENSES,
        P.VIEW_RECEIPTS,
        P.VIEW_CASH_SETTLEMENTS, P.CREATE_CASH_SETTLEMENTS,
        P.VIEW_RIA_DASHBOARD,
    ],
    UserRole.AUDITOR: [
        P.VIEW_DASHBOARD,
        P.VIEW_USERS,  # только просмотр
        P.VIEW_TRANSACTIONS,
        P.EDIT_TRANSACTIONS,  # валидация/отклонение через реальную сумму
        P.VIEW_CARDS,
        P.VIEW_RATES,
        P.VIEW_EXPENSES,
        P.VIEW_REPORTS,
        P.VIEW_CASH_SETTLEMENTS,
    ],
    UserRole.EXECUTOR: [
        P.VIEW_DASHBOARD,
        P.VIEW_TRANSACTIONS,
        P.EXECUTE_TRANSACTIONS,
        P.VIEW_EXPENSES,
    ],
    UserRole.CASH_MANAGER: [
        P.VIEW_DASHBOARD,
        P.VIEW_TRANSACTIONS,
        P.VIEW_CASH,
        P.VIEW_CASH_SETTLEMENTS, P.CREATE_CASH_SETTLEMENTS,
        P.EDIT_CASH_SETTLEMENTS, P.VALIDATE_CASH_SETTLEMENTS,
        P.VIEW_RIA_DASHBOARD, P.VIEW_RIA_TRANSACTIONS, P.IMPORT_RIA_CSV,
    ],
}

# Роль → frozenset строковых токенов. Изменять нельзя: переопределения передаются явно.
ROLE_PERMISSIONS: Mapping[UserRole, FrozenSet[str]] = MappingProxyType({
    role: frozenset(p.value for p in perms) for role, perms in _ROLE_PERMISSIONS.items()
})

ROLE_DISPLAY_NAMES = MappingProxyType({
    UserRole.SUPER_ADMIN: "Super Administrateur",
    UserRole.DIRECTOR: "Directeur",
    UserRole.DELEGATE: "Délégué",
    UserRole.ACCOUNTING: "Comptable",
    UserRole.CASHIER: "Caissier",
    UserRole.AUDITOR: "Auditeur",
    UserRole.EXECUTOR: "Exécuteur",
    UserRole.CASH_MANAGER: "Responsable caisse",
})


def _parse_role(role) -> Optional[UserRole]:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def _token(permission) -> Optional[str]:
    if isinstance(permission, Permission):
        return permission.value
    if isinstance(permission, str):
        return permission
    return None


def role_permissions(role) -> FrozenSet[str]:
    r = _parse_role(role)
    if r is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(r, frozenset())


def has_permission(role, permission) -> bool:
    """Есть ли у роли право. Неизвестная роль или токен дают False."""
    token = _token(permission)
    if not token:
        return False
    return token in role_permissions(role)


def normalize_permission(value: Optional[str]) -> Optional[str]:
    """
    Привести вход к виду action_resource:
    "/expenses" -> "view_expenses", "expenses:create" -> "create_expenses",
    "create_expenses" -> без изменений.
    """
    if not value:
        return None
    if value.startswith("/"):
        key = value.lstrip("/")
        return f"view_{key}" if key else None
    if ":" in value:
        resource, _, action = value.partition(":")
        if not resource or not action:
            return None
        return f"{action}_{resource}"
    return value


def check_permission(role, value: Optional[str]) -> bool:
    """Проверка по маршруту, "resource:action" или готовому токену."""
    return has_permission(role, normalize_permission(value))


def can_access(role, resource: str, action: str) -> bool:
    return has_permission(role, f"{action}_{resource}")


def role_display_name(role) -> str:
    r = _parse_role(role)
    if r is None:
        return str(role)
    return ROLE_DISPLAY_NAMES[r]


# Порядок пунктов меню; видимость по праву view_<resource>
_MENU = [
    ("dashboard", "Tableau de bord", "/dashboard"),
    ("transfer", "Transfert", "/transfer"),
    ("cards", "Cartes", "/cards"),
    ("exchange", "Bureau de change", "/exchange"),
    ("expenses", "Dépenses", "/expenses"),
    ("transactions", "Transactions", "/transactions"),
    ("receipts", "Reçus", "/receipt"),
    ("cash", "Caisse", "/cash"),
    ("cash_settlements", "Arrêtés de caisse", "/cash-settlements"),
    ("ria_dashboard", "RIA", "/ria"),
    ("reports", "Rapports", "/reports"),
    ("users", "Utilisateurs", "/users"),
    ("agencies", "Agences", "/agencies"),
    ("rates", "Taux & Plafonds", "/rates"),
    ("settings", "Paramètres", "/settings"),
]


def accessible_menus(role) -> List[str]:
    """Ключи разделов, видимых роли."""
    return [key for key, _, _ in _MENU if has_permission(role, f"view_{key}")]


def get_menu_items(role) -> List[dict]:
    """Пункты меню для роли: id, label, href."""
    visible = set(accessible_menus(role))
    return [
        {"id": key, "label": label, "href": href}
        for key, label, href in _MENU
        if key in visible
    ]
