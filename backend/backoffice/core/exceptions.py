"""
Ошибки бизнес-логики. Сервисы бросают их, main.py переводит в HTTP-ответы.
Все они восстановимы: запрос просто отклоняется с причиной.
"""


class BackofficeError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(BackofficeError):
    """Некорректные входные данные (сумма <= 0, пустое поле)."""
    status_code = 400


class AuthorizationError(BackofficeError):
    """Нет права, роли или совпадения личности для действия."""
    status_code = 403


class NotFoundError(BackofficeError):
    status_code = 404


class StateConflictError(BackofficeError):
    """Транзакция не в том статусе, которого требует переход."""
    status_code = 409
