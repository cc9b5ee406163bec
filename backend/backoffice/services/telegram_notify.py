"""
Уведомления в Telegram о смене статуса транзакции.
Получатели: активные пользователи с telegram_id нужной роли (или конкретный пользователь).
Ошибки отправки только логируются: на результат перехода они не влияют.
"""
from typing import Iterable, Optional

import httpx
from sqlalchemy import select

from backoffice.config import settings
from backoffice.core.database import async_session_maker
from backoffice.core.logging_config import get_logger
from backoffice.models import User, UserRole

logger = get_logger(__name__)

_STATUS_LABELS = {
    "pending": "En attente de validation",
    "validated": "Validée",
    "rejected": "Rejetée",
    "executed": "Exécutée",
    "completed": "Terminée",
    "pending_delete": "Suppression demandée",
    "deleted": "Supprimée",
}

# Кого уведомлять о новом статусе (по ролям)
_STATUS_ROLES = {
    "pending": [UserRole.AUDITOR],
    "pending_delete": [UserRole.ACCOUNTING, UserRole.DIRECTOR, UserRole.DELEGATE],
}


def format_status_message(
    tx_id: str, status: str, amount: int, currency: str, actor_name: str,
    reason: Optional[str] = None,
) -> str:
    label = _STATUS_LABELS.get(status, status)
    amount_str = f"{amount:,}".replace(",", " ")
    text = (
        f"Transaction {tx_id}\n"
        f"Montant: {amount_str} {currency}\n"
        f"Statut: {label}\n"
        f"Par: {actor_name}"
    )
    if reason:
        text += f"\nMotif: {reason}"
    return text


async def _chat_ids(roles: Iterable[UserRole] = (), user_id: Optional[int] = None,
                    user_name: Optional[str] = None) -> list[int]:
    conditions = [User.telegram_id.isnot(None), User.is_active == True]
    if user_id is not None:
        conditions.append(User.id == user_id)
    elif user_name is not None:
        conditions.append(User.name == user_name)
    else:
        conditions.append(User.role.in_(list(roles)))
    async with async_session_maker() as session:
        result = await session.execute(select(User.telegram_id).where(*conditions))
        return [r for r in result.scalars().all() if r is not None]


async def send_telegram(chat_ids: list[int], text: str) -> None:
    token = settings.telegram_bot_token
    if not token:
        logger.warning("TELEGRAM_BOT_TOKEN не задан, уведомление не отправлено")
        return
    if not chat_ids:
        logger.warning("Нет получателей с telegram_id, уведомление не отправлено")
        return
    url = f"https://api.telegram.org/bot{token}/sendMessage"
    async with httpx.AsyncClient() as client:
        for chat_id in chat_ids:
            try:
                r = await client.post(url, json={"chat_id": chat_id, "text": text}, timeout=10.0)
                if r.status_code != 200:
                    logger.warning("Telegram sendMessage %s: %s", r.status_code, r.text)
            except httpx.HTTPError as e:
                logger.exception("Ошибка отправки в Telegram chat_id=%s: %s", chat_id, e)


async def notify_status_change(
    tx_id: str,
    status: str,
    amount: int,
    currency: str,
    actor_name: str,
    created_by: Optional[str] = None,
    executor_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> None:
    """
    pending -> аудиторы; validated -> назначенный исполнитель; rejected/executed/deleted -> создатель;
    pending_delete -> бухгалтерия и дирекция.
    """
    if not settings.telegram_bot_token:
        logger.debug("Telegram не настроен, пропуск уведомления по %s", tx_id)
        return
    try:
        if status in _STATUS_ROLES:
            chat_ids = await _chat_ids(roles=_STATUS_ROLES[status])
        elif status == "validated":
            if executor_id is None:
                logger.warning("Транзакция %s без исполнителя, уведомлять некого", tx_id)
                return
            chat_ids = await _chat_ids(user_id=executor_id)
        elif created_by:
            chat_ids = await _chat_ids(user_name=created_by)
        else:
            return
    except Exception:
        logger.exception("Не удалось получить получателей уведомления по %s", tx_id)
        return
    text = format_status_message(tx_id, status, amount, currency, actor_name, reason)
    await send_telegram(chat_ids, text)
