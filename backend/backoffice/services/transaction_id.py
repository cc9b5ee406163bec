"""Идентификаторы транзакций формата TRX-YYYYMMDD-HHMM-XXX."""
import re
import secrets
from datetime import datetime
from typing import Optional

PREFIX = "TRX"
_PATTERN = re.compile(r"^TRX-(\d{8})-(\d{4})-(\d{3})$")


def generate_transaction_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    suffix = secrets.randbelow(1000)
    return f"{PREFIX}-{now:%Y%m%d}-{now:%H%M}-{suffix:03d}"


def is_valid_transaction_id(value: str) -> bool:
    return bool(_PATTERN.match(value or ""))


def extract_datetime_from_transaction_id(value: str) -> Optional[datetime]:
    """Дата и время (до минуты) из id; None для чужого формата или невозможной даты."""
    m = _PATTERN.match(value or "")
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1) + m.group(2), "%Y%m%d%H%M")
    except ValueError:
        return None
