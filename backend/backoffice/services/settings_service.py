from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import settings
from backoffice.core.exceptions import InvalidInputError
from backoffice.core.logging_config import get_logger
from backoffice.models import AppSettings, GLOBAL_SETTINGS_ID
from backoffice.services.commission import StaticRateProvider

logger = get_logger(__name__)


async def get_or_create_settings(db: AsyncSession) -> AppSettings:
    r = await db.execute(select(AppSettings).where(AppSettings.id == GLOBAL_SETTINGS_ID))
    row = r.scalar_one_or_none()
    if row is None:
        row = AppSettings(
            id=GLOBAL_SETTINGS_ID,
            eur=Decimal(settings.default_eur_rate),
            transfer_commission_min_xaf=settings.default_transfer_commission_min_xaf,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        logger.info("Созданы настройки по умолчанию: EUR=%s, мин. комиссия=%s",
                    row.eur, row.transfer_commission_min_xaf)
    return row


async def update_settings(
    db: AsyncSession,
    changed_by: str,
    eur: Optional[Decimal] = None,
    transfer_commission_min_xaf: Optional[int] = None,
) -> AppSettings:
    if eur is not None and eur <= 0:
        raise InvalidInputError("Le taux EUR doit être positif")
    if transfer_commission_min_xaf is not None and transfer_commission_min_xaf < 0:
        raise InvalidInputError("La commission minimum ne peut pas être négative")
    row = await get_or_create_settings(db)
    if eur is not None:
        row.eur = eur
    if transfer_commission_min_xaf is not None:
        row.transfer_commission_min_xaf = transfer_commission_min_xaf
    row.changed_by = changed_by
    await db.flush()
    await db.refresh(row)
    logger.info("Настройки изменены (%s): EUR=%s, мин. комиссия=%s",
                changed_by, row.eur, row.transfer_commission_min_xaf)
    return row


async def load_rate_provider(db: AsyncSession) -> StaticRateProvider:
    """Снимок курса и порога на время одного запроса."""
    row = await get_or_create_settings(db)
    return StaticRateProvider(
        {settings.default_currency: row.eur},
        threshold=row.transfer_commission_min_xaf,
        threshold_currency=settings.default_currency,
    )
