"""Курс EUR и минимальная комиссия перевода."""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.auth import require_permission
from backoffice.core.database import get_db
from backoffice.core.permissions import Permission
from backoffice.models import AppSettings
from backoffice.schemas.user import UserInfo
from backoffice.services.settings_service import get_or_create_settings, update_settings

router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsResponse(BaseModel):
    eur: Decimal
    transfer_commission_min_xaf: int
    changed_by: Optional[str] = None
    updated_at: Optional[str] = None


class SettingsUpdate(BaseModel):
    eur: Optional[Decimal] = Field(default=None, gt=0)
    transfer_commission_min_xaf: Optional[int] = Field(default=None, ge=0)


def _to_response(row: AppSettings) -> SettingsResponse:
    return SettingsResponse(
        eur=row.eur,
        transfer_commission_min_xaf=row.transfer_commission_min_xaf,
        changed_by=row.changed_by,
        updated_at=row.updated_at.isoformat() if row.updated_at else None,
    )


@router.get("", response_model=SettingsResponse)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _user: UserInfo = Depends(require_permission(Permission.VIEW_RATES)),
):
    return _to_response(await get_or_create_settings(db))


@router.patch("", response_model=SettingsResponse)
async def patch_settings(
    body: SettingsUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserInfo = Depends(require_permission(Permission.EDIT_RATES)),
):
    row = await update_settings(
        db,
        changed_by=user.name,
        eur=body.eur,
        transfer_commission_min_xaf=body.transfer_commission_min_xaf,
    )
    return _to_response(row)
