from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models import User, UserRole


async def pick_executor(db: AsyncSession) -> Optional[int]:
    """Первый активный исполнитель (самый ранний по created_at). None, если исполнителей нет."""
    result = await db.execute(
        select(User.id)
        .where(User.role == UserRole.EXECUTOR, User.is_active == True)
        .order_by(User.created_at.asc(), User.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()
