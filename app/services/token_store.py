# file: services/token_store.py

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import AdminToken, User, utcnow


async def get_active_admin_tokens(db: AsyncSession) -> List[str]:
    stmt = (
        select(AdminToken.token)
        .where(AdminToken.is_active == True, AdminToken.token != "")
        .order_by(AdminToken.created_at)
    )
    result = await db.execute(stmt)
    return [token for token in result.scalars().all() if token]


async def get_user(db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    return await db.get(User, user_id)


async def get_admin_token(db: AsyncSession, owner_id: str) -> Optional[AdminToken]:
    return await db.get(AdminToken, owner_id)


async def upsert_admin_token(db: AsyncSession, owner_id: str, token: str) -> AdminToken:
    """Registering again overwrites the owner's record, as a fresh active token."""
    now = utcnow()
    record = await db.get(AdminToken, owner_id)
    if record is None:
        record = AdminToken(owner_id=owner_id)
        db.add(record)
    record.token = token
    record.is_active = True
    record.created_at = now
    record.updated_at = now
    await db.commit()
    return record


async def deactivate_admin_token(db: AsyncSession, owner_id: str) -> Optional[AdminToken]:
    record = await db.get(AdminToken, owner_id)
    if record is None:
        return None
    record.is_active = False
    record.updated_at = utcnow()
    await db.commit()
    return record


async def set_user_token(db: AsyncSession, user_id: str, token: str, email: Optional[str] = None) -> User:
    user = await db.get(User, user_id)
    if user is None:
        user = User(id=user_id, email=email)
        db.add(user)
    user.fcm_token = token
    user.token_updated_at = utcnow()
    await db.commit()
    return user
