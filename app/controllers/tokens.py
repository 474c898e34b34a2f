from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import get_db
from app.models.notification import ActionResponse, TokenRegistration
from app.services import operations
from app.services.firebase_auth import Caller, get_caller
from app.services.results import unwrap

router = APIRouter()


@router.post("/admin-tokens", response_model=ActionResponse, response_model_exclude_none=True)
async def register_admin_token(
        registration: TokenRegistration,
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
):
    """
    Registers the calling admin's device token. Only the caller's own record is written.
    """
    return unwrap(await operations.register_admin_token(db, caller, registration.token))


@router.delete("/admin-tokens/me", response_model=ActionResponse, response_model_exclude_none=True)
async def remove_admin_token(
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
):
    """
    Marks the caller's admin token inactive, e.g. on logout. The record is kept.
    """
    return unwrap(await operations.remove_admin_token(db, caller))


@router.put("/users/me/fcm-token", response_model=ActionResponse, response_model_exclude_none=True)
async def register_user_token(
        registration: TokenRegistration,
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
):
    return unwrap(await operations.register_user_token(db, caller, registration.token))
