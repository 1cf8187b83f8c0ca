"""
User endpoints: account sync from the identity provider and profile lookup.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.security import get_current_user, get_token_claims
from tourbook.db.session import get_db
from tourbook.models.user import User
from tourbook.schemas.user import UserResponse, UserSync
from tourbook.services.user_service import sync_user

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/sync", response_model=UserResponse)
async def sync_user_endpoint(
    user_data: UserSync,
    claims: dict = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
):
    """Create or update the local account for the authenticated identity."""
    return await sync_user(db, claims["sub"], user_data)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return user
