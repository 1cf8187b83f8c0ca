"""
User service: mirror identity-provider accounts into the users table.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.logging import get_logger
from tourbook.models.user import User
from tourbook.schemas.user import UserSync

logger = get_logger(__name__)


async def get_user_by_identifier(db: AsyncSession, token_identifier: str):
    result = await db.execute(select(User).where(User.token_identifier == token_identifier))
    return result.scalar_one_or_none()


async def sync_user(db: AsyncSession, token_identifier: str, user_data: UserSync) -> User:
    """
    Create or refresh the user behind a token. Roles are never taken from
    the client; new accounts start as customers.
    """
    user = await get_user_by_identifier(db, token_identifier)
    if user is None:
        user = User(
            token_identifier=token_identifier,
            email=user_data.email,
            name=user_data.name,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Another request synced the same account first
            await db.rollback()
            user = await get_user_by_identifier(db, token_identifier)
            if user is None:
                raise
        else:
            await db.refresh(user)
            logger.info("user_registered", user_id=user.id, email=user.email)
            return user

    user.email = user_data.email
    if user_data.name is not None:
        user.name = user_data.name
    await db.flush()
    await db.refresh(user)
    logger.info("user_synced", user_id=user.id)
    return user
