from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from typing import Optional
import logging

from khata.core.exceptions import ConflictError, NotFoundError
from khata.modules.users.models import User
from khata.modules.users import schemas
from khata.modules.users.schemas import normalize_wallet

logger = logging.getLogger(__name__)


class UserService:
    """Service layer for signup and wallet-based identity resolution"""

    @staticmethod
    async def find_by_wallet(db: AsyncSession, address: str) -> Optional[User]:
        """Case-insensitive lookup; the 0x prefix is optional"""
        normalized = normalize_wallet(address)
        result = await db.execute(
            select(User).where(func.lower(User.wallet_address) == normalized)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve_by_wallet(db: AsyncSession, address: str, role: str = "User") -> User:
        """Resolve a wallet to its user or raise NotFoundError"""
        user = await UserService.find_by_wallet(db, address)
        if not user:
            raise NotFoundError(f"{role} not found for this wallet")
        return user

    @staticmethod
    async def find_by_username(db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def register_user(db: AsyncSession, data: schemas.UserSignupRequest) -> User:
        """Create a user; wallet and username must both be unused"""
        if await UserService.find_by_wallet(db, data.wallet_address):
            raise ConflictError("User already exists for this wallet")

        if await UserService.find_by_username(db, data.username):
            raise ConflictError("Username already taken")

        user = User(
            name=data.name,
            store_name=data.store_name,
            username=data.username,
            email=data.email,
            wallet_address=data.wallet_address,
        )

        try:
            db.add(user)
            await db.commit()
            await db.refresh(user)
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User already exists for this wallet or username")

        logger.info(f"Registered user {user.username} ({user.wallet_address})")
        return user
