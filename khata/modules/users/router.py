from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from khata.core.database import get_db
from khata.modules.users import schemas
from khata.modules.users.services import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=schemas.UserEnvelope, status_code=status.HTTP_201_CREATED)
async def signup(
    data: schemas.UserSignupRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a shopkeeper.

    - Wallet address is stored lowercase with the 0x prefix
    - 409 when the wallet or the username is already registered
    """
    user = await UserService.register_user(db, data)
    return {"user": user}


@router.get("", response_model=schemas.UserEnvelope)
async def get_user_by_wallet(
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Look up the user registered for a wallet"""
    user = await UserService.resolve_by_wallet(db, wallet_address)
    return {"user": user}
