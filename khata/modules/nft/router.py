from fastapi import APIRouter, Depends, Query, Response

from khata.core.dependencies import get_achievement_minter, get_metadata_service
from khata.core.exceptions import ValidationError
from khata.modules.nft import schemas
from khata.modules.nft.services import AchievementMinter, AchievementMetadataService

router = APIRouter(prefix="/nft", tags=["nft"])


@router.post("/mint", response_model=schemas.MintResult)
async def mint_achievement(
    data: schemas.MintRequest,
    minter: AchievementMinter = Depends(get_achievement_minter)
):
    """
    Mint the repayment achievement NFT with the server-held minter key.

    - Returns the existing token when the loan already has one
    - 500 when the contract address or minter key is not configured
    """
    return await minter.mint(data.recipient_address, data.loan_id, data.amount)


@router.get("/metadata/{token_id}", response_model=schemas.AchievementMetadata)
async def get_metadata(
    token_id: str,
    response: Response,
    service: AchievementMetadataService = Depends(get_metadata_service)
):
    """ERC-721 metadata for a token, read from the NFT and LoanLedger contracts"""
    try:
        token = int(token_id)
    except ValueError:
        raise ValidationError("Invalid token ID")

    metadata = await service.get_metadata(token)
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return metadata


@router.get("/achievements", response_model=schemas.AchievementListResponse)
async def list_achievements(
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    service: AchievementMetadataService = Depends(get_metadata_service)
):
    """Achievement NFTs held by a wallet, with the loan each one was minted for"""
    return await service.list_achievements(wallet_address)
