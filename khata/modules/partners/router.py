from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from khata.core.database import get_db
from khata.modules.partners import schemas
from khata.modules.partners.services import PartnerService

router = APIRouter(prefix="/partners", tags=["partners"])


@router.post("", response_model=schemas.PartnerEnvelope)
async def add_partner(
    data: schemas.AddPartnerRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Add a partner by username.

    - 404 when the owner wallet or the username is unknown
    - 400 when adding yourself, 409 when already linked
    """
    partner = await PartnerService.add_partner(db, data.owner_wallet, data.partner_username)
    return {"partner": partner}


@router.get("", response_model=schemas.PartnerListResponse)
async def list_partners(
    owner_wallet: str = Query(..., alias="ownerWallet", min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Partners of an owner, used to populate the loan form"""
    partners = await PartnerService.list_partners(db, owner_wallet)
    return {"partners": partners, "partner_count": len(partners)}
