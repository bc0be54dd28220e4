from pydantic import Field, validator
from typing import List

from khata.core.schemas import CamelModel


class AddPartnerRequest(CamelModel):
    owner_wallet: str = Field(..., min_length=1)
    partner_username: str = Field(..., min_length=1)

    @validator("partner_username")
    def strip_username(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Partner username cannot be blank")
        return v


class PartnerResponse(CamelModel):
    """Partner link with the partner's display fields"""
    id: str
    username: str
    name: str
    wallet_address: str


class PartnerEnvelope(CamelModel):
    partner: PartnerResponse


class PartnerListResponse(CamelModel):
    partners: List[PartnerResponse]
    partner_count: int
