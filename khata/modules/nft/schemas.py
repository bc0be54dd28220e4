from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Optional, Union

from khata.core.schemas import CamelModel


class MintRequest(CamelModel):
    recipient_address: str = Field(..., min_length=1)
    loan_id: str = Field(..., min_length=1, description="bytes32 on-chain loan id, hex")
    amount: Union[int, str] = Field(..., description="Amount in the chain's smallest unit")

    @validator("amount")
    def validate_amount(cls, v):
        """Accept integers or decimal strings, as produced by JSON clients"""
        try:
            value = int(v)
        except (TypeError, ValueError):
            raise ValueError("Amount must be an integer in native units")
        if value < 0:
            raise ValueError("Amount cannot be negative")
        return value


class MintResult(CamelModel):
    success: bool = True
    token_id: str
    transaction_hash: str = ""
    already_minted: bool = False
    message: str


class MetadataAttribute(BaseModel):
    trait_type: str
    value: Any


class AchievementMetadata(BaseModel):
    """ERC-721 metadata document (snake_case keys per the standard)"""
    name: str
    description: str
    image: str
    external_url: str
    attributes: List[MetadataAttribute]
    properties: Dict[str, Optional[str]]


class AchievementSummary(CamelModel):
    token_id: str
    token_uri: str = ""
    loan_id: str
    metadata_path: str
    loan_amount: Optional[int] = Field(None, description="Loan amount in PKR, when the LoanLedger is configured")
    loan_date: Optional[str] = None


class AchievementListResponse(CamelModel):
    success: bool = True
    wallet_address: str
    achievements: List[AchievementSummary]


class BaseUriUpdate(CamelModel):
    previous: str
    current: str
    changed: bool
    transaction_hash: str = ""
