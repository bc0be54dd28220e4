from pydantic import Field, validator
from datetime import date, datetime
from typing import List, Optional
from enum import Enum

from khata.core.blockchain import normalize_bytes32
from khata.core.schemas import CamelModel
from khata.modules.loans.models import LoanStatus
from khata.modules.nft.schemas import MintResult
from khata.modules.users.schemas import PartyInfo


class DecisionAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class LoanType(str, Enum):
    GIVEN = "given"
    TAKEN = "taken"


# Requests

class LoanCreateRequest(CamelModel):
    """Owner records a new loan to one of their partners"""
    owner_wallet: str = Field(..., min_length=1)
    partner_id: str = Field(..., min_length=1, description="Partner link id from GET /partners")
    amount: int = Field(..., gt=0, description="Amount in whole PKR")
    description: Optional[str] = None
    loan_date: Optional[date] = None
    expected_return_date: Optional[date] = None


class LoanDecisionRequest(CamelModel):
    loan_id: str = Field(..., min_length=1)
    partner_wallet: str = Field(..., min_length=1)
    action: DecisionAction


class RecordOnchainRequest(CamelModel):
    loan_id: str = Field(..., min_length=1)
    owner_wallet: str = Field(..., min_length=1)


class UpdateTxRequest(CamelModel):
    loan_id: str = Field(..., min_length=1)
    tx_hash: str = Field(..., min_length=1)
    onchain_loan_id: Optional[str] = None

    @validator("onchain_loan_id")
    def validate_onchain_id(cls, v):
        if v is None:
            return v
        return normalize_bytes32(v)


class ConfirmPaymentRequest(CamelModel):
    loan_id: str = Field(..., min_length=1)
    partner_wallet: str = Field(..., min_length=1)
    tx_hash: str = Field(..., min_length=1)


# Responses

class LoanResponse(CamelModel):
    """Loan with both parties' display fields"""
    id: str
    amount: int
    description: Optional[str] = None
    loan_date: Optional[date] = None
    expected_return_date: Optional[date] = None
    status: LoanStatus
    tx_hash: Optional[str] = None
    onchain_loan_id: Optional[str] = None
    payment_tx_hash: Optional[str] = None
    paid_back_date: Optional[datetime] = None
    owner_wallet_address: Optional[str] = None
    partner_wallet_address: Optional[str] = None
    created_at: datetime
    owner: Optional[PartyInfo] = None
    partner: Optional[PartyInfo] = None
    loan_type: Optional[LoanType] = None


class LoanEnvelope(CamelModel):
    loan: LoanResponse


class LoanCreatedResponse(CamelModel):
    loan: LoanResponse
    status: LoanStatus


class LoanListResponse(CamelModel):
    loans_given: List[LoanResponse]
    loans_taken: List[LoanResponse]
    total_loan_given: int
    total_loan_taken: int


class LoanQueueResponse(CamelModel):
    loans: List[LoanResponse]


class LoanDecisionResponse(CamelModel):
    loan: LoanResponse
    needs_on_chain_recording: bool


class OnchainTerms(CamelModel):
    """Arguments for LoanLedger.recordLoan"""
    id: str
    owner_wallet: Optional[str] = None
    partner_wallet: Optional[str] = None
    amount: int
    amount_native: str = Field(..., description="Amount converted to the chain's smallest unit")
    description: str
    loan_date: int = Field(..., description="Unix seconds")
    expected_return_date: int = Field(..., description="Unix seconds, 0 when not set")


class OnchainTermsResponse(CamelModel):
    loan: OnchainTerms


class PaymentDetails(CamelModel):
    """Arguments for LoanLedger.payLoan"""
    id: str
    onchain_loan_id: str
    amount: int
    amount_native: str
    owner_wallet: Optional[str] = None
    partner_wallet: Optional[str] = None
    description: str


class PaymentDetailsResponse(CamelModel):
    loan: PaymentDetails


class PaymentConfirmedResponse(CamelModel):
    loan: LoanResponse
    nft: Optional[MintResult] = None
