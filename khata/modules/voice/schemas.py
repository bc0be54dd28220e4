from pydantic import Field
from typing import Any, Dict, Optional

from khata.core.schemas import CamelModel


class TranscriptionResponse(CamelModel):
    success: bool = True
    text: str
    raw: Dict[str, Any]


class ExtractedLoanInfo(CamelModel):
    """Structured output requested from the language model"""
    partner_name: Optional[str] = Field(..., description="Name of the partner/borrower mentioned in the text")
    loan_amount: Optional[float] = Field(..., description="Loan amount in PKR (extract the number only)")
    description: Optional[str] = Field(..., description="Description or reason for the loan")
    loan_date: Optional[str] = Field(
        ..., description="Date when loan was given (format: YYYY-MM-DD or relative like 'today', 'yesterday')"
    )
    expected_return_date: Optional[str] = Field(
        ..., description="Expected return date (format: YYYY-MM-DD or relative like 'next week', 'in 10 days')"
    )


class ExtractLoanInfoRequest(CamelModel):
    text: str = Field(..., min_length=1)
    owner_wallet: Optional[str] = None


class LoanInfo(CamelModel):
    """Loan form prefill; dates are ISO when they could be resolved"""
    partner_name: Optional[str] = None
    partner_id: Optional[str] = None
    loan_amount: Optional[float] = None
    description: Optional[str] = None
    loan_date: Optional[str] = None
    expected_return_date: Optional[str] = None


class ExtractLoanInfoResponse(CamelModel):
    success: bool = True
    loan_info: LoanInfo
