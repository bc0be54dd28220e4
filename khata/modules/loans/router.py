from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from khata.core.database import get_db
from khata.core.dependencies import get_payment_service, get_recording_service
from khata.modules.loans import schemas
from khata.modules.loans.models import LoanStatus
from khata.modules.loans.services import LoanService, PaymentService, RecordingService, to_loan_response

router = APIRouter(prefix="/loans", tags=["loans"])


@router.post("", response_model=schemas.LoanCreatedResponse)
async def create_loan(
    data: schemas.LoanCreateRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Record a loan given to a partner.

    - The loan starts as pending until the partner accepts it
    - 404 when the owner wallet or the partner id is unknown
    """
    loan = await LoanService.create_loan(db, data)
    return {"loan": to_loan_response(loan, schemas.LoanType.GIVEN), "status": LoanStatus.PENDING}


@router.get("", response_model=schemas.LoanListResponse)
async def list_loans(
    owner_wallet: Optional[str] = Query(None, alias="ownerWallet"),
    partner_wallet: Optional[str] = Query(None, alias="partnerWallet"),
    db: AsyncSession = Depends(get_db)
):
    """Loans given and taken by the caller's wallets, newest first, with totals"""
    return await LoanService.list_loans(db, owner_wallet, partner_wallet)


@router.get("/pending", response_model=schemas.LoanQueueResponse)
async def list_pending_loans(
    partner_wallet: str = Query(..., alias="partnerWallet", min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Loans waiting for the partner's decision"""
    loans = await LoanService.list_pending(db, partner_wallet)
    return {"loans": [to_loan_response(loan, schemas.LoanType.TAKEN) for loan in loans]}


@router.get("/awaiting-payment", response_model=schemas.LoanQueueResponse)
async def list_awaiting_payment(
    partner_wallet: str = Query(..., alias="partnerWallet", min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Recorded loans the partner still has to pay back"""
    loans = await LoanService.list_awaiting_payment(db, partner_wallet)
    return {"loans": [to_loan_response(loan, schemas.LoanType.TAKEN) for loan in loans]}


@router.post("/accept", response_model=schemas.LoanDecisionResponse)
async def decide_loan(
    data: schemas.LoanDecisionRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Partner accepts or rejects a pending loan.

    - 403 when the wallet is not the loan's partner
    - 400 when the loan was already decided
    """
    loan, needs_recording = await LoanService.decide(db, data)
    return {
        "loan": to_loan_response(loan, schemas.LoanType.TAKEN),
        "needs_on_chain_recording": needs_recording,
    }


@router.post("/record-onchain", response_model=schemas.OnchainTermsResponse)
async def prepare_onchain_recording(
    data: schemas.RecordOnchainRequest,
    service: RecordingService = Depends(get_recording_service)
):
    """Terms the owner passes to LoanLedger.recordLoan"""
    terms = await service.prepare_recording(data.loan_id, data.owner_wallet)
    return {"loan": terms}


@router.post("/update-tx", response_model=schemas.LoanEnvelope)
async def confirm_onchain_recording(
    data: schemas.UpdateTxRequest,
    service: RecordingService = Depends(get_recording_service)
):
    """
    Store the recordLoan transaction and move the loan to waiting on payment.

    When onchainLoanId is omitted it is read from the LoanRecorded event.
    """
    loan = await service.confirm_recording(data.loan_id, data.tx_hash, data.onchain_loan_id)
    return {"loan": to_loan_response(loan, schemas.LoanType.GIVEN)}


@router.get("/pay", response_model=schemas.PaymentDetailsResponse)
async def get_payment_details(
    loan_id: str = Query(..., alias="loanId", min_length=1),
    partner_wallet: str = Query(..., alias="partnerWallet", min_length=1),
    service: PaymentService = Depends(get_payment_service)
):
    """Arguments and value for the partner's payLoan call"""
    details = await service.get_payment_details(loan_id, partner_wallet)
    return {"loan": details}


@router.post("/pay", response_model=schemas.PaymentConfirmedResponse)
async def confirm_payment(
    data: schemas.ConfirmPaymentRequest,
    service: PaymentService = Depends(get_payment_service)
):
    """
    Mark the loan paid back and mint the achievement NFT.

    A minting failure does not fail the payment; nft is null in that case.
    """
    loan, nft = await service.confirm_payment(data.loan_id, data.partner_wallet, data.tx_hash)
    return {"loan": to_loan_response(loan, schemas.LoanType.TAKEN), "nft": nft}
