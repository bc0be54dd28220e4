from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple
import logging

from khata.core.blockchain import ContractGateway, bytes32_to_hex
from khata.core.currency import date_to_unix, now_unix, to_native_units
from khata.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from khata.modules.loans.models import Loan, LoanStatus, can_transition
from khata.modules.loans import schemas
from khata.modules.nft.schemas import MintResult
from khata.modules.nft.services import AchievementMinter
from khata.modules.partners.services import PartnerService
from khata.modules.users.services import UserService

logger = logging.getLogger(__name__)


async def get_loan(db: AsyncSession, loan_id: str, *criteria: Any) -> Optional[Loan]:
    """Fresh copy of a loan (bypasses the identity map)"""
    result = await db.execute(
        select(Loan)
        .where(Loan.id == loan_id, *criteria)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def transition_loan(
    db: AsyncSession,
    loan_id: str,
    current: LoanStatus,
    target: LoanStatus,
    *criteria: Any,
    **values: Any,
) -> Optional[Loan]:
    """
    Compare-and-swap a loan from ``current`` to ``target``.

    The expected status is part of the UPDATE filter, so of two concurrent
    attempts only one matches a row. Returns None when nothing matched.
    """
    if not can_transition(current, target):
        raise ValueError(f"Illegal loan transition {current.value} -> {target.value}")

    result = await db.execute(
        update(Loan)
        .where(Loan.id == loan_id, Loan.status == current, *criteria)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None

    await db.commit()
    logger.info(f"Loan {loan_id}: {current.value} -> {target.value}")
    return await get_loan(db, loan_id)


def to_loan_response(loan: Loan, loan_type: Optional[schemas.LoanType] = None) -> schemas.LoanResponse:
    response = schemas.LoanResponse.model_validate(loan)
    response.loan_type = loan_type
    return response


class LoanService:
    """Loan creation, partner decisions and role-scoped views"""

    @staticmethod
    async def create_loan(db: AsyncSession, data: schemas.LoanCreateRequest) -> Loan:
        """Insert a pending loan; the partner id must be in the owner's list"""
        owner = await UserService.resolve_by_wallet(db, data.owner_wallet, role="Owner user")

        link = await PartnerService.get_owner_partner(db, owner, data.partner_id)
        if not link:
            raise NotFoundError("Partner not found for this owner")

        loan = Loan(
            owner_user_id=owner.id,
            partner_user_id=link.partner_user_id,
            amount=data.amount,
            description=data.description,
            loan_date=data.loan_date,
            expected_return_date=data.expected_return_date,
            tx_hash=None,
            status=LoanStatus.PENDING,
            owner_wallet_address=owner.wallet_address,
            partner_wallet_address=link.partner_user.wallet_address,
        )
        db.add(loan)
        await db.commit()

        logger.info(f"Loan {loan.id} created: {owner.username} -> {link.partner_user.username}, {data.amount} PKR")
        return await get_loan(db, loan.id)

    @staticmethod
    async def decide(db: AsyncSession, data: schemas.LoanDecisionRequest) -> Tuple[Loan, bool]:
        """
        Partner accepts or rejects a pending loan.

        Returns the updated loan and whether the owner now has to record it
        on-chain.
        """
        partner = await UserService.resolve_by_wallet(db, data.partner_wallet, role="Partner user")

        loan = await get_loan(db, data.loan_id)
        if not loan:
            raise NotFoundError("Loan not found")

        if loan.partner_user_id != partner.id:
            logger.warning(f"Partner {partner.id} tried to decide loan {loan.id} owned by another partner")
            raise ForbiddenError("You don't have permission to update this loan")

        if loan.status != LoanStatus.PENDING:
            raise ConflictError(f"Loan already {LoanStatus(loan.status).value}", status_code=400)

        values = {}
        if data.action == schemas.DecisionAction.ACCEPT:
            target = LoanStatus.ACCEPTED
            # Snapshot wallets now in case they were set after creation
            values["owner_wallet_address"] = loan.owner.wallet_address
            values["partner_wallet_address"] = partner.wallet_address
        else:
            target = LoanStatus.REJECTED

        updated = await transition_loan(
            db, loan.id, LoanStatus.PENDING, target, Loan.partner_user_id == partner.id, **values
        )
        if not updated:
            raise NotFoundError("Loan not found or already decided")

        return updated, target == LoanStatus.ACCEPTED

    @staticmethod
    async def _loans_for(db: AsyncSession, *criteria: Any) -> List[Loan]:
        result = await db.execute(
            select(Loan).where(and_(*criteria)).order_by(Loan.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_loans(
        db: AsyncSession,
        owner_wallet: Optional[str] = None,
        partner_wallet: Optional[str] = None,
    ) -> schemas.LoanListResponse:
        """
        Loans given (as owner) and taken (as partner) with totals.

        Given loans count toward the total only once accepted; taken loans
        count while accepted or waiting on payment.
        """
        if not owner_wallet and not partner_wallet:
            raise ValidationError("ownerWallet or partnerWallet is required")

        loans_given: List[Loan] = []
        loans_taken: List[Loan] = []

        if owner_wallet:
            owner = await UserService.find_by_wallet(db, owner_wallet)
            if owner:
                loans_given = await LoanService._loans_for(db, Loan.owner_user_id == owner.id)

        if partner_wallet:
            partner = await UserService.find_by_wallet(db, partner_wallet)
            if partner:
                loans_taken = await LoanService._loans_for(db, Loan.partner_user_id == partner.id)

        total_given = sum(
            loan.amount for loan in loans_given if loan.status == LoanStatus.ACCEPTED
        )
        total_taken = sum(
            loan.amount for loan in loans_taken
            if loan.status in (LoanStatus.ACCEPTED, LoanStatus.WAITING_ON_PAYMENT)
        )

        return schemas.LoanListResponse(
            loans_given=[to_loan_response(loan, schemas.LoanType.GIVEN) for loan in loans_given],
            loans_taken=[to_loan_response(loan, schemas.LoanType.TAKEN) for loan in loans_taken],
            total_loan_given=total_given,
            total_loan_taken=total_taken,
        )

    @staticmethod
    async def list_pending(db: AsyncSession, partner_wallet: str) -> List[Loan]:
        """Loans waiting for this partner's accept/reject"""
        partner = await UserService.resolve_by_wallet(db, partner_wallet, role="Partner user")
        return await LoanService._loans_for(
            db, Loan.partner_user_id == partner.id, Loan.status == LoanStatus.PENDING
        )

    @staticmethod
    async def list_awaiting_payment(db: AsyncSession, partner_wallet: str) -> List[Loan]:
        """Loans recorded on-chain that this partner still has to pay"""
        partner = await UserService.resolve_by_wallet(db, partner_wallet, role="Partner user")
        return await LoanService._loans_for(
            db, Loan.partner_user_id == partner.id, Loan.status == LoanStatus.WAITING_ON_PAYMENT
        )


class RecordingService:
    """Bridges an accepted loan to LoanLedger.recordLoan and back"""

    def __init__(
        self,
        db: AsyncSession,
        ledger: Optional[ContractGateway] = None,
        exchange_rate: float = 0.000003,
        native_decimals: int = 18,
    ):
        self.db = db
        self.ledger = ledger
        self.exchange_rate = exchange_rate
        self.native_decimals = native_decimals

    async def prepare_recording(self, loan_id: str, owner_wallet: str) -> schemas.OnchainTerms:
        """
        Terms for the owner's recordLoan call.

        Missing, not-accepted and not-yours all answer the same 404.
        """
        owner = await UserService.resolve_by_wallet(self.db, owner_wallet, role="Owner user")

        loan = await get_loan(
            self.db, loan_id, Loan.owner_user_id == owner.id, Loan.status == LoanStatus.ACCEPTED
        )
        if not loan:
            raise NotFoundError("Loan not found or not accepted")

        return schemas.OnchainTerms(
            id=loan.id,
            owner_wallet=loan.owner.wallet_address,
            partner_wallet=loan.partner.wallet_address,
            amount=loan.amount,
            amount_native=str(to_native_units(loan.amount, self.exchange_rate, self.native_decimals)),
            description=loan.description or "",
            loan_date=date_to_unix(loan.loan_date, default=now_unix()),
            # TODO: confirm with product whether an unset return date should stay 0 on-chain
            expected_return_date=date_to_unix(loan.expected_return_date, default=0),
        )

    async def confirm_recording(
        self,
        loan_id: str,
        tx_hash: str,
        onchain_loan_id: Optional[str] = None,
    ) -> Loan:
        """Store the recording tx and move the loan to waiting on payment"""
        loan = await get_loan(self.db, loan_id, Loan.status == LoanStatus.ACCEPTED)
        if not loan:
            raise NotFoundError("Loan not found or not in accepted status")

        if onchain_loan_id is None and self.ledger is not None:
            onchain_loan_id = await self._onchain_id_from_receipt(tx_hash)

        values = {"tx_hash": tx_hash}
        if onchain_loan_id:
            values["onchain_loan_id"] = onchain_loan_id

        try:
            updated = await transition_loan(
                self.db, loan_id, LoanStatus.ACCEPTED, LoanStatus.WAITING_ON_PAYMENT, **values
            )
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("On-chain loan id is already linked to another loan")

        if not updated:
            raise NotFoundError("Loan not found or not in accepted status")
        return updated

    async def _onchain_id_from_receipt(self, tx_hash: str) -> Optional[str]:
        """loanId from the LoanRecorded event of ``tx_hash``, if readable"""
        try:
            receipt = await self.ledger.get_receipt(tx_hash)
            events = self.ledger.decode_events("LoanRecorded", receipt)
        except Exception as e:
            logger.warning(f"Could not read LoanRecorded event from {tx_hash}: {str(e)}")
            return None

        if not events:
            logger.warning(f"No LoanRecorded event in {tx_hash}")
            return None
        return bytes32_to_hex(events[0]["loanId"])


class PaymentService:
    """Confirms repayment and triggers the achievement NFT"""

    def __init__(
        self,
        db: AsyncSession,
        minter: Optional[AchievementMinter] = None,
        exchange_rate: float = 0.000003,
        native_decimals: int = 18,
    ):
        self.db = db
        self.minter = minter
        self.exchange_rate = exchange_rate
        self.native_decimals = native_decimals

    def _native_amount(self, loan: Loan) -> int:
        return to_native_units(loan.amount, self.exchange_rate, self.native_decimals)

    async def get_payment_details(self, loan_id: str, partner_wallet: str) -> schemas.PaymentDetails:
        """Arguments the partner needs for payLoan"""
        partner = await UserService.resolve_by_wallet(self.db, partner_wallet, role="Partner user")

        loan = await get_loan(
            self.db,
            loan_id,
            Loan.partner_user_id == partner.id,
            Loan.status == LoanStatus.WAITING_ON_PAYMENT,
        )
        if not loan:
            raise NotFoundError("Loan not found or not ready for payment")

        if not loan.onchain_loan_id:
            raise ConflictError("Loan has not been recorded on-chain yet", status_code=400)

        return schemas.PaymentDetails(
            id=loan.id,
            onchain_loan_id=loan.onchain_loan_id,
            amount=loan.amount,
            amount_native=str(self._native_amount(loan)),
            owner_wallet=loan.owner_wallet_address or loan.owner.wallet_address,
            partner_wallet=loan.partner_wallet_address or loan.partner.wallet_address,
            description=loan.description or "",
        )

    async def confirm_payment(
        self, loan_id: str, partner_wallet: str, tx_hash: str
    ) -> Tuple[Loan, Optional[MintResult]]:
        """
        Mark the loan paid back, then try to mint the achievement NFT.

        The paid-back status is committed before minting; a minting failure
        is logged and reported as ``None``.
        """
        partner = await UserService.resolve_by_wallet(self.db, partner_wallet, role="Partner user")

        loan = await transition_loan(
            self.db,
            loan_id,
            LoanStatus.WAITING_ON_PAYMENT,
            LoanStatus.PAID_BACK,
            Loan.partner_user_id == partner.id,
            paid_back_date=datetime.now(timezone.utc),
            payment_tx_hash=tx_hash,
        )
        if not loan:
            raise NotFoundError("Loan not found or not in waiting on payment status")

        logger.info(
            f"Payment received for loan {loan.id}: {loan.amount} PKR "
            f"from {partner.wallet_address} to {loan.owner_wallet_address}, tx {tx_hash}"
        )

        nft = await self._mint_achievement(loan, partner.wallet_address)
        return loan, nft

    async def _mint_achievement(self, loan: Loan, recipient: str) -> Optional[MintResult]:
        if not loan.onchain_loan_id:
            logger.warning(f"Loan {loan.id} has no on-chain id, skipping achievement NFT")
            return None
        if self.minter is None:
            logger.warning("Achievement minting not configured, skipping NFT")
            return None

        try:
            result = await self.minter.mint(recipient, loan.onchain_loan_id, self._native_amount(loan))
        except Exception as e:
            logger.exception(f"Failed to mint achievement NFT for loan {loan.id}: {str(e)}")
            return None

        logger.info(f"Achievement NFT {result.token_id} for loan {loan.id}")
        return result
