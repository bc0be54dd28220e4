from datetime import datetime, timezone
from typing import Optional
import base64
import logging

from web3 import Web3

from khata.core.blockchain import (
    CHAIN_PROVIDER, ZERO_BYTES32, ContractGateway, TransactionSigner,
    bytes32_to_hex, normalize_bytes32,
)
from khata.core.currency import from_native_units
from khata.core.exceptions import MisconfigurationError, NotFoundError, UpstreamError, ValidationError
from khata.modules.nft import schemas
from khata.modules.users.schemas import normalize_wallet

logger = logging.getLogger(__name__)


def _loan_id_bytes(loan_id: str) -> bytes:
    try:
        return bytes.fromhex(normalize_bytes32(loan_id)[2:])
    except ValueError:
        raise ValidationError("loanId must be a 32-byte hex string")


class AchievementMinter:
    """
    Mints one achievement NFT per on-chain loan.

    Minting is idempotent: if the NFT contract already holds a token for the
    loan, that token is returned and nothing is submitted.
    """

    def __init__(self, contract: Optional[ContractGateway], signer: Optional[TransactionSigner]):
        self.contract = contract
        self.signer = signer

    async def mint(self, recipient: str, loan_id: str, amount: int) -> schemas.MintResult:
        if self.contract is None:
            raise MisconfigurationError("NFT contract not configured. Please set NFT_CONTRACT_ADDRESS")

        loan_bytes = _loan_id_bytes(loan_id)

        if await self.contract.call("hasAchievement", loan_bytes):
            token_id = await self.contract.call("getTokenIdForLoan", loan_bytes)
            logger.info(f"Achievement for loan {loan_id} already minted as token {token_id}")
            return schemas.MintResult(
                token_id=str(token_id),
                already_minted=True,
                message="NFT already minted for this loan",
            )

        if self.signer is None:
            raise MisconfigurationError("NFT_MINTER_PRIVATE_KEY not configured. Cannot mint NFTs server-side.")

        try:
            recipient_address = Web3.to_checksum_address(normalize_wallet(recipient))
        except ValueError:
            raise ValidationError(f"Invalid recipient address: {recipient}")

        receipt = await self.contract.transact(
            self.signer, "mintAchievement", recipient_address, loan_bytes, amount
        )
        tx_hash = bytes32_to_hex(receipt["transactionHash"])
        if receipt.get("status") != 1:
            raise UpstreamError(CHAIN_PROVIDER, "Transaction failed", {"transactionHash": tx_hash})

        token_id = await self.contract.call("getTokenIdForLoan", loan_bytes)
        return schemas.MintResult(
            token_id=str(token_id),
            transaction_hash=tx_hash,
            message="Achievement NFT minted successfully!",
        )


def _format_unix_date(value: int) -> str:
    if not value:
        return "Not set"
    return datetime.fromtimestamp(value, tz=timezone.utc).date().isoformat()


def render_badge_svg(amount_pkr: int, date_label: str) -> str:
    return (
        '<svg width="500" height="500" xmlns="http://www.w3.org/2000/svg">'
        '<defs><linearGradient id="bg" x1="0%" y1="0%" x2="100%" y2="100%">'
        '<stop offset="0%" stop-color="#667eea"/><stop offset="100%" stop-color="#764ba2"/>'
        '</linearGradient></defs>'
        '<rect width="500" height="500" fill="url(#bg)"/>'
        '<rect x="50" y="80" width="400" height="340" rx="30" fill="rgba(255,255,255,0.15)"/>'
        '<text x="250" y="230" font-family="Arial, sans-serif" font-size="36" font-weight="bold" '
        'fill="white" text-anchor="middle">Loan Repaid</text>'
        '<text x="250" y="300" font-family="Arial, sans-serif" font-size="28" font-weight="bold" '
        f'fill="#FFD700" text-anchor="middle">{amount_pkr:,} PKR</text>'
        '<text x="250" y="350" font-family="Arial, sans-serif" font-size="18" '
        f'fill="white" text-anchor="middle">{date_label}</text>'
        '<text x="250" y="400" font-family="Arial, sans-serif" font-size="14" '
        'fill="white" text-anchor="middle" letter-spacing="1">ACHIEVEMENT NFT</text>'
        '</svg>'
    )


class AchievementMetadataService:
    """Builds ERC-721 metadata for a token from the NFT and ledger contracts"""

    def __init__(
        self,
        nft_contract: Optional[ContractGateway],
        ledger_contract: Optional[ContractGateway],
        exchange_rate: float,
        native_decimals: int,
        app_url: str,
    ):
        self.nft_contract = nft_contract
        self.ledger_contract = ledger_contract
        self.exchange_rate = exchange_rate
        self.native_decimals = native_decimals
        self.app_url = app_url.rstrip("/")

    def _to_pkr(self, amount: int) -> int:
        try:
            return from_native_units(amount, self.exchange_rate, self.native_decimals)
        except ValueError as e:
            raise MisconfigurationError(f"PKR_TO_NATIVE_RATE is invalid: {e}")

    async def get_metadata(self, token_id: int) -> schemas.AchievementMetadata:
        if token_id <= 0:
            raise ValidationError("Invalid token ID")
        if self.nft_contract is None or self.ledger_contract is None:
            raise MisconfigurationError("NFT or LoanLedger contract not configured")

        loan_id = bytes32_to_hex(await self.nft_contract.call("tokenIdToLoan", token_id))
        if loan_id == ZERO_BYTES32:
            raise NotFoundError("Token not found")

        # LoanRecord(owner, partner, amount, timestamp, description, loanDate, expectedReturnDate)
        record = await self.ledger_contract.call("getLoan", bytes.fromhex(loan_id[2:]))
        owner, partner, amount, timestamp, description, loan_date, expected_return_date = record
        holder = await self.nft_contract.call("ownerOf", token_id)

        amount_pkr = self._to_pkr(amount)
        loan_date_label = _format_unix_date(loan_date)
        svg = render_badge_svg(amount_pkr, loan_date_label)

        return schemas.AchievementMetadata(
            name=f"Loan Repayment Achievement #{token_id}",
            description=(
                f"Achievement NFT for successfully repaying a loan of {amount_pkr:,} PKR. "
                "It stands for trust, responsibility and honoring financial obligations."
            ),
            image="data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii"),
            external_url=f"{self.app_url}/nft/{token_id}",
            attributes=[
                schemas.MetadataAttribute(trait_type="Loan Amount", value=f"{amount_pkr} PKR"),
                schemas.MetadataAttribute(trait_type="Loan Date", value=loan_date_label),
                schemas.MetadataAttribute(trait_type="Expected Return Date", value=_format_unix_date(expected_return_date)),
                schemas.MetadataAttribute(trait_type="Repayment Date", value=_format_unix_date(timestamp)),
                schemas.MetadataAttribute(trait_type="Owner Address", value=owner),
                schemas.MetadataAttribute(trait_type="Partner Address", value=partner),
                schemas.MetadataAttribute(trait_type="Loan ID", value=loan_id),
            ],
            properties={
                "loanId": loan_id,
                "owner": owner,
                "partner": partner,
                "holder": holder,
                "amount": str(amount_pkr),
                "description": description or "No description",
            },
        )

    async def list_achievements(self, wallet_address: str) -> schemas.AchievementListResponse:
        """
        Achievement tokens currently held by a wallet.

        The contract is not enumerable, so token ids 1..totalSupply are walked
        with ``ownerOf`` until the wallet's ``balanceOf`` is accounted for.
        Loan amount and date are filled in only when the LoanLedger is configured.
        """
        if self.nft_contract is None:
            raise MisconfigurationError("NFT contract not configured. Please set NFT_CONTRACT_ADDRESS")

        wallet = normalize_wallet(wallet_address)
        try:
            checksummed = Web3.to_checksum_address(wallet)
        except ValueError:
            raise ValidationError(f"Invalid wallet address: {wallet_address}")

        balance = await self.nft_contract.call("balanceOf", checksummed)
        if not balance:
            return schemas.AchievementListResponse(wallet_address=wallet, achievements=[])

        total_supply = await self.nft_contract.call("totalSupply")
        token_ids = []
        for token_id in range(1, total_supply + 1):
            try:
                holder = await self.nft_contract.call("ownerOf", token_id)
            except UpstreamError:
                logger.warning(f"Skipping token {token_id}: ownerOf reverted")
                continue
            if holder.lower() == wallet:
                token_ids.append(token_id)
                if len(token_ids) == balance:
                    break

        achievements = []
        for token_id in token_ids:
            loan_id = bytes32_to_hex(await self.nft_contract.call("tokenIdToLoan", token_id))
            summary = schemas.AchievementSummary(
                token_id=str(token_id),
                token_uri=await self.nft_contract.call("tokenURI", token_id),
                loan_id=loan_id,
                metadata_path=f"/nft/metadata/{token_id}",
            )
            if self.ledger_contract is not None:
                record = await self.ledger_contract.call("getLoan", bytes.fromhex(loan_id[2:]))
                summary.loan_amount = self._to_pkr(record[2])
                summary.loan_date = _format_unix_date(record[5])
            achievements.append(summary)

        return schemas.AchievementListResponse(wallet_address=wallet, achievements=achievements)


def metadata_base_uri(api_url: str) -> str:
    """Base URI the NFT contract prefixes to token ids; it resolves to GET /nft/metadata/{id}"""
    return f"{api_url.rstrip('/')}/nft/metadata"


async def read_base_uri(contract: ContractGateway) -> str:
    return await contract.call("baseTokenURI")


async def update_base_uri(
    contract: ContractGateway,
    signer: TransactionSigner,
    base_uri: str,
) -> schemas.BaseUriUpdate:
    """
    Point the contract's ``baseTokenURI`` at ``base_uri``.

    Nothing is submitted when the contract already has that value. The
    signer must be the contract owner.
    """
    current = await read_base_uri(contract)
    if current == base_uri:
        logger.info(f"Base URI already set to {base_uri}")
        return schemas.BaseUriUpdate(previous=current, current=current, changed=False)

    receipt = await contract.transact(signer, "setBaseTokenURI", base_uri)
    tx_hash = bytes32_to_hex(receipt["transactionHash"])
    if receipt.get("status") != 1:
        raise UpstreamError(CHAIN_PROVIDER, "Transaction failed", {"transactionHash": tx_hash})

    updated = await read_base_uri(contract)
    logger.info(f"Base URI changed from {current} to {updated} in tx {tx_hash}")
    return schemas.BaseUriUpdate(previous=current, current=updated, changed=True, transaction_hash=tx_hash)
