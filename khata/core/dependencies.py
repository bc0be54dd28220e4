"""
Collaborators built from settings.

This is the only place that reads configuration for services; everything
below it receives plain values and objects through its constructor.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from functools import lru_cache
from typing import Optional
import logging

from openai import AsyncOpenAI

from khata.core.abi import ACHIEVEMENT_NFT_ABI, LOAN_LEDGER_ABI
from khata.core.blockchain import ContractGateway, LocalKeySigner, TransactionSigner, build_gateway
from khata.core.config import settings
from khata.core.database import get_db
from khata.core.exceptions import MisconfigurationError
from khata.modules.loans.services import PaymentService, RecordingService
from khata.modules.nft.services import AchievementMetadataService, AchievementMinter
from khata.modules.voice.services import LoanInfoExtractor, TranscriptionClient

logger = logging.getLogger(__name__)


@lru_cache()
def get_ledger_gateway() -> Optional[ContractGateway]:
    """LoanLedger contract, None when LOAN_LEDGER_CONTRACT is unset"""
    return build_gateway(
        settings.CHAIN_RPC_URL,
        settings.loan_ledger_address,
        LOAN_LEDGER_ABI,
        name="LoanLedger",
        timeout=settings.CHAIN_RPC_TIMEOUT_SECONDS,
        receipt_timeout=settings.RECEIPT_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_nft_gateway() -> Optional[ContractGateway]:
    """Achievement NFT contract, None when NFT_CONTRACT_ADDRESS is unset"""
    return build_gateway(
        settings.CHAIN_RPC_URL,
        settings.nft_contract_address,
        ACHIEVEMENT_NFT_ABI,
        name="LoanAchievementNFT",
        timeout=settings.CHAIN_RPC_TIMEOUT_SECONDS,
        receipt_timeout=settings.RECEIPT_TIMEOUT_SECONDS,
    )


def get_signer() -> Optional[TransactionSigner]:
    if not settings.NFT_MINTER_PRIVATE_KEY.strip():
        return None
    return LocalKeySigner(settings.NFT_MINTER_PRIVATE_KEY)


def get_achievement_minter(
    contract: Optional[ContractGateway] = Depends(get_nft_gateway),
    signer: Optional[TransactionSigner] = Depends(get_signer)
) -> AchievementMinter:
    return AchievementMinter(contract, signer)


def get_metadata_service(
    nft_contract: Optional[ContractGateway] = Depends(get_nft_gateway),
    ledger_contract: Optional[ContractGateway] = Depends(get_ledger_gateway)
) -> AchievementMetadataService:
    return AchievementMetadataService(
        nft_contract,
        ledger_contract,
        exchange_rate=settings.PKR_TO_NATIVE_RATE,
        native_decimals=settings.NATIVE_DECIMALS,
        app_url=settings.APP_URL,
    )


def get_recording_ledger() -> Optional[ContractGateway]:
    """LoanLedger used to read LoanRecorded events; bad settings only disable the lookup"""
    try:
        return get_ledger_gateway()
    except MisconfigurationError as e:
        logger.error(f"LoanRecorded lookup disabled: {e.detail}")
        return None


def get_recording_service(
    db: AsyncSession = Depends(get_db),
    ledger: Optional[ContractGateway] = Depends(get_recording_ledger)
) -> RecordingService:
    return RecordingService(
        db,
        ledger=ledger,
        exchange_rate=settings.PKR_TO_NATIVE_RATE,
        native_decimals=settings.NATIVE_DECIMALS,
    )


def get_payment_minter() -> AchievementMinter:
    """Minter used after repayment; bad NFT settings only disable minting"""
    try:
        return AchievementMinter(get_nft_gateway(), get_signer())
    except MisconfigurationError as e:
        logger.error(f"Achievement minting disabled: {e.detail}")
        return AchievementMinter(None, None)


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    minter: AchievementMinter = Depends(get_payment_minter)
) -> PaymentService:
    return PaymentService(
        db,
        minter=minter,
        exchange_rate=settings.PKR_TO_NATIVE_RATE,
        native_decimals=settings.NATIVE_DECIMALS,
    )


def get_transcriber() -> TranscriptionClient:
    return TranscriptionClient(
        api_key=settings.UPLIFT_AI_API_KEY,
        url=settings.UPLIFT_AI_URL,
        max_bytes=settings.TRANSCRIBE_MAX_BYTES,
        timeout=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS,
    )


def get_extractor() -> LoanInfoExtractor:
    client = None
    if settings.OPENAI_API_KEY:
        client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS)
    return LoanInfoExtractor(client, settings.OPENAI_MODEL)
