"""
Test configuration and fixtures for the khata ledger tests.
"""
import pytest
from typing import AsyncGenerator
from datetime import date

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from khata.core.database import Base, get_db
from khata.core.dependencies import (
    get_ledger_gateway, get_nft_gateway, get_payment_minter, get_recording_ledger, get_signer,
)
from khata.core.exceptions import UpstreamError
from khata.modules.loans.models import Loan, LoanStatus
from khata.modules.nft.services import AchievementMinter
from khata.modules.partners.models import PartnerLink
from khata.modules.users.models import User
from main import app


# ============================================================
# Database Fixtures
# ============================================================

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OWNER_WALLET = "0x" + "a1" * 20
PARTNER_WALLET = "0x" + "b2" * 20
STRANGER_WALLET = "0x" + "c3" * 20
ONCHAIN_LOAN_ID = "0x" + "de" * 32


@pytest.fixture
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for each test"""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# ============================================================
# Blockchain Fakes
# ============================================================

class FakeSigner:
    """Stands in for LocalKeySigner; transactions are never really signed"""
    address = "0x" + "11" * 20

    def sign_transaction(self, transaction):
        return b"signed"


class FakeNFTContract:
    """In-memory achievement NFT contract with the ContractGateway surface"""

    def __init__(self):
        self.tokens = {}
        self.owners = {}
        self.mints = []
        self.fail_with = None
        self.base_uri = ""
        self.base_uri_updates = []

    async def call(self, function_name, *args):
        if function_name == "hasAchievement":
            return args[0] in self.tokens
        if function_name == "getTokenIdForLoan":
            return self.tokens.get(args[0], 0)
        if function_name == "tokenIdToLoan":
            for loan_id, token_id in self.tokens.items():
                if token_id == args[0]:
                    return loan_id
            return b"\x00" * 32
        if function_name == "ownerOf":
            if args[0] not in self.owners:
                raise UpstreamError("blockchain", "LoanAchievementNFT.ownerOf call failed", "ERC721NonexistentToken")
            return self.owners[args[0]]
        if function_name == "balanceOf":
            return sum(1 for holder in self.owners.values() if holder.lower() == args[0].lower())
        if function_name == "totalSupply":
            return max(self.owners, default=0)
        if function_name == "tokenURI":
            return f"{self.base_uri}/{args[0]}"
        if function_name == "baseTokenURI":
            return self.base_uri
        raise AssertionError(f"unexpected call {function_name}")

    async def transact(self, signer, function_name, *args, value=0):
        if self.fail_with is not None:
            raise self.fail_with
        if function_name == "setBaseTokenURI":
            self.base_uri = args[0]
            self.base_uri_updates.append((signer.address, args[0]))
            return {"status": 1, "transactionHash": bytes.fromhex("cd" * 32)}
        assert function_name == "mintAchievement"
        recipient, loan_id, amount = args
        token_id = len(self.tokens) + 1
        self.tokens[loan_id] = token_id
        self.owners[token_id] = recipient
        self.mints.append((recipient, loan_id, amount))
        return {"status": 1, "transactionHash": bytes.fromhex("ab" * 32)}


class FakeLedgerContract:
    """In-memory LoanLedger with a canned LoanRecorded event and loan records"""

    def __init__(self):
        self.recorded_loan_id = None
        self.records = {}
        self.receipts_requested = []

    async def call(self, function_name, *args):
        assert function_name == "getLoan"
        return self.records[args[0]]

    async def get_receipt(self, tx_hash):
        self.receipts_requested.append(tx_hash)
        return {"transactionHash": tx_hash, "logs": []}

    def decode_events(self, event_name, receipt):
        assert event_name == "LoanRecorded"
        if self.recorded_loan_id is None:
            return []
        return [{"loanId": bytes.fromhex(self.recorded_loan_id[2:])}]


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def nft_contract():
    return FakeNFTContract()


@pytest.fixture
def ledger_contract():
    return FakeLedgerContract()


@pytest.fixture
def minter(nft_contract, signer):
    return AchievementMinter(nft_contract, signer)


# ============================================================
# Client Fixtures
# ============================================================

@pytest.fixture
async def client(db_session, nft_contract, ledger_contract, signer, minter) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and chain overrides"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_nft_gateway] = lambda: nft_contract
    app.dependency_overrides[get_ledger_gateway] = lambda: ledger_contract
    app.dependency_overrides[get_recording_ledger] = lambda: ledger_contract
    app.dependency_overrides[get_signer] = lambda: signer
    app.dependency_overrides[get_payment_minter] = lambda: minter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# User Fixtures
# ============================================================

async def create_user(db_session, username, wallet_address, name=None):
    user = User(
        name=name or username.title(),
        store_name=f"{username.title()} Kiryana Store",
        username=username,
        email=f"{username}@example.com",
        wallet_address=wallet_address,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def owner(db_session):
    """Shopkeeper who lends"""
    return await create_user(db_session, "akram", OWNER_WALLET, name="Akram Khan")


@pytest.fixture
async def partner(db_session):
    """Shopkeeper who borrows"""
    return await create_user(db_session, "bilal", PARTNER_WALLET, name="Bilal Ahmed")


@pytest.fixture
async def stranger(db_session):
    return await create_user(db_session, "chaudhry", STRANGER_WALLET)


@pytest.fixture
async def partner_link(db_session, owner, partner):
    link = PartnerLink(owner_user_id=owner.id, partner_user_id=partner.id)
    db_session.add(link)
    await db_session.commit()
    await db_session.refresh(link)
    return link


# ============================================================
# Loan Fixtures
# ============================================================

async def create_loan(db_session, owner, partner, status=LoanStatus.PENDING, amount=1000, **fields):
    values = {
        "owner_wallet_address": owner.wallet_address,
        "partner_wallet_address": partner.wallet_address,
        "description": "Atta and sugar",
        "loan_date": date(2025, 3, 1),
    }
    values.update(fields)
    loan = Loan(
        owner_user_id=owner.id,
        partner_user_id=partner.id,
        amount=amount,
        status=status,
        **values
    )
    db_session.add(loan)
    await db_session.commit()
    await db_session.refresh(loan)
    return loan


@pytest.fixture
async def pending_loan(db_session, owner, partner, partner_link):
    return await create_loan(db_session, owner, partner)


@pytest.fixture
async def accepted_loan(db_session, owner, partner, partner_link):
    return await create_loan(db_session, owner, partner, status=LoanStatus.ACCEPTED)


@pytest.fixture
async def waiting_loan(db_session, owner, partner, partner_link):
    return await create_loan(
        db_session, owner, partner,
        status=LoanStatus.WAITING_ON_PAYMENT,
        tx_hash="0x" + "12" * 32,
        onchain_loan_id=ONCHAIN_LOAN_ID,
    )
