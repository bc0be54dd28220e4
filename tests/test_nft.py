"""
Tests for achievement minting and token metadata
"""
import base64

import pytest

from khata.core.blockchain import LocalKeySigner
from khata.core.dependencies import get_signer
from khata.core.exceptions import MisconfigurationError, NotFoundError, UpstreamError, ValidationError
from khata.modules.nft.services import (
    AchievementMetadataService, AchievementMinter, metadata_base_uri, update_base_uri,
)
from main import app
from scripts import nft_base_uri
from tests.conftest import OWNER_WALLET, PARTNER_WALLET

LOAN_ID = "0x" + "de" * 32
LOAN_BYTES = bytes.fromhex("de" * 32)


class TestAchievementMinter:
    """Tests for AchievementMinter.mint"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mint_is_idempotent(self, minter, nft_contract):
        """Same loan id twice gives the same token, flagged the second time"""
        first = await minter.mint(PARTNER_WALLET, LOAN_ID, 3000)
        second = await minter.mint(PARTNER_WALLET, LOAN_ID[2:], 3000)

        assert first.token_id == second.token_id == "1"
        assert first.already_minted is False
        assert first.transaction_hash == "0x" + "ab" * 32
        assert second.already_minted is True
        assert second.transaction_hash == ""
        assert len(nft_contract.mints) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_contract_is_misconfiguration(self, signer):
        with pytest.raises(MisconfigurationError) as exc_info:
            await AchievementMinter(None, signer).mint(PARTNER_WALLET, LOAN_ID, 1)

        assert exc_info.value.status_code == 500

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_key_is_misconfiguration(self, nft_contract):
        with pytest.raises(MisconfigurationError):
            await AchievementMinter(nft_contract, None).mint(PARTNER_WALLET, LOAN_ID, 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_short_loan_id_is_rejected(self, minter):
        with pytest.raises(ValidationError):
            await minter.mint(PARTNER_WALLET, "0x1234", 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_bad_recipient_is_rejected(self, minter):
        with pytest.raises(ValidationError):
            await minter.mint("not-a-wallet", LOAN_ID, 1)


class TestLocalKeySigner:
    """Tests for minter key handling"""

    @pytest.mark.unit
    def test_key_without_prefix_is_accepted(self):
        signer = LocalKeySigner("  " + "4c" * 32 + "\n")

        assert signer.address.startswith("0x")
        assert len(signer.address) == 42

    @pytest.mark.unit
    def test_wrong_length_is_misconfiguration(self):
        with pytest.raises(MisconfigurationError):
            LocalKeySigner("0x1234")


class TestMintAPI:
    """Tests for POST /nft/mint"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_mint_twice(self, client):
        payload = {"recipientAddress": PARTNER_WALLET, "loanId": LOAN_ID, "amount": "3000000000000000"}

        first = await client.post("/nft/mint", json=payload)
        second = await client.post("/nft/mint", json=payload)

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert first.json()["tokenId"] == "1"
        assert first.json()["alreadyMinted"] is False
        assert second.json()["tokenId"] == "1"
        assert second.json()["alreadyMinted"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_without_key_is_500(self, client):
        app.dependency_overrides[get_signer] = lambda: None

        response = await client.post(
            "/nft/mint", json={"recipientAddress": PARTNER_WALLET, "loanId": LOAN_ID, "amount": 1}
        )

        assert response.status_code == 500
        assert "NFT_MINTER_PRIVATE_KEY" in response.json()["detail"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_negative_amount_is_400(self, client):
        response = await client.post(
            "/nft/mint", json={"recipientAddress": PARTNER_WALLET, "loanId": LOAN_ID, "amount": -5}
        )

        assert response.status_code == 400


class TestMetadata:
    """Tests for token metadata"""

    @pytest.fixture
    def recorded_token(self, nft_contract, ledger_contract):
        nft_contract.tokens[LOAN_BYTES] = 7
        nft_contract.owners[7] = PARTNER_WALLET
        # owner, partner, amount, timestamp, description, loanDate, expectedReturnDate
        ledger_contract.records[LOAN_BYTES] = (
            OWNER_WALLET, PARTNER_WALLET, 3000000000000000, 1741219200, "Atta and sugar", 1740787200, 0,
        )
        return 7

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_metadata_document(self, nft_contract, ledger_contract, recorded_token):
        service = AchievementMetadataService(
            nft_contract, ledger_contract, exchange_rate=0.000003, native_decimals=18, app_url="https://khata.app/"
        )

        metadata = await service.get_metadata(recorded_token)

        assert metadata.name == "Loan Repayment Achievement #7"
        assert metadata.external_url == "https://khata.app/nft/7"
        assert metadata.image.startswith("data:image/svg+xml;base64,")
        svg = base64.b64decode(metadata.image.split(",", 1)[1]).decode("utf-8")
        assert "1,000 PKR" in svg
        attributes = {attribute.trait_type: attribute.value for attribute in metadata.attributes}
        assert attributes["Loan Amount"] == "1000 PKR"
        assert attributes["Loan Date"] == "2025-03-01"
        assert attributes["Expected Return Date"] == "Not set"
        assert attributes["Loan ID"] == LOAN_ID
        assert metadata.properties["holder"] == PARTNER_WALLET

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_token_is_not_found(self, nft_contract, ledger_contract):
        service = AchievementMetadataService(nft_contract, ledger_contract, 0.000003, 18, "https://khata.app")

        with pytest.raises(NotFoundError):
            await service.get_metadata(99)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unconfigured_contracts(self, nft_contract):
        service = AchievementMetadataService(nft_contract, None, 0.000003, 18, "https://khata.app")

        with pytest.raises(MisconfigurationError):
            await service.get_metadata(1)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metadata_endpoint_is_not_cached(self, client, recorded_token):
        response = await client.get(f"/nft/metadata/{recorded_token}")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert response.json()["external_url"].endswith("/nft/7")

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("token_id", ["0", "-3", "abc"])
    async def test_invalid_token_id_is_400(self, client, token_id):
        response = await client.get(f"/nft/metadata/{token_id}")

        assert response.status_code == 400

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rate", [0, -0.000003])
    async def test_bad_exchange_rate_is_misconfiguration(self, nft_contract, ledger_contract, recorded_token, rate):
        service = AchievementMetadataService(nft_contract, ledger_contract, rate, 18, "https://khata.app")

        with pytest.raises(MisconfigurationError) as exc_info:
            await service.get_metadata(recorded_token)

        assert exc_info.value.status_code == 500
        assert "PKR_TO_NATIVE_RATE" in exc_info.value.detail


THIRD_LOAN_BYTES = bytes.fromhex("3c" * 32)


class TestAchievementGallery:
    """Tests for AchievementMetadataService.list_achievements"""

    @pytest.fixture
    def minted_tokens(self, nft_contract, ledger_contract):
        nft_contract.base_uri = "https://api.khata.app/nft/metadata"
        nft_contract.tokens = {LOAN_BYTES: 1, bytes.fromhex("2b" * 32): 2, THIRD_LOAN_BYTES: 4}
        # token 3 was never minted, so ownerOf reverts for it
        nft_contract.owners = {1: PARTNER_WALLET, 2: OWNER_WALLET, 4: "0x" + "B2" * 20}
        ledger_contract.records[LOAN_BYTES] = (
            OWNER_WALLET, PARTNER_WALLET, 3000000000000000, 1741219200, "Atta", 1740787200, 0,
        )
        ledger_contract.records[THIRD_LOAN_BYTES] = (
            OWNER_WALLET, PARTNER_WALLET, 1500000000000000, 1741219200, "Ghee", 0, 0,
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lists_tokens_held_by_wallet(self, nft_contract, ledger_contract, minted_tokens):
        service = AchievementMetadataService(nft_contract, ledger_contract, 0.000003, 18, "https://khata.app")

        result = await service.list_achievements(PARTNER_WALLET.upper().replace("0X", ""))

        assert result.wallet_address == PARTNER_WALLET
        assert [a.token_id for a in result.achievements] == ["1", "4"]
        first, second = result.achievements
        assert first.loan_id == LOAN_ID
        assert first.loan_amount == 1000
        assert first.loan_date == "2025-03-01"
        assert first.token_uri == "https://api.khata.app/nft/metadata/1"
        assert first.metadata_path == "/nft/metadata/1"
        assert second.loan_amount == 500
        assert second.loan_date == "Not set"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_ledger_only_token_data(self, nft_contract, minted_tokens):
        service = AchievementMetadataService(nft_contract, None, 0.000003, 18, "https://khata.app")

        result = await service.list_achievements(OWNER_WALLET)

        assert [a.token_id for a in result.achievements] == ["2"]
        assert result.achievements[0].loan_amount is None
        assert result.achievements[0].loan_date is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_wallet_without_tokens(self, nft_contract, ledger_contract, minted_tokens):
        service = AchievementMetadataService(nft_contract, ledger_contract, 0.000003, 18, "https://khata.app")

        result = await service.list_achievements("0x" + "c3" * 20)

        assert result.achievements == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unconfigured_nft_contract(self, ledger_contract):
        service = AchievementMetadataService(None, ledger_contract, 0.000003, 18, "https://khata.app")

        with pytest.raises(MisconfigurationError):
            await service.list_achievements(PARTNER_WALLET)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_achievements_endpoint(self, client, minted_tokens):
        response = await client.get("/nft/achievements", params={"walletAddress": PARTNER_WALLET})

        assert response.status_code == 200
        body = response.json()
        assert body["walletAddress"] == PARTNER_WALLET
        assert [a["tokenId"] for a in body["achievements"]] == ["1", "4"]
        assert body["achievements"][0]["loanAmount"] == 1000
        assert body["achievements"][0]["tokenUri"] == "https://api.khata.app/nft/metadata/1"

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{}, {"walletAddress": "not-a-wallet"}])
    async def test_bad_wallet_is_400(self, client, params):
        response = await client.get("/nft/achievements", params=params)

        assert response.status_code == 400


class TestBaseUri:
    """Tests for pointing the contract's baseTokenURI at the metadata route"""

    @pytest.mark.unit
    def test_metadata_base_uri(self):
        assert metadata_base_uri("https://api.khata.app/") == "https://api.khata.app/nft/metadata"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_then_noop(self, nft_contract, signer):
        first = await update_base_uri(nft_contract, signer, "https://api.khata.app/nft/metadata")
        second = await update_base_uri(nft_contract, signer, "https://api.khata.app/nft/metadata")

        assert first.changed is True
        assert first.previous == ""
        assert first.current == "https://api.khata.app/nft/metadata"
        assert first.transaction_hash == "0x" + "cd" * 32
        assert second.changed is False
        assert nft_contract.base_uri_updates == [(signer.address, "https://api.khata.app/nft/metadata")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_script_verify_and_set(self, nft_contract, signer, capsys):
        assert await nft_base_uri.run("verify", "https://api.khata.app", contract=nft_contract) == 1
        assert await nft_base_uri.run("set", "https://api.khata.app", contract=nft_contract, signer=signer) == 0
        assert await nft_base_uri.run("verify", "https://api.khata.app", contract=nft_contract) == 0

        assert nft_contract.base_uri == "https://api.khata.app/nft/metadata"
        assert "Match: ✅ YES" in capsys.readouterr().out

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_script_reports_chain_failure(self, nft_contract, signer, capsys):
        nft_contract.fail_with = UpstreamError("blockchain", "LoanAchievementNFT transaction failed", "not owner")

        assert await nft_base_uri.run("set", "https://api.khata.app", contract=nft_contract, signer=signer) == 1
        assert "LoanAchievementNFT transaction failed" in capsys.readouterr().out
