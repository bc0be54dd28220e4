"""
Tests for PKR <-> native unit conversion and chain helpers
"""
from datetime import date
from decimal import Decimal

import pytest

from khata.core.blockchain import bytes32_to_hex, normalize_bytes32
from khata.core.config import Settings
from khata.core.currency import date_to_unix, from_native_units, to_native_units


class TestNativeUnits:
    """Tests for to_native_units / from_native_units"""

    @pytest.mark.unit
    def test_default_rate(self):
        """1000 PKR at 0.000003 is 0.003 ETH"""
        assert to_native_units(1000, 0.000003) == 3_000_000_000_000_000

    @pytest.mark.unit
    def test_fractional_amount_is_floored(self):
        assert to_native_units(Decimal("0.5"), Decimal("0.000003"), decimals=6) == 1

    @pytest.mark.unit
    def test_back_to_pkr(self):
        assert from_native_units(3_000_000_000_000_000, 0.000003) == 1000
        assert from_native_units(2_999_999_999_999_999, 0.000003) == 999

    @pytest.mark.unit
    def test_non_positive_rate(self):
        with pytest.raises(ValueError):
            from_native_units(1, 0)


class TestUnixDates:
    """Tests for date_to_unix"""

    @pytest.mark.unit
    def test_utc_midnight(self):
        assert date_to_unix(date(2025, 3, 1)) == 1740787200

    @pytest.mark.unit
    def test_default_when_missing(self):
        assert date_to_unix(None, default=0) == 0

    @pytest.mark.unit
    def test_missing_without_default(self):
        with pytest.raises(ValueError):
            date_to_unix(None)


class TestBytes32:
    """Tests for on-chain loan id handling"""

    @pytest.mark.unit
    def test_normalize_adds_prefix_and_lowercases(self):
        assert normalize_bytes32("AB" * 32) == "0x" + "ab" * 32

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [
        "0x1234",
        "zz" * 32,
        "0x" + "ab" * 33,
        "0x-" + "a" * 63,
        "-" + "a" * 63,
        "0x+" + "a" * 63,
        "0x" + "a_" * 32,
    ])
    def test_normalize_rejects_bad_ids(self, value):
        with pytest.raises(ValueError):
            normalize_bytes32(value)

    @pytest.mark.unit
    def test_bytes_to_hex(self):
        assert bytes32_to_hex(b"\x01" * 32) == "0x" + "01" * 32


class TestContractSettings:
    """Tests for contract address configuration"""

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["", "0x", "0x" + "0" * 40, "  "])
    def test_placeholder_addresses_are_unset(self, value):
        settings = Settings(LOAN_LEDGER_CONTRACT=value, NFT_CONTRACT_ADDRESS=value)

        assert settings.loan_ledger_address is None
        assert settings.nft_contract_address is None

    @pytest.mark.unit
    def test_real_address_is_kept(self):
        address = "0x" + "5a" * 20
        settings = Settings(LOAN_LEDGER_CONTRACT=address)

        assert settings.loan_ledger_address == address
