"""
Thin async helpers around web3.py for the two contracts the ledger talks to.

Key custody sits behind ``TransactionSigner`` so a relayer or HSM-backed
signer can replace ``LocalKeySigner`` without touching the services.
"""
from typing import Any, Dict, List, Optional, Sequence
import logging
import re

from eth_account import Account
from fastapi import HTTPException
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.logs import DISCARD

from khata.core.exceptions import MisconfigurationError, UpstreamError

logger = logging.getLogger(__name__)

CHAIN_PROVIDER = "blockchain"
ZERO_BYTES32 = "0x" + "00" * 32
BYTES32_PATTERN = re.compile(r"0x[0-9a-f]{64}")


def normalize_bytes32(value: str) -> str:
    """Return a lowercase 0x-prefixed 32-byte hex string or raise ValueError"""
    value = value.strip().lower()
    if not value.startswith("0x"):
        value = f"0x{value}"
    if not BYTES32_PATTERN.fullmatch(value):
        raise ValueError("Expected 32 bytes (64 hex characters)")
    return value


def bytes32_to_hex(value: Any) -> str:
    return "0x" + HexBytes(value).hex().removeprefix("0x").rjust(64, "0")


class TransactionSigner:
    """Signs transactions for a single server-held account"""

    address: str

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        raise NotImplementedError


class LocalKeySigner(TransactionSigner):
    """Signer backed by a raw private key from configuration"""

    def __init__(self, private_key: str):
        key = private_key.strip()
        if not key.startswith("0x"):
            key = f"0x{key}"
        if len(key) != 66:
            raise MisconfigurationError(
                "Invalid private key format. Private key must be 64 hex characters "
                "(with or without 0x prefix)."
            )
        try:
            self._account = Account.from_key(key)
        except Exception as e:
            raise MisconfigurationError(f"Invalid private key: {e}")
        self.address = self._account.address

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        return self._account.sign_transaction(transaction).raw_transaction


def build_web3(rpc_url: str, timeout: int) -> AsyncWeb3:
    """Create an AsyncWeb3 client with a bounded request timeout"""
    provider = AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
    return AsyncWeb3(provider)


class ContractGateway:
    """One deployed contract: read calls, signed writes and event decoding"""

    def __init__(
        self,
        web3: AsyncWeb3,
        address: str,
        abi: Sequence[Dict[str, Any]],
        name: str = "contract",
        receipt_timeout: int = 120,
    ):
        self.web3 = web3
        self.name = name
        self.receipt_timeout = receipt_timeout
        try:
            self.address = AsyncWeb3.to_checksum_address(address)
        except ValueError:
            raise MisconfigurationError(f"Invalid {name} contract address: {address}")
        self.contract = web3.eth.contract(address=self.address, abi=abi)

    async def call(self, function_name: str, *args: Any) -> Any:
        """Run a view function"""
        try:
            return await getattr(self.contract.functions, function_name)(*args).call()
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"{self.name}.{function_name} call failed: {str(e)}")
            raise UpstreamError(CHAIN_PROVIDER, f"{self.name}.{function_name} call failed", str(e))

    async def transact(
        self,
        signer: TransactionSigner,
        function_name: str,
        *args: Any,
        value: int = 0,
    ) -> Dict[str, Any]:
        """Sign, submit and wait for the receipt of a state-changing call"""
        contract_fn = getattr(self.contract.functions, function_name)(*args)
        try:
            tx_params: Dict[str, Any] = {
                "from": signer.address,
                "nonce": await self.web3.eth.get_transaction_count(signer.address),
                "value": value,
                "chainId": await self.web3.eth.chain_id,
            }
            built = await contract_fn.build_transaction(tx_params)
            tx_hash = await self.web3.eth.send_raw_transaction(signer.sign_transaction(built))
            receipt = await self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            logger.error(f"{self.name}.{function_name} transaction failed: {str(e)}")
            raise UpstreamError(CHAIN_PROVIDER, f"{self.name} transaction failed", str(e))

        logger.info(f"{self.name}.{function_name} mined in tx {HexBytes(receipt['transactionHash']).hex()}")
        return dict(receipt)

    async def get_receipt(self, tx_hash: str) -> Dict[str, Any]:
        try:
            receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
        except Exception as e:
            raise UpstreamError(CHAIN_PROVIDER, f"Could not fetch receipt {tx_hash}", str(e))
        return dict(receipt)

    def decode_events(self, event_name: str, receipt: Dict[str, Any]) -> List[Dict[str, Any]]:
        event = getattr(self.contract.events, event_name)
        return [dict(log["args"]) for log in event().process_receipt(receipt, errors=DISCARD)]


def build_gateway(
    rpc_url: str,
    address: Optional[str],
    abi: Sequence[Dict[str, Any]],
    name: str,
    timeout: int,
    receipt_timeout: int,
) -> Optional[ContractGateway]:
    """Gateway for ``address``, or None when the contract is not configured"""
    if not address:
        return None
    return ContractGateway(
        build_web3(rpc_url, timeout), address, abi, name=name, receipt_timeout=receipt_timeout
    )
