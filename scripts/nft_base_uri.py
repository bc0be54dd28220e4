"""
Show or update the achievement NFT contract's base token URI.

Wallets and marketplaces resolve token metadata as ``<baseTokenURI>/<tokenId>``,
so the base URI must point at this API's ``/nft/metadata`` route.

    python -m scripts.nft_base_uri verify https://api.khata.app
    python -m scripts.nft_base_uri set https://api.khata.app

``set`` signs with NFT_MINTER_PRIVATE_KEY, which must own the contract.
Without a URL argument APP_URL is used.
"""
import argparse
import asyncio
import sys

from khata.core.abi import ACHIEVEMENT_NFT_ABI
from khata.core.blockchain import LocalKeySigner, build_gateway
from khata.core.config import settings
from khata.core.exceptions import MisconfigurationError, UpstreamError
from khata.modules.nft.services import metadata_base_uri, read_base_uri, update_base_uri


async def verify(contract, expected: str) -> bool:
    current = await read_base_uri(contract)
    print(f"📋 Current Base URI: {current}")
    print(f"✅ Expected: {expected}")
    matches = current == expected
    print(f"\nMatch: {'✅ YES' if matches else '❌ NO'}")
    return matches


async def update(contract, signer, expected: str) -> None:
    print(f"Using wallet: {signer.address}")
    result = await update_base_uri(contract, signer, expected)
    if not result.changed:
        print("✅ Base URI is already set to this value. No update needed!")
        return
    print(f"✅ Transaction confirmed: {result.transaction_hash}")
    print(f"Base URI changed from {result.previous or '(empty)'} to {result.current}")
    print(f"🎉 Metadata will now be served from {result.current}/<tokenId>")


async def run(command: str, api_url: str, contract=None, signer=None) -> int:
    expected = metadata_base_uri(api_url)
    try:
        if contract is None:
            contract = build_gateway(
                settings.CHAIN_RPC_URL,
                settings.nft_contract_address,
                ACHIEVEMENT_NFT_ABI,
                name="LoanAchievementNFT",
                timeout=settings.CHAIN_RPC_TIMEOUT_SECONDS,
                receipt_timeout=settings.RECEIPT_TIMEOUT_SECONDS,
            )
        if contract is None:
            print("❌ Error: NFT_CONTRACT_ADDRESS is not set!")
            return 1

        if command == "verify":
            return 0 if await verify(contract, expected) else 1

        if signer is None:
            if not settings.NFT_MINTER_PRIVATE_KEY.strip():
                print("❌ Error: NFT_MINTER_PRIVATE_KEY is required to update the base URI")
                return 1
            signer = LocalKeySigner(settings.NFT_MINTER_PRIVATE_KEY)
        await update(contract, signer, expected)
        return 0
    except (MisconfigurationError, UpstreamError) as e:
        print(f"❌ Error: {e.detail}")
        return 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Manage the achievement NFT base token URI")
    parser.add_argument("command", choices=["verify", "set"])
    parser.add_argument("url", nargs="?", default=settings.APP_URL, help="Public URL of this API")
    args = parser.parse_args(argv)
    return asyncio.run(run(args.command, args.url))


if __name__ == "__main__":
    sys.exit(main())
