"""
Payment Token Registry

Maps stablecoin symbols (USDT, USDC, USD1) to their on-chain configuration.
"""

from typing import Dict, Iterable, List, Optional

from web3 import Web3

from .evm.constants import BSC_MAINNET, EvmAssetConfig
from ..engine.exceptions import PaymentTokenNotAccepted


class PaymentTokenRegistry:
    """
    Registry of payment tokens the sale knows how to quote and pull.

    Whether the sale contract currently accepts a token is a separate, live
    question (``isPaymentTokenAccepted``); this registry only resolves
    symbols to addresses and decimals.

    Example:
        registry = PaymentTokenRegistry()
        usdt = registry.resolve("usdt")
        usdt.address  # '0x55d398326f99059fF775485246999027B3197955'
    """

    def __init__(self, assets: Optional[Iterable[EvmAssetConfig]] = None):
        self._assets: Dict[str, EvmAssetConfig] = {}
        for asset in assets if assets is not None else BSC_MAINNET.assets.values():
            self.register(asset)

    def register(self, asset: EvmAssetConfig) -> None:
        """Add or replace a token, keyed by upper-cased symbol."""
        self._assets[asset.symbol.upper()] = asset.model_copy(
            update={"address": Web3.to_checksum_address(asset.address)}
        )

    def resolve(self, symbol: str) -> EvmAssetConfig:
        """
        Raises:
            PaymentTokenNotAccepted: Unknown symbol.
        """
        asset = self._assets.get((symbol or "").upper())
        if asset is None:
            raise PaymentTokenNotAccepted(
                f"Unsupported payment token: {symbol}",
                {"symbol": symbol, "supported": self.symbols()},
            )
        return asset

    def by_address(self, address: str) -> Optional[EvmAssetConfig]:
        for asset in self._assets.values():
            if asset.address.lower() == address.lower():
                return asset
        return None

    def symbols(self) -> List[str]:
        return sorted(self._assets)

    def __contains__(self, symbol: str) -> bool:
        return (symbol or "").upper() in self._assets
