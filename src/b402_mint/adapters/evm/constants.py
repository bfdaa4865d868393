"""
BSC Chain and Sale Configuration

Static chain/asset tables for the sale, environment-aware getters for the
service wallet and endpoints, and the canonical base-unit conversions.
"""

import os
from typing import Dict, Optional, List
from decimal import Decimal, InvalidOperation
from pydantic import BaseModel, Field

from web3 import Web3
import dotenv

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()


class EvmAssetConfig(BaseModel):
    """Payment token configuration."""
    symbol: str
    address: str = Field(..., description="Token contract address")
    name: str = Field(..., description="Token name")
    decimals: int = Field(..., description="Token decimals")


class EvmChainConfig(BaseModel):
    """EVM network configuration."""
    caip2: str
    chain_id: int
    network: str = Field(..., description="Network id understood by the facilitator")
    rpc_urls: List[str] = Field(..., description="RPC endpoints in priority order")
    explorer_url: str = Field(..., description="Block explorer URL")
    native_symbol: str = "BNB"
    assets: Dict[str, EvmAssetConfig] = Field(default_factory=dict, description="Accepted payment tokens")


BSC_CHAIN_ID = 56

# Sale token and BSC stablecoins all use 18 decimals.
SALE_TOKEN_DECIMALS = 18

DEFAULT_FACILITATOR_URL = "https://facilitator.b402.ai"
DEFAULT_RELAYER_ADDRESS = "0xE1C2830d5DDd6B49E9c46EbE03a98Cb44CD8eA5a"
DEFAULT_MERCHANT_ADDRESS = "0xe7b97053Fc48CadC5711A8dB32ccA422C7ab43e5"

B402_DOMAIN_NAME = "B402"
B402_DOMAIN_VERSION = "1"
AUTHORIZATION_VALIDITY_SECONDS = 3600

DISABLE_MINTING_CONFIRMATION = "PERMANENTLY_DISABLE_MINTING"

# Native gas balance thresholds for the service wallet health check.
GAS_BALANCE_HEALTHY = Decimal("0.01")
GAS_BALANCE_WARNING = Decimal("0.001")

BSC_MAINNET = EvmChainConfig(
    caip2="eip155:56",
    chain_id=BSC_CHAIN_ID,
    network="bsc",
    rpc_urls=[
        "https://bsc-dataseed.binance.org",
        "https://bsc-dataseed1.defibit.io",
        "https://bsc-dataseed1.ninicoin.io",
    ],
    explorer_url="https://bscscan.com",
    assets={
        "USDT": EvmAssetConfig(
            symbol="USDT",
            address="0x55d398326f99059fF775485246999027B3197955",
            name="Tether USD",
            decimals=18,
        ),
        "USDC": EvmAssetConfig(
            symbol="USDC",
            address="0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d",
            name="USD Coin",
            decimals=18,
        ),
        "USD1": EvmAssetConfig(
            symbol="USD1",
            address="0x8d0D000Ee44948FC98c9B98A4FA4921476f08B0d",
            name="World Liberty Financial USD",
            decimals=18,
        ),
    },
)


# ---------------------------------------------------------------------------
# Environment getters
# ---------------------------------------------------------------------------

def get_private_key_from_env() -> Optional[str]:
    """
    Load the service wallet private key from the environment.

    Environment Variable:
        - FACILITATOR_PRIVATE_KEY: 0x-prefixed hex private key of the wallet
          that originates every mint, approval and transfer transaction.

    Returns:
        str: Private key from environment, or None if not configured
    """
    return os.getenv("FACILITATOR_PRIVATE_KEY")


def get_contract_address_from_env() -> Optional[str]:
    """Sale contract address (``CONTRACT_ADDRESS``)."""
    return os.getenv("CONTRACT_ADDRESS")


def get_rpc_urls_from_env() -> List[str]:
    """
    RPC endpoints in priority order.

    ``BSC_RPC_URLS`` (comma separated) wins; a single ``BSC_RPC_URL`` is put in
    front of the public defaults; with neither set the public BSC endpoints
    are used.
    """
    urls = os.getenv("BSC_RPC_URLS")
    if urls:
        return [u.strip() for u in urls.split(",") if u.strip()]

    primary = os.getenv("BSC_RPC_URL")
    defaults = list(BSC_MAINNET.rpc_urls)
    if primary:
        return [primary] + [u for u in defaults if u != primary]
    return defaults


def get_facilitator_url_from_env() -> str:
    return os.getenv("FACILITATOR_URL", DEFAULT_FACILITATOR_URL)


def get_relayer_address_from_env() -> str:
    return os.getenv("B402_RELAYER_ADDRESS", DEFAULT_RELAYER_ADDRESS)


def get_merchant_address_from_env() -> str:
    return os.getenv("B402_MERCHANT_ADDRESS", DEFAULT_MERCHANT_ADDRESS)


class SaleSettings(BaseModel):
    """
    Everything the sale needs to talk to the chain and the facilitator.

    Build it explicitly in tests and embedding code, or from the process
    environment with :meth:`from_env`.
    """
    private_key: str = Field(..., repr=False)
    contract_address: str
    rpc_urls: List[str] = Field(default_factory=lambda: list(BSC_MAINNET.rpc_urls))
    chain_id: int = BSC_CHAIN_ID
    network: str = BSC_MAINNET.network
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    relayer_address: str = DEFAULT_RELAYER_ADDRESS
    merchant_address: str = DEFAULT_MERCHANT_ADDRESS
    probe_timeout: float = 5.0
    request_timeout: int = 30
    confirmation_timeout: float = 120.0
    poll_interval: float = 3.0

    @classmethod
    def from_env(cls) -> "SaleSettings":
        """
        Read the settings from environment variables (and ``.env``).

        Raises:
            ConfigurationError: If the private key or contract address is
                missing or malformed, or no RPC endpoint is configured.
        """
        private_key = get_private_key_from_env()
        if not private_key:
            raise ConfigurationError("FACILITATOR_PRIVATE_KEY is not set")

        contract_address = get_contract_address_from_env()
        if not contract_address:
            raise ConfigurationError("CONTRACT_ADDRESS is not set")
        if not Web3.is_address(contract_address):
            raise ConfigurationError(f"CONTRACT_ADDRESS is not a valid address: {contract_address}")

        rpc_urls = get_rpc_urls_from_env()
        if not rpc_urls:
            raise ConfigurationError("No RPC endpoints configured")

        return cls(
            private_key=private_key,
            contract_address=Web3.to_checksum_address(contract_address),
            rpc_urls=rpc_urls,
            facilitator_url=get_facilitator_url_from_env(),
            relayer_address=get_relayer_address_from_env(),
            merchant_address=get_merchant_address_from_env(),
        )


# ---------------------------------------------------------------------------
# Amount conversion
# ---------------------------------------------------------------------------

def amount_to_value(*, amount: float | int | str | Decimal, decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. "1.23"). Accepts float/int/str/Decimal.
        decimals: Token decimals (18 for every token of this sale).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() keeps 0.1 from turning into 0.1000000000000000055...
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if not dec_amount.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    scaled = dec_amount.scaleb(decimals)

    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: int | str | Decimal, decimals: int) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `Decimal` amount.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if dec_value < 0:
        raise ValueError("value must be non-negative")

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    amount = dec_value.scaleb(-decimals)
    if amount == amount.to_integral_value():
        return amount.quantize(Decimal(1))
    return amount.normalize()
