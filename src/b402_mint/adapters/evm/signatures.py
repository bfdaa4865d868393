"""
B402 payment authorization signing.

A payment authorization is an EIP-712 ``TransferWithAuthorization`` message
signed by the payer. It lets the B402 relayer move exactly ``value`` of the
payment token from the payer to the merchant, once, inside a validity window.

Signing goes through the :class:`TypedDataSigner` interface so that a browser
wallet, an MPC service or a local key can all back the same flow.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from eth_account import Account
from web3 import Web3

from .constants import (
    AUTHORIZATION_VALIDITY_SECONDS,
    B402_DOMAIN_NAME,
    B402_DOMAIN_VERSION,
    SALE_TOKEN_DECIMALS,
    amount_to_value,
)
from .schemas import EVMECDSASignature, PaymentAuthorization
from .standards import (
    EIP712Domain,
    TransferWithAuthorizationMessage,
    TransferWithAuthorizationTypedData,
)
from ...engine.exceptions import (
    SigningError,
    SigningRejected,
    SigningUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------

class TypedDataSigner(ABC):
    """Anything that can produce an EIP-712 signature for one address."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address whose key produces the signatures."""

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        """
        Sign a full EIP-712 message ``{types, primaryType, domain, message}``.

        Returns:
            Packed 65-byte ``r || s || v`` signature as 0x-prefixed hex.

        Raises:
            SigningRejected: If the holder of the key declines.
        """


class LocalAccountSigner(TypedDataSigner):
    """In-process signer backed by an ``eth_account`` private key."""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        signed = self._account.sign_typed_data(full_message=typed_data)
        return Web3.to_hex(signed.signature)


# ---------------------------------------------------------------------------
# Typed-data builder
# ---------------------------------------------------------------------------

def build_authorization_typed_data(
    authorization: PaymentAuthorization,
    *,
    verifying_contract: str,
    domain_name: str = B402_DOMAIN_NAME,
    domain_version: str = B402_DOMAIN_VERSION,
) -> TransferWithAuthorizationTypedData:
    """
    Wrap a ``PaymentAuthorization`` in its EIP-712 envelope without signing.

    Args:
        authorization: Unsigned (or signed) authorization.
        verifying_contract: B402 relayer address.
        domain_name: EIP-712 domain ``name`` (``"B402"``).
        domain_version: EIP-712 domain ``version`` (``"1"``).
    """
    domain = EIP712Domain(
        name=domain_name,
        version=domain_version,
        chainId=authorization.chain_id,
        verifyingContract=verifying_contract,
    )
    message = TransferWithAuthorizationMessage(
        authorizer=authorization.authorizer,
        recipient=authorization.recipient,
        value=authorization.value,
        validAfter=authorization.validAfter,
        validBefore=authorization.validBefore,
        nonce=authorization.nonce,
    )
    return TransferWithAuthorizationTypedData(domain=domain, message=message)


def generate_nonce() -> str:
    """
    Random bytes32 nonce as 0x-prefixed hex.

    All 32 bytes of the ``bytes32`` field are random, which exceeds the
    128 bits of entropy a nonce needs.
    """
    return "0x" + os.urandom(32).hex()


# ---------------------------------------------------------------------------
# Authorization signer
# ---------------------------------------------------------------------------

class PaymentAuthorizationSigner:
    """
    Builds and signs B402 payment authorizations.

    Every call produces a fresh random nonce and a window of
    ``(now, now + validity_seconds)``. Nothing is persisted; reusing an
    authorization after a facilitator rejection is not supported, create a
    new one instead.

    Example:
        signer = PaymentAuthorizationSigner(
            chain_id=56,
            relayer_address=DEFAULT_RELAYER_ADDRESS,
            merchant_address=DEFAULT_MERCHANT_ADDRESS,
        )
        authorization = await signer.create_authorization(
            payer=wallet.address,
            token_address=USDT,
            amount="25",
            signer=wallet,
        )
    """

    def __init__(
        self,
        chain_id: int,
        relayer_address: str,
        merchant_address: str,
        domain_name: str = B402_DOMAIN_NAME,
        domain_version: str = B402_DOMAIN_VERSION,
        validity_seconds: int = AUTHORIZATION_VALIDITY_SECONDS,
        decimals: int = SALE_TOKEN_DECIMALS,
        default_signer: Optional[TypedDataSigner] = None,
    ):
        self.chain_id = chain_id
        self.relayer_address = Web3.to_checksum_address(relayer_address)
        self.merchant_address = Web3.to_checksum_address(merchant_address)
        self.domain_name = domain_name
        self.domain_version = domain_version
        self.validity_seconds = validity_seconds
        self.decimals = decimals
        self.default_signer = default_signer

    async def create_authorization(
        self,
        payer: str,
        token_address: str,
        amount: Union[int, str, Decimal],
        signer: Optional[TypedDataSigner] = None,
        now: Optional[int] = None,
    ) -> PaymentAuthorization:
        """
        Build, sign and return a payment authorization.

        Args:
            payer: Address paying (must be the signer's address).
            token_address: Payment token contract address.
            amount: Human-readable amount; converted to base units exactly.
            signer: Signer to use; falls back to ``default_signer``.
            now: Override of the current unix time.

        Returns:
            Signed :class:`PaymentAuthorization`.

        Raises:
            ValidationError: Malformed address, non-positive amount, or a
                payer that is not the signer's address.
            SigningUnavailable: No signer connected.
            SigningRejected: The signer declined or failed.
        """
        signer = signer or self.default_signer
        if signer is None:
            raise SigningUnavailable("No wallet signer is connected")

        if not Web3.is_address(payer):
            raise ValidationError(f"Invalid payer address: {payer}")
        if not Web3.is_address(token_address):
            raise ValidationError(f"Invalid token address: {token_address}")

        try:
            value = amount_to_value(amount=amount, decimals=self.decimals)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if value <= 0:
            raise ValidationError("amount must be greater than 0")

        payer = Web3.to_checksum_address(payer)
        if payer != Web3.to_checksum_address(signer.address):
            raise ValidationError(
                "Payer does not match the connected signer",
                {"payer": payer, "signer": signer.address},
            )

        valid_after = int(time.time()) if now is None else now
        authorization = PaymentAuthorization(
            token=Web3.to_checksum_address(token_address),
            chain_id=self.chain_id,
            authorizer=payer,
            recipient=self.merchant_address,
            value=value,
            validAfter=valid_after,
            validBefore=valid_after + self.validity_seconds,
            nonce=generate_nonce(),
        )

        typed_data = build_authorization_typed_data(
            authorization,
            verifying_contract=self.relayer_address,
            domain_name=self.domain_name,
            domain_version=self.domain_version,
        )

        try:
            packed = await signer.sign_typed_data(typed_data.to_dict())
        except SigningError:
            raise
        except Exception as e:
            raise SigningRejected(f"Signer failed to sign the authorization: {e}") from e

        try:
            authorization.signature = EVMECDSASignature.from_packed_hex(packed)
        except ValueError as e:
            raise SigningRejected(f"Signer returned a malformed signature: {e}") from e

        logger.info(
            "Created payment authorization from %s for %s base units of %s",
            payer, value, authorization.token,
        )
        return authorization
