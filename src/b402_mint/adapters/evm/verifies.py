"""
Input and on-chain verification helpers.

Format checks for addresses and transaction hashes, local recovery of a
payment authorization's signer, and receipt-based verification of a payment
transaction.
"""

import logging
import re
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3
from web3.exceptions import TransactionNotFound

from .connection import ConnectionManager
from .schemas import PaymentAuthorization
from .signatures import build_authorization_typed_data
from ...engine.exceptions import ValidationError

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


def is_valid_address(addr: Optional[str]) -> bool:
    """Format check only: 0x followed by 40 hex characters."""
    return isinstance(addr, str) and bool(_ADDRESS_RE.match(addr))


def is_valid_tx_hash(tx_hash: Optional[str]) -> bool:
    return isinstance(tx_hash, str) and bool(_TX_HASH_RE.match(tx_hash))


def validate_address(addr: Optional[str], field: str = "address") -> str:
    """
    Return the checksummed form of ``addr``.

    Raises:
        ValidationError: If ``addr`` is not a 0x-prefixed 20-byte hex string.
    """
    if not is_valid_address(addr):
        raise ValidationError(f"Invalid {field}: {addr!r}", {"field": field})
    return Web3.to_checksum_address(addr)


def validate_tx_hash(tx_hash: Optional[str], field: str = "tx_hash") -> str:
    """
    Return ``tx_hash`` lowercased.

    Raises:
        ValidationError: If ``tx_hash`` is not a 0x-prefixed 32-byte hex string.
    """
    if not is_valid_tx_hash(tx_hash):
        raise ValidationError(f"Invalid {field}: {tx_hash!r}", {"field": field})
    return tx_hash.lower()


def recover_authorization_signer(
    authorization: PaymentAuthorization,
    *,
    verifying_contract: str,
    domain_name: str = "B402",
    domain_version: str = "1",
) -> Optional[str]:
    """
    Recover the address that signed ``authorization``.

    Returns:
        Checksummed signer address, or None when the authorization is unsigned.
    """
    if authorization.signature is None:
        return None
    typed_data = build_authorization_typed_data(
        authorization,
        verifying_contract=verifying_contract,
        domain_name=domain_name,
        domain_version=domain_version,
    )
    signable = encode_typed_data(full_message=typed_data.to_dict())
    sig = authorization.signature
    return Account.recover_message(signable, vrs=(sig.v, int(sig.r, 16), int(sig.s, 16)))


def is_authorization_signed_by_payer(authorization: PaymentAuthorization, *, verifying_contract: str) -> bool:
    """True when the recovered signer is the authorization's ``authorizer``."""
    recovered = recover_authorization_signer(authorization, verifying_contract=verifying_contract)
    return recovered is not None and recovered.lower() == authorization.authorizer.lower()


async def fetch_transaction_receipt(connection: ConnectionManager, tx_hash: str) -> Optional[Dict[str, Any]]:
    """
    Receipt of ``tx_hash``, or None if it is unknown or still pending.

    Raises:
        ValidationError: Malformed hash.
        ConnectivityError: RPC failed after retries.
    """
    tx_hash = validate_tx_hash(tx_hash)
    web3 = await connection.web3()

    async def _get():
        try:
            return await web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    return await connection.retry(_get, "eth_getTransactionReceipt")


async def verify_transaction_receipt(connection: ConnectionManager, tx_hash: str) -> bool:
    """
    True only if ``tx_hash`` was included and did not revert (status 1).

    A pending or unknown transaction is reported as False.
    """
    receipt = await fetch_transaction_receipt(connection, tx_hash)
    if receipt is None:
        logger.info("Transaction %s has no receipt yet", tx_hash)
        return False
    return receipt.get("status") == 1
