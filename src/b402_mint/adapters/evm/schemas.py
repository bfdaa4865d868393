"""
EVM Adapter Schema Models

Pydantic models for payment authorizations and transaction outcomes on BSC.

Signature classes:
    - EVMECDSASignature: v/r/s signature with packed ``r || s || v`` helpers.

Authorization classes:
    - PaymentAuthorization: signed B402 ``TransferWithAuthorization``.

Result / confirmation classes:
    - EVMTransactionConfirmation: receipt data of a confirmed transaction.
    - ApprovalResult: outcome of an allowance check-and-approve.
"""

import time
from typing import Optional, Literal

from pydantic import Field

from ...schemas.bases import (
    BaseSignature,
    BaseTransactionConfirmation,
    CanonicalModel,
)
from ...schemas.https import (
    FacilitatorAuthorization,
    FacilitatorPayload,
    FacilitatorPaymentPayload,
)


def _strip_hex(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


class EVMECDSASignature(BaseSignature):
    """
    EVM ECDSA signature (v, r, s).

    Attributes:
        signature_type: Signing standard, always ``"B402"`` here.
        v: ECDSA recovery ID (27 or 28).
        r: r component, 32 bytes as a 64-char hex string (0x prefix optional).
        s: s component, 32 bytes as a 64-char hex string (0x prefix optional).

    Example::

        sig = EVMECDSASignature(v=27, r="0x" + "a" * 64, s="0x" + "b" * 64)
        sig.to_packed_hex()  # '0xaaaa...bbbb...1b'
    """

    signature_type: Literal["B402"] = Field(default="B402", description="Signing standard")
    v: int = Field(..., ge=27, le=28, description="ECDSA recovery ID (27 or 28)")
    r: str = Field(..., description="Signature r component (32 bytes hex)")
    s: str = Field(..., description="Signature s component (32 bytes hex)")

    def validate_format(self) -> bool:
        """
        Validate v/r/s components.

        Raises:
            ValueError: Descriptive message on the first failed check.
        """
        if self.v not in (27, 28):
            raise ValueError(f"Invalid recovery ID: {self.v}. Must be 27 or 28")

        for name, val in [("r", self.r), ("s", self.s)]:
            hex_str = _strip_hex(val).zfill(64)
            if len(hex_str) != 64:
                raise ValueError(f"Invalid {name}: expected 64 hex chars, got {len(hex_str)}")
            try:
                int(hex_str, 16)
            except ValueError:
                raise ValueError(f"Invalid {name}: not valid hexadecimal")

        return True

    def to_packed_hex(self) -> str:
        """
        Encode v/r/s into a packed 65-byte hex string (``r || s || v``).

        Returns:
            0x-prefixed 132-character hex string.
        """
        self.validate_format()
        r = _strip_hex(self.r).zfill(64)
        s = _strip_hex(self.s).zfill(64)
        return "0x" + r + s + format(self.v, "02x")

    @classmethod
    def from_packed_hex(cls, signature: str) -> "EVMECDSASignature":
        """
        Split a packed 65-byte ``r || s || v`` signature.

        A recovery id of 0/1 is normalised to 27/28.

        Raises:
            ValueError: If the signature is not 65 bytes of hex.
        """
        raw = _strip_hex(signature)
        if len(raw) != 130:
            raise ValueError(f"Invalid signature length: expected 130 hex chars, got {len(raw)}")
        try:
            v = int(raw[128:], 16)
        except ValueError:
            raise ValueError("Invalid signature: not valid hexadecimal")
        if v < 27:
            v += 27
        return cls(v=v, r="0x" + raw[:64], s="0x" + raw[64:128])


class PaymentAuthorization(CanonicalModel):
    """
    Signed B402 payment authorization (``TransferWithAuthorization``).

    Authorizes the relayer to move ``value`` base units of ``token`` from
    ``authorizer`` to ``recipient`` between ``validAfter`` and ``validBefore``.
    The nonce is a random bytes32 so two authorizations never collide.

    Attributes:
        token: Payment token contract address.
        chain_id: Chain the authorization is valid on.
        authorizer: Payer address (``from`` in the typed data).
        recipient: Payee address (``to`` in the typed data).
        value: Amount in the token's base units.
        validAfter: Start of the validity window (unix seconds).
        validBefore: End of the validity window (unix seconds, exclusive).
        nonce: Random bytes32 hex string.
        signature: ECDSA signature over the typed data.
    """

    token: str = Field(..., description="Payment token contract address")
    chain_id: int = Field(..., ge=1, description="Numeric chain id")
    authorizer: str = Field(..., description="Payer address (maps to `from`)")
    recipient: str = Field(..., description="Payee address (maps to `to`)")
    value: int = Field(..., gt=0, description="Amount in base units")
    validAfter: int = Field(..., ge=0, description="Start timestamp for validity (unix)")
    validBefore: int = Field(..., ge=0, description="Expiry timestamp for validity (unix)")
    nonce: str = Field(..., description="Random nonce (bytes32 hex string)")
    signature: Optional[EVMECDSASignature] = Field(None, description="ECDSA signature")

    def is_expired(self, now: Optional[int] = None) -> bool:
        now = int(time.time()) if now is None else now
        return self.validBefore <= now

    def to_facilitator_payload(self) -> FacilitatorPaymentPayload:
        """Render the ``paymentPayload`` object posted to the facilitator."""
        if self.signature is None:
            raise ValueError("Authorization is not signed")
        return FacilitatorPaymentPayload(
            token=self.token,
            payload=FacilitatorPayload(
                authorization=FacilitatorAuthorization(
                    authorizer=self.authorizer,
                    recipient=self.recipient,
                    value=str(self.value),
                    validAfter=self.validAfter,
                    validBefore=self.validBefore,
                    nonce=self.nonce,
                ),
                signature=self.signature.to_packed_hex(),
            ),
        )


class EVMTransactionConfirmation(BaseTransactionConfirmation):
    """
    Receipt data of a transaction sent by the service wallet.

    Attributes:
        tx_hash: Transaction hash (0x-prefixed)
        block_number: Block number containing the transaction
        gas_used: Actual gas consumed
        gas_limit: Gas limit the transaction was sent with
        transaction_fee: Native fee paid (wei)
        from_address: Sender address
        to_address: Receiver/contract address

    Example:
        confirmation = await wallet.transact(call, description="mintAirdrop")
        if confirmation.is_success():
            print(f"Mint confirmed: {confirmation.tx_hash}")
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Confirmation type identifier")
    tx_hash: str = Field(..., description="Transaction hash (0x-prefixed hex string)")
    block_number: Optional[int] = Field(None, ge=0, description="Block number containing transaction")
    gas_used: Optional[int] = Field(None, ge=0, description="Actual gas consumed by transaction")
    gas_limit: Optional[int] = Field(None, ge=0, description="Gas limit specified for transaction")
    transaction_fee: Optional[int] = Field(None, ge=0, description="Transaction fee in wei")
    from_address: Optional[str] = Field(None, description="Transaction sender address")
    to_address: Optional[str] = Field(None, description="Transaction receiver/contract address")


class ApprovalResult(CanonicalModel):
    """Outcome of :meth:`AllowanceManager.check_and_approve`."""
    approved: bool
    already_sufficient: bool
    allowance: int = Field(..., ge=0, description="Allowance read after the operation")
    tx_hash: Optional[str] = None
