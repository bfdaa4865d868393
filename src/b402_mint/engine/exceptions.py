"""
Exception and Error Definitions Module

Defines the error taxonomy shared by every component of the token sale.
Each class carries a machine-checkable ``code`` and a ``retryable`` flag so
that callers can decide what to do without parsing messages.

Exception Hierarchy:
    SaleError (root)
    ├── ConfigurationError
    ├── ConnectivityError
    │   ├── AllEndpointsUnreachable
    │   ├── TransactionSubmissionError
    │   └── ConfirmationTimeout
    ├── ValidationError
    │   ├── AllocationExhausted
    │   └── PaymentTokenNotAccepted
    ├── AllowanceInsufficient
    ├── ApprovalNotReflected
    ├── ReplayRejected
    ├── SigningError
    │   ├── SigningRejected
    │   └── SigningUnavailable
    ├── SettlementError
    │   ├── VerificationRejected
    │   └── SettlementFailed
    ├── OnChainRevert
    ├── MintingDisabled
    └── InvalidTransition
"""

from typing import Any, Dict, Optional


class SaleError(Exception):
    """
    Root exception class for all project-specific exceptions.

    Attributes:
        code: Stable machine-readable error code.
        retryable: Whether the same operation may succeed if tried again.
        message: Human-readable description.
        details: Optional structured context (addresses, amounts, hashes).
    """
    code: str = "sale_error"
    retryable: bool = False

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ConfigurationError(SaleError):
    """
    Raised when required configuration is missing or malformed.

    This includes scenarios such as:
    - Missing service wallet private key
    - Missing or malformed sale contract address
    - No RPC endpoints configured
    """
    code = "configuration_error"


# ==================== Connectivity ====================

class ConnectivityError(SaleError):
    """Transport-level failure talking to the chain or the facilitator."""
    code = "connectivity_error"
    retryable = True


class AllEndpointsUnreachable(ConnectivityError):
    """No configured RPC endpoint answered the liveness probe."""
    code = "all_endpoints_unreachable"


class TransactionSubmissionError(ConnectivityError):
    """A signed transaction could not be broadcast."""
    code = "submission_failed"


class ConfirmationTimeout(ConnectivityError):
    """
    A submitted transaction was not observed as confirmed in time.

    The outcome is unknown: the transaction may still be mined. Callers must
    check ``tx_hash`` before trying again, hence ``retryable`` is False.
    """
    code = "confirmation_timeout"
    retryable = False

    def __init__(self, message: str = "", tx_hash: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if tx_hash:
            details.setdefault("tx_hash", tx_hash)
        super().__init__(message, details)
        self.tx_hash = tx_hash


# ==================== Validation ====================

class ValidationError(SaleError):
    """
    Raised when caller input is rejected before any transaction is sent.

    This includes scenarios such as:
    - Non-positive or non-integer amounts
    - Amounts above the pool's per-call bound
    - Malformed addresses or transaction hashes
    """
    code = "validation_error"


class AllocationExhausted(ValidationError):
    """The requested amount exceeds the pool's live remaining balance."""
    code = "allocation_exhausted"


class PaymentTokenNotAccepted(ValidationError):
    """The sale contract does not accept the requested payment token."""
    code = "payment_token_not_accepted"


# ==================== Allowance ====================

class AllowanceInsufficient(SaleError):
    """
    Control-flow signal: the spender may not yet pull the required amount.

    Carries everything a caller needs to ask the owner for an approval.
    """
    code = "allowance_insufficient"
    retryable = True

    def __init__(self, token: str, owner: str, spender: str, required: int, current: int):
        super().__init__(
            f"Allowance {current} is below the required {required}",
            {
                "token": token,
                "owner": owner,
                "spender": spender,
                "required": str(required),
                "current": str(current),
            },
        )
        self.token = token
        self.owner = owner
        self.spender = spender
        self.required = required
        self.current = current


class ApprovalNotReflected(SaleError):
    """An approval was confirmed but the allowance read back is still short."""
    code = "approval_not_reflected"
    retryable = True


# ==================== Replay ====================

class ReplayRejected(SaleError):
    """The payment reference has already been used for a mint."""
    code = "replay_rejected"

    def __init__(self, reference: str):
        super().__init__(f"Payment reference already used: {reference}", {"reference": reference})
        self.reference = reference


# ==================== Signing ====================

class SigningError(SaleError):
    """Base class for payment authorization signing failures."""
    code = "signing_error"


class SigningRejected(SigningError):
    """The signer declined or failed to produce a signature."""
    code = "signing_rejected"
    retryable = True


class SigningUnavailable(SigningError):
    """No signer is connected."""
    code = "signing_unavailable"


# ==================== Settlement ====================

class SettlementError(SaleError):
    """
    Base class for facilitator rejections.

    Retrying means creating a fresh authorization; the rejected one is never
    resubmitted.
    """
    code = "settlement_error"
    retryable = True

    def __init__(self, reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.reason = reason or "unknown"
        super().__init__(self.reason, details)


class VerificationRejected(SettlementError):
    """The facilitator's ``/verify`` reported the authorization as invalid."""
    code = "verification_rejected"

    def __init__(self, reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, details)
        self.message = f"Verification rejected: {self.reason}"


class SettlementFailed(SettlementError):
    """``/verify`` accepted the authorization but ``/settle`` failed."""
    code = "settlement_failed"

    def __init__(self, reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("verified", True)
        super().__init__(reason, details)
        self.message = f"Settlement failed: {self.reason}"


# ==================== On-chain ====================

class OnChainRevert(SaleError):
    """A transaction reverted, either at gas estimation or after inclusion."""
    code = "onchain_revert"

    def __init__(self, reason: str = "execution reverted", tx_hash: Optional[str] = None):
        details = {"reason": reason}
        if tx_hash:
            details["tx_hash"] = tx_hash
        super().__init__(f"Transaction reverted: {reason}", details)
        self.reason = reason
        self.tx_hash = tx_hash


class MintingDisabled(SaleError):
    """Minting has been disabled on the sale contract."""
    code = "minting_disabled"


class InvalidTransition(SaleError):
    """Raised when a purchase session is moved along an illegal edge."""
    code = "invalid_transition"
