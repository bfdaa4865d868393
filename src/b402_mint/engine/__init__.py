"""
Event engine and error taxonomy.

Import events and executors from their modules directly; this package only
re-exports the exceptions so low-level adapters can depend on them.
"""

from .exceptions import (
    SaleError,
    ConfigurationError,
    ConnectivityError,
    AllEndpointsUnreachable,
    TransactionSubmissionError,
    ConfirmationTimeout,
    ValidationError,
    AllocationExhausted,
    PaymentTokenNotAccepted,
    AllowanceInsufficient,
    ApprovalNotReflected,
    ReplayRejected,
    SigningError,
    SigningRejected,
    SigningUnavailable,
    SettlementError,
    VerificationRejected,
    SettlementFailed,
    OnChainRevert,
    MintingDisabled,
    InvalidTransition,
)

__all__ = [
    "SaleError",
    "ConfigurationError",
    "ConnectivityError",
    "AllEndpointsUnreachable",
    "TransactionSubmissionError",
    "ConfirmationTimeout",
    "ValidationError",
    "AllocationExhausted",
    "PaymentTokenNotAccepted",
    "AllowanceInsufficient",
    "ApprovalNotReflected",
    "ReplayRejected",
    "SigningError",
    "SigningRejected",
    "SigningUnavailable",
    "SettlementError",
    "VerificationRejected",
    "SettlementFailed",
    "OnChainRevert",
    "MintingDisabled",
    "InvalidTransition",
]
