from .bases import CanonicalModel, BaseSignature, TransactionStatus, BaseTransactionConfirmation
from .https import (
    FacilitatorAuthorization,
    FacilitatorPaymentPayload,
    FacilitatorPaymentRequirements,
    FacilitatorRequest,
    VerifyResponse,
    SettleResponse,
    MintRequest,
    PublicMintRequest,
    BatchMintRequest,
    PurchaseRequest,
    ResumePurchaseRequest,
    VerifyTransactionRequest,
    DisableMintingRequest,
    ApiResponse,
)

__all__ = [
    "CanonicalModel",
    "BaseSignature",
    "TransactionStatus",
    "BaseTransactionConfirmation",
    "FacilitatorAuthorization",
    "FacilitatorPaymentPayload",
    "FacilitatorPaymentRequirements",
    "FacilitatorRequest",
    "VerifyResponse",
    "SettleResponse",
    "MintRequest",
    "PublicMintRequest",
    "BatchMintRequest",
    "PurchaseRequest",
    "ResumePurchaseRequest",
    "VerifyTransactionRequest",
    "DisableMintingRequest",
    "ApiResponse",
]
