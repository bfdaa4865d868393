from .connection import ConnectionManager, retry_async
from .contracts import TokenSaleContract, ERC20Token
from .wallet import ServiceWallet
from .allowance import AllowanceManager
from .schemas import (
    EVMECDSASignature,
    PaymentAuthorization,
    EVMTransactionConfirmation,
    ApprovalResult,
)
from .signatures import (
    TypedDataSigner,
    LocalAccountSigner,
    PaymentAuthorizationSigner,
    build_authorization_typed_data,
    generate_nonce,
)
from .verifies import (
    validate_address,
    validate_tx_hash,
    recover_authorization_signer,
    is_authorization_signed_by_payer,
    verify_transaction_receipt,
)

__all__ = [
    "ConnectionManager",
    "retry_async",
    "TokenSaleContract",
    "ERC20Token",
    "ServiceWallet",
    "AllowanceManager",
    "EVMECDSASignature",
    "PaymentAuthorization",
    "EVMTransactionConfirmation",
    "ApprovalResult",
    "TypedDataSigner",
    "LocalAccountSigner",
    "PaymentAuthorizationSigner",
    "build_authorization_typed_data",
    "generate_nonce",
    "validate_address",
    "validate_tx_hash",
    "recover_authorization_signer",
    "is_authorization_signed_by_payer",
    "verify_transaction_receipt",
]
