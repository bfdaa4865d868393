from .registry import PaymentTokenRegistry
from .evm import (
    ConnectionManager,
    TokenSaleContract,
    ERC20Token,
    ServiceWallet,
    AllowanceManager,
    PaymentAuthorization,
    PaymentAuthorizationSigner,
    EVMTransactionConfirmation,
)

__all__ = [
    "PaymentTokenRegistry",
    "ConnectionManager",
    "TokenSaleContract",
    "ERC20Token",
    "ServiceWallet",
    "AllowanceManager",
    "PaymentAuthorization",
    "PaymentAuthorizationSigner",
    "EVMTransactionConfirmation",
]
