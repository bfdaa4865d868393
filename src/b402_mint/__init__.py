"""
b402-mint: gasless stablecoin payments and allocation-constrained minting
for a BSC token sale.
"""

from .service import TokenSaleService
from .adapters.evm.constants import SaleSettings

__version__ = "0.1.0"

__all__ = [
    "TokenSaleService",
    "SaleSettings",
]
