from .apps import SaleServer, status_code_for

__all__ = [
    "SaleServer",
    "status_code_for",
]
