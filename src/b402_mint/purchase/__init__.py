from .orchestrator import (
    GaslessPurchaseOrchestrator,
    PurchaseSession,
    PurchaseState,
    ApprovalRequired,
    PurchaseError,
    TRANSITIONS,
)
from .flows import setup_event_bus

__all__ = [
    "GaslessPurchaseOrchestrator",
    "PurchaseSession",
    "PurchaseState",
    "ApprovalRequired",
    "PurchaseError",
    "TRANSITIONS",
    "setup_event_bus",
]
