from .pools import AllocationPool, PoolLimits, POOL_LIMITS, TOTAL_SUPPLY
from .replay import ReplayGuard, InMemoryReplayGuard
from .engine import MintEngine, MintResult, PoolStatus, AllocationStatus
from .batch import BatchMintProcessor, BatchEntry, BatchEntryResult, BatchMintSummary

__all__ = [
    "AllocationPool",
    "PoolLimits",
    "POOL_LIMITS",
    "TOTAL_SUPPLY",
    "ReplayGuard",
    "InMemoryReplayGuard",
    "MintEngine",
    "MintResult",
    "PoolStatus",
    "AllocationStatus",
    "BatchMintProcessor",
    "BatchEntry",
    "BatchEntryResult",
    "BatchMintSummary",
]
