"""
Distribution pools of the sale token.

Totals and per-call bounds are in whole tokens; the contract works in base
units (18 decimals).
"""

from enum import Enum
from typing import Dict, NamedTuple


class PoolLimits(NamedTuple):
    total: int
    max_per_call: int
    min_per_call: int = 1


class AllocationPool(str, Enum):
    """One of the four independently capped distribution pools."""
    AIRDROP = "airdrop"
    BAYC = "bayc"
    LIQUIDITY = "liquidity"
    PUBLIC = "public"

    @property
    def limits(self) -> PoolLimits:
        return POOL_LIMITS[self]

    @property
    def total(self) -> int:
        return self.limits.total

    @property
    def requires_payment(self) -> bool:
        return self is AllocationPool.PUBLIC


POOL_LIMITS: Dict[AllocationPool, PoolLimits] = {
    AllocationPool.AIRDROP: PoolLimits(total=50_000, max_per_call=1_000),
    AllocationPool.BAYC: PoolLimits(total=50_000, max_per_call=5_000),
    AllocationPool.LIQUIDITY: PoolLimits(total=200_000, max_per_call=200_000),
    AllocationPool.PUBLIC: PoolLimits(total=700_000, max_per_call=10_000),
}

TOTAL_SUPPLY = sum(limits.total for limits in POOL_LIMITS.values())
