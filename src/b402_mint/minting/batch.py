"""
Sequential batch minting with per-entry outcomes.
"""

import asyncio
import logging
import time
import uuid
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import Field

from .engine import MintEngine
from .pools import AllocationPool
from ..adapters.evm.constants import SALE_TOKEN_DECIMALS, value_to_amount
from ..engine.exceptions import AllocationExhausted, SaleError, ValidationError
from ..schemas.bases import CanonicalModel

logger = logging.getLogger(__name__)


class BatchEntry(CanonicalModel):
    recipient: str
    amount: int


class BatchEntryResult(CanonicalModel):
    index: int
    recipient: str
    amount: int
    success: bool
    tx_hash: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


class BatchMintSummary(CanonicalModel):
    batch_id: str
    pool: AllocationPool
    total: int
    successful: int
    failed: int
    total_tokens_distributed: int = Field(..., description="Sum of successfully minted amounts")
    remaining_allocation: Optional[Decimal] = None
    results: List[BatchEntryResult] = Field(default_factory=list)


EntryLike = Union[BatchEntry, Tuple[str, int], dict]


def _coerce(entry: EntryLike) -> BatchEntry:
    if isinstance(entry, BatchEntry):
        return entry
    if isinstance(entry, dict):
        return BatchEntry.model_validate(entry)
    recipient, amount = entry
    return BatchEntry(recipient=recipient, amount=amount)


class BatchMintProcessor:
    """
    Mints a list of ``(recipient, amount)`` entries from one pool, one at a
    time, so that the service wallet's transactions never overlap.

    A failed entry is recorded and the batch moves on. Pacing between
    entries: ``min(base_delay + i * delay_step, max_delay)`` seconds after
    a success at index ``i``, ``failure_delay`` after a failure, nothing after
    the last entry.
    """

    def __init__(
        self,
        engine: MintEngine,
        base_delay: float = 2.0,
        delay_step: float = 0.5,
        max_delay: float = 5.0,
        failure_delay: float = 1.0,
        max_entries: int = 100,
    ):
        self.engine = engine
        self.base_delay = base_delay
        self.delay_step = delay_step
        self.max_delay = max_delay
        self.failure_delay = failure_delay
        self.max_entries = max_entries

    def delay_after(self, index: int, success: bool) -> float:
        if not success:
            return self.failure_delay
        return min(self.base_delay + index * self.delay_step, self.max_delay)

    def _validate(self, pool: AllocationPool, entries: Sequence[BatchEntry]) -> None:
        if pool.requires_payment:
            raise ValidationError("Batch minting is not available for the public pool")
        if not entries:
            raise ValidationError("Batch must contain at least one entry")
        if len(entries) > self.max_entries:
            raise ValidationError(
                f"Batch may contain at most {self.max_entries} entries",
                {"entries": len(entries)},
            )
        for i, entry in enumerate(entries):
            try:
                MintEngine.validate_request(pool, entry.recipient, entry.amount)
            except ValidationError as e:
                raise ValidationError(f"Entry {i}: {e.message}", {"index": i, **e.details}) from e

    async def mint_batch(self, pool: AllocationPool, entries: Iterable[EntryLike]) -> BatchMintSummary:
        """
        Mint every entry sequentially.

        Raises (before any mint):
            ValidationError: Empty or oversized batch, public pool, or an
                entry that fails local validation.
            AllocationExhausted: The entries together exceed the pool's live
                remaining balance.
        """
        pool = AllocationPool(pool)
        batch = [_coerce(e) for e in entries]
        self._validate(pool, batch)

        requested = sum(e.amount for e in batch)
        remaining = await self.engine.sale.remaining_allocation(pool.value)
        remaining_tokens = value_to_amount(value=remaining, decimals=SALE_TOKEN_DECIMALS)
        if requested > remaining_tokens:
            raise AllocationExhausted(
                f"Batch total {requested} exceeds remaining {pool.value} allocation {remaining_tokens}",
                {"pool": pool.value, "requested": requested, "remaining": str(remaining_tokens)},
            )

        batch_id = f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        logger.info("Batch %s: minting %d entries (%d tokens) from %s", batch_id, len(batch), requested, pool.value)

        results: List[BatchEntryResult] = []
        distributed = 0
        for i, entry in enumerate(batch):
            try:
                minted = await self.engine.mint(pool, entry.recipient, entry.amount)
            except SaleError as e:
                logger.warning("Batch %s entry %d (%s) failed: %s", batch_id, i, entry.recipient, e.message)
                results.append(BatchEntryResult(
                    index=i,
                    recipient=entry.recipient,
                    amount=entry.amount,
                    success=False,
                    error_code=e.code,
                    error=e.message,
                ))
                success = False
            else:
                distributed += entry.amount
                results.append(BatchEntryResult(
                    index=i,
                    recipient=minted.recipient,
                    amount=entry.amount,
                    success=True,
                    tx_hash=minted.tx_hash,
                ))
                success = True

            if i < len(batch) - 1:
                await asyncio.sleep(self.delay_after(i, success))

        successful = sum(1 for r in results if r.success)
        summary = BatchMintSummary(
            batch_id=batch_id,
            pool=pool,
            total=len(batch),
            successful=successful,
            failed=len(batch) - successful,
            total_tokens_distributed=distributed,
            remaining_allocation=max(remaining_tokens - distributed, Decimal(0)),
            results=results,
        )
        logger.info(
            "Batch %s done: %d/%d succeeded, %d tokens distributed",
            batch_id, summary.successful, summary.total, distributed,
        )
        return summary
