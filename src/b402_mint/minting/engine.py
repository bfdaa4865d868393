"""
Allocation-constrained mint engine.

Every mint passes the same fail-fast gate before a transaction is built:

    (a) amount is a positive whole number and the recipient is an address
    (b) amount is within the pool's per-call bound
    (c) public pool only: the payment reference is well formed and reserved
    (d) live read of the pool's remaining balance and ``mintingEnabled``

Steps (a) to (c) touch no network. A reserved payment reference is committed
once the mint is confirmed and released on any other failure after (c),
except ``ConfirmationTimeout``: the mint may still be mined, so the reference
stays reserved and cannot back a second mint.
"""

import asyncio
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Awaitable, Callable, Dict, Optional

from pydantic import Field

from .pools import AllocationPool, TOTAL_SUPPLY
from .replay import InMemoryReplayGuard, ReplayGuard
from ..adapters.evm.constants import SALE_TOKEN_DECIMALS, value_to_amount
from ..adapters.evm.contracts import TokenSaleContract
from ..adapters.evm.schemas import EVMTransactionConfirmation
from ..adapters.evm.verifies import validate_address, validate_tx_hash
from ..adapters.evm.wallet import ServiceWallet
from ..engine.exceptions import (
    AllocationExhausted,
    ConfirmationTimeout,
    MintingDisabled,
    ValidationError,
)
from ..schemas.bases import CanonicalModel

logger = logging.getLogger(__name__)

PaymentVerifier = Callable[[str], Awaitable[bool]]

_ONE_TOKEN = 10 ** SALE_TOKEN_DECIMALS


class MintResult(CanonicalModel):
    """Confirmed mint."""
    pool: AllocationPool
    recipient: str
    amount: int = Field(..., gt=0, description="Whole tokens minted")
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    payment_reference: Optional[str] = None
    remaining_after: Optional[Decimal] = Field(None, description="Pool remaining after this mint (estimate)")


class PoolStatus(CanonicalModel):
    total: int
    minted: Decimal
    remaining: Decimal
    progress: Decimal = Field(..., description="Minted share of the pool, percent")


class AllocationStatus(CanonicalModel):
    """Live snapshot of the four pools."""
    pools: Dict[AllocationPool, PoolStatus]
    total_minted: Decimal
    total_supply: int = TOTAL_SUPPLY

    def remaining(self, pool: AllocationPool) -> Decimal:
        return self.pools[pool].remaining


def _progress(minted: Decimal, total: int) -> Decimal:
    if total <= 0:
        return Decimal(0)
    return (minted * 100 / total).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class MintEngine:
    """
    Mints sale tokens from the four capped pools.

    Example:
        engine = MintEngine(sale, wallet)
        result = await engine.mint(AllocationPool.AIRDROP, recipient, 500)
        result.tx_hash
    """

    def __init__(
        self,
        sale: TokenSaleContract,
        wallet: ServiceWallet,
        replay_guard: Optional[ReplayGuard] = None,
        payment_verifier: Optional[PaymentVerifier] = None,
    ):
        """
        Args:
            sale: Sale contract wrapper.
            wallet: Service wallet that submits the mints.
            replay_guard: Store for consumed payment references.
            payment_verifier: Checks that a public-mint payment transaction
                succeeded on-chain; skipped when None.
        """
        self.sale = sale
        self.wallet = wallet
        self.replay_guard = replay_guard if replay_guard is not None else InMemoryReplayGuard()
        self.payment_verifier = payment_verifier

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_request(pool: AllocationPool, recipient: str, amount: int) -> str:
        """
        Checks that need no network access. Returns the checksummed recipient.

        Raises:
            ValidationError: Non-positive/non-integer amount, bad recipient,
                or an amount outside the pool's per-call bound.
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("amount must be a whole number of tokens", {"amount": str(amount)})
        if amount <= 0:
            raise ValidationError("amount must be greater than 0", {"amount": amount})

        recipient = validate_address(recipient, "recipient")

        limits = pool.limits
        if amount < limits.min_per_call or amount > limits.max_per_call:
            raise ValidationError(
                f"{pool.value} mint amount must be between {limits.min_per_call} and {limits.max_per_call}",
                {"pool": pool.value, "amount": amount, "max_per_call": limits.max_per_call},
            )
        return recipient

    async def _check_pool(self, pool: AllocationPool, amount: int) -> int:
        """Live pool and sale-state check. Returns the pool's remaining balance in base units."""
        remaining, enabled = await asyncio.gather(
            self.sale.remaining_allocation(pool.value),
            self.sale.minting_enabled(),
        )
        if not enabled:
            raise MintingDisabled("Minting is disabled on the sale contract")

        if amount * _ONE_TOKEN > remaining:
            raise AllocationExhausted(
                f"Insufficient {pool.value} allocation",
                {
                    "pool": pool.value,
                    "requested": amount,
                    "remaining": str(value_to_amount(value=remaining, decimals=SALE_TOKEN_DECIMALS)),
                },
            )
        return remaining

    # ------------------------------------------------------------------
    # Mints
    # ------------------------------------------------------------------

    async def mint(self, pool: AllocationPool, recipient: str, amount: int) -> MintResult:
        """
        Mint from a pool that does not require payment.

        Raises:
            ValidationError: Local checks failed, or ``pool`` is the public pool.
            AllocationExhausted / MintingDisabled: Live checks failed.
            OnChainRevert / ConnectivityError: From the mint transaction.
        """
        pool = AllocationPool(pool)
        if pool.requires_payment:
            raise ValidationError("public mints require a payment reference")

        recipient = self.validate_request(pool, recipient, amount)
        remaining = await self._check_pool(pool, amount)

        call = await self.sale.mint_call(pool.value, recipient, amount * _ONE_TOKEN)
        confirmation = await self.wallet.transact(call, description=f"mint {pool.value}")
        return self._result(pool, recipient, amount, confirmation, remaining)

    async def mint_public_with_payment(self, recipient: str, amount: int, payment_ref: str) -> MintResult:
        """
        Public-pool mint paid for by the transaction ``payment_ref``.

        Raises:
            ValidationError: Local checks failed or the payment did not succeed.
            ReplayRejected: ``payment_ref`` already backs a mint.
            AllocationExhausted / MintingDisabled: Live checks failed.
            OnChainRevert / ConnectivityError: From the mint transaction.
        """
        pool = AllocationPool.PUBLIC
        recipient = self.validate_request(pool, recipient, amount)
        reference = self.replay_guard.reserve(validate_tx_hash(payment_ref, "payment_ref"))

        async def _mint():
            remaining = await self._check_pool(pool, amount)
            if self.payment_verifier is not None and not await self.payment_verifier(reference):
                raise ValidationError(
                    "Payment transaction is not confirmed on-chain",
                    {"payment_ref": reference},
                )
            call = await self.sale.mint_call(pool.value, recipient, amount * _ONE_TOKEN)
            confirmation = await self.wallet.transact(call, description="mint public")
            return self._result(pool, recipient, amount, confirmation, remaining, reference)

        return await self._with_reference(reference, _mint)

    async def mint_purchase(
        self,
        recipient: str,
        amount: int,
        payment_token: str,
        payment_amount: int,
        payment_ref: str,
    ) -> MintResult:
        """
        Public-pool mint backing a gasless purchase.

        ``payment_ref`` is the hash of the confirmed ``transferFrom`` that
        moved ``payment_amount`` of ``payment_token`` to the facilitator.
        """
        pool = AllocationPool.PUBLIC
        recipient = self.validate_request(pool, recipient, amount)
        payment_token = validate_address(payment_token, "payment_token")
        reference = self.replay_guard.reserve(validate_tx_hash(payment_ref, "payment_ref"))

        async def _mint():
            remaining = await self._check_pool(pool, amount)
            call = await self.sale.purchase_call(recipient, amount * _ONE_TOKEN, payment_token, payment_amount)
            confirmation = await self.wallet.transact(call, description="purchaseTokensGasless")
            return self._result(pool, recipient, amount, confirmation, remaining, reference)

        return await self._with_reference(reference, _mint)

    async def _with_reference(self, reference: str, mint: Callable[[], Awaitable[MintResult]]) -> MintResult:
        try:
            result = await mint()
        except ConfirmationTimeout as e:
            # The mint may still land; the reference stays reserved.
            logger.warning(
                "Mint for payment %s unconfirmed (%s); reference kept reserved", reference, e.tx_hash,
            )
            raise
        except BaseException:
            self.replay_guard.release(reference)
            raise
        self.replay_guard.commit(reference)
        return result

    def _result(
        self,
        pool: AllocationPool,
        recipient: str,
        amount: int,
        confirmation: EVMTransactionConfirmation,
        remaining_before: int,
        reference: Optional[str] = None,
    ) -> MintResult:
        remaining_after = value_to_amount(
            value=max(remaining_before - amount * _ONE_TOKEN, 0),
            decimals=SALE_TOKEN_DECIMALS,
        )
        logger.info(
            "Minted %s %s tokens to %s: %s", amount, pool.value, recipient, confirmation.tx_hash,
        )
        return MintResult(
            pool=pool,
            recipient=recipient,
            amount=amount,
            tx_hash=confirmation.tx_hash,
            block_number=confirmation.block_number,
            gas_used=confirmation.gas_used,
            payment_reference=reference,
            remaining_after=remaining_after,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_allocation_status(self) -> AllocationStatus:
        """Live remaining balances and total minted, read concurrently."""
        remaining, distribution = await asyncio.gather(
            self.sale.remaining_allocations(),
            self.sale.distribution_status(),
        )
        pools: Dict[AllocationPool, PoolStatus] = {}
        for pool in AllocationPool:
            left = value_to_amount(value=remaining[pool.value], decimals=SALE_TOKEN_DECIMALS)
            minted = max(Decimal(pool.total) - left, Decimal(0))
            pools[pool] = PoolStatus(
                total=pool.total,
                minted=minted,
                remaining=left,
                progress=_progress(minted, pool.total),
            )
        return AllocationStatus(
            pools=pools,
            total_minted=value_to_amount(value=distribution["total_minted"], decimals=SALE_TOKEN_DECIMALS),
        )

    async def disable_minting(self) -> EVMTransactionConfirmation:
        """Call ``disableMinting()``. The contract offers no way back."""
        call = await self.sale.disable_minting_call()
        confirmation = await self.wallet.transact(call, description="disableMinting")
        logger.warning("Minting permanently disabled: %s", confirmation.tx_hash)
        return confirmation
