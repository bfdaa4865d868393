"""
Test suite for MintEngine.
Tests: 1) Pool bounds and amount validation 2) Remaining balance bookkeeping
3) Payment reference replay protection 4) Sale state checks
"""
from decimal import Decimal

import pytest

from b402_mint.engine.exceptions import (
    AllocationExhausted,
    ConfirmationTimeout,
    MintingDisabled,
    OnChainRevert,
    ReplayRejected,
    TransactionSubmissionError,
    ValidationError,
)
from b402_mint.minting.engine import MintEngine
from b402_mint.minting.pools import AllocationPool, TOTAL_SUPPLY
from b402_mint.minting.replay import InMemoryReplayGuard

from sale_mocks import (
    FakeSaleContract,
    FakeWallet,
    ONE_TOKEN,
    RECIPIENT_ADDRESS,
    USDT_ADDRESS,
    tx_hash,
)


def make_engine(sale=None, wallet=None, **kwargs):
    sale = sale or FakeSaleContract()
    wallet = wallet or FakeWallet(sale)
    return MintEngine(sale, wallet, **kwargs), sale, wallet


# ========================================================================
# Local validation
# ========================================================================

def test_pool_limits_add_up_to_total_supply():
    assert TOTAL_SUPPLY == 1_000_000
    assert AllocationPool.PUBLIC.limits.max_per_call == 10_000
    assert AllocationPool.AIRDROP.limits.max_per_call == 1_000


@pytest.mark.asyncio
async def test_zero_amount_rejected_without_transaction():
    engine, sale, wallet = make_engine()

    with pytest.raises(ValidationError) as exc_info:
        await engine.mint(AllocationPool.AIRDROP, RECIPIENT_ADDRESS, 0)

    assert exc_info.value.message == "amount must be greater than 0"
    assert wallet.sent == []
    assert sale.reads == []


@pytest.mark.asyncio
async def test_public_per_call_bound():
    engine, sale, wallet = make_engine()

    result = await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 10_000, tx_hash(1))
    assert result.amount == 10_000

    with pytest.raises(ValidationError):
        await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 10_001, tx_hash(2))
    assert len(wallet.sent) == 1


@pytest.mark.asyncio
async def test_invalid_recipient_rejected():
    engine, _, wallet = make_engine()

    with pytest.raises(ValidationError):
        await engine.mint(AllocationPool.BAYC, "0x1234", 10)
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_public_pool_requires_payment_reference():
    engine, _, wallet = make_engine()

    with pytest.raises(ValidationError):
        await engine.mint(AllocationPool.PUBLIC, RECIPIENT_ADDRESS, 10)
    assert wallet.sent == []


# ========================================================================
# Bookkeeping
# ========================================================================

@pytest.mark.asyncio
async def test_remaining_decreases_by_exact_amount():
    engine, sale, wallet = make_engine()
    before = sale.remaining["airdrop"]

    result = await engine.mint(AllocationPool.AIRDROP, RECIPIENT_ADDRESS, 500)

    assert sale.remaining["airdrop"] == before - 500 * ONE_TOKEN
    assert result.remaining_after == Decimal(49_500)
    assert result.tx_hash == tx_hash(1000)
    assert wallet.sent[0].args == ("airdrop", RECIPIENT_ADDRESS, 500 * ONE_TOKEN)

    status = await engine.get_allocation_status()
    assert status.remaining(AllocationPool.AIRDROP) == Decimal(49_500)
    assert status.pools[AllocationPool.AIRDROP].minted == Decimal(500)
    assert status.pools[AllocationPool.AIRDROP].progress == Decimal("1.00")
    assert status.total_minted == Decimal(500)


@pytest.mark.asyncio
async def test_amount_above_remaining_rejected():
    sale = FakeSaleContract()
    sale.remaining["airdrop"] = 100 * ONE_TOKEN
    engine, _, wallet = make_engine(sale)

    with pytest.raises(AllocationExhausted) as exc_info:
        await engine.mint(AllocationPool.AIRDROP, RECIPIENT_ADDRESS, 101)

    assert exc_info.value.details["remaining"] == "100"
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_minting_disabled_rejected():
    engine, _, wallet = make_engine(FakeSaleContract(minting_enabled=False))

    with pytest.raises(MintingDisabled):
        await engine.mint(AllocationPool.LIQUIDITY, RECIPIENT_ADDRESS, 1_000)
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_disable_minting_sends_transaction():
    engine, sale, wallet = make_engine()

    confirmation = await engine.disable_minting()

    assert confirmation.is_success()
    assert wallet.calls("disableMinting")
    assert await sale.minting_enabled() is False


# ========================================================================
# Replay protection
# ========================================================================

@pytest.mark.asyncio
async def test_replayed_reference_rejected_before_any_network_call():
    engine, sale, wallet = make_engine()
    reference = tx_hash(42)

    await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, reference)
    reads_after_first = list(sale.reads)

    with pytest.raises(ReplayRejected):
        await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, reference.upper().replace("0X", "0x"))

    assert sale.reads == reads_after_first
    assert len(wallet.sent) == 1


@pytest.mark.asyncio
async def test_reference_released_after_revert():
    sale = FakeSaleContract()
    wallet = FakeWallet(sale, fail_when=lambda i, call: OnChainRevert("boom") if i == 0 else None)
    guard = InMemoryReplayGuard()
    engine, _, _ = make_engine(sale, wallet, replay_guard=guard)
    reference = tx_hash(7)

    with pytest.raises(OnChainRevert):
        await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, reference)
    assert not guard.is_consumed(reference)

    result = await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, reference)
    assert result.payment_reference == reference
    assert guard.is_consumed(reference)


@pytest.mark.asyncio
async def test_reference_released_after_submission_failure():
    sale = FakeSaleContract()
    wallet = FakeWallet(sale, fail_when=lambda i, call: TransactionSubmissionError("rpc down") if i == 0 else None)
    guard = InMemoryReplayGuard()
    engine, _, _ = make_engine(sale, wallet, replay_guard=guard)

    with pytest.raises(TransactionSubmissionError):
        await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, tx_hash(8))

    assert not guard.is_consumed(tx_hash(8))


class LateConfirmingWallet(FakeWallet):
    """Mints land on-chain but the receipt never arrives in time."""

    async def transact(self, call, description="transaction"):
        confirmation = await super().transact(call, description)
        raise ConfirmationTimeout(f"{description} not confirmed", tx_hash=confirmation.tx_hash)


@pytest.mark.asyncio
async def test_reference_stays_reserved_after_confirmation_timeout():
    sale = FakeSaleContract()
    guard = InMemoryReplayGuard()
    engine, _, _ = make_engine(sale, LateConfirmingWallet(sale), replay_guard=guard)
    reference = tx_hash(10)

    with pytest.raises(ConfirmationTimeout):
        await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, reference)
    assert guard.is_consumed(reference)

    retry, _, retry_wallet = make_engine(sale, replay_guard=guard)
    with pytest.raises(ReplayRejected):
        await retry.mint_public_with_payment(RECIPIENT_ADDRESS, 100, reference)

    assert retry_wallet.sent == []
    assert sale.remaining["public"] == (700_000 - 100) * ONE_TOKEN


@pytest.mark.asyncio
async def test_engines_sharing_an_empty_guard_share_references():
    sale = FakeSaleContract()
    guard = InMemoryReplayGuard()
    first, _, _ = make_engine(sale, replay_guard=guard)
    second, _, second_wallet = make_engine(sale, replay_guard=guard)

    assert first.replay_guard is guard
    assert second.replay_guard is guard

    await first.mint_public_with_payment(RECIPIENT_ADDRESS, 100, tx_hash(11))
    with pytest.raises(ReplayRejected):
        await second.mint_public_with_payment(RECIPIENT_ADDRESS, 100, tx_hash(11))

    assert second_wallet.sent == []
    assert sale.remaining["public"] == (700_000 - 100) * ONE_TOKEN


@pytest.mark.asyncio
async def test_unconfirmed_payment_rejected_and_released():
    async def verifier(reference):
        return False

    guard = InMemoryReplayGuard()
    engine, _, wallet = make_engine(replay_guard=guard, payment_verifier=verifier)

    with pytest.raises(ValidationError):
        await engine.mint_public_with_payment(RECIPIENT_ADDRESS, 100, tx_hash(9))

    assert wallet.sent == []
    assert not guard.is_consumed(tx_hash(9))


@pytest.mark.asyncio
async def test_purchase_mint_uses_purchase_entry_point():
    engine, sale, wallet = make_engine()

    result = await engine.mint_purchase(
        recipient=RECIPIENT_ADDRESS,
        amount=200,
        payment_token=USDT_ADDRESS,
        payment_amount=10 * ONE_TOKEN,
        payment_ref=tx_hash(3),
    )

    (call,) = wallet.calls("purchaseTokensGasless")
    assert call.args == (RECIPIENT_ADDRESS, 200 * ONE_TOKEN, USDT_ADDRESS, 10 * ONE_TOKEN)
    assert result.pool is AllocationPool.PUBLIC
    assert sale.remaining["public"] == (700_000 - 200) * ONE_TOKEN


def test_replay_guard_normalises_references():
    guard = InMemoryReplayGuard()
    key = guard.reserve("  0xABC ")
    assert key == "0xabc"

    with pytest.raises(ReplayRejected):
        guard.reserve("0xabc")

    guard.release(key)
    assert not guard.is_consumed("0xAbC")

    guard.reserve("0xabc")
    guard.commit("0xabc")
    with pytest.raises(ReplayRejected):
        guard.reserve("0xABC")


# ========================================================================
# Status
# ========================================================================

@pytest.mark.asyncio
async def test_allocation_status_is_stable_between_mints():
    sale = FakeSaleContract()
    sale.remaining["airdrop"] -= 250 * ONE_TOKEN
    sale.total_minted_value = 250 * ONE_TOKEN
    engine, _, _ = make_engine(sale)

    first = await engine.get_allocation_status()
    second = await engine.get_allocation_status()

    assert first == second
    assert first.pools[AllocationPool.AIRDROP].minted == Decimal(250)
    assert first.total_minted == Decimal(250)

    await engine.mint(AllocationPool.AIRDROP, RECIPIENT_ADDRESS, 50)
    third = await engine.get_allocation_status()

    assert third != second
    assert third.pools[AllocationPool.AIRDROP].minted == Decimal(300)
