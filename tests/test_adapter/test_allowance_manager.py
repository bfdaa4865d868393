"""
Test suite for AllowanceManager.
Tests: 1) Shortfall signal 2) Exact approvals only when short
3) Approval that never shows up in the allowance
"""
import pytest
from web3 import Web3

from b402_mint.adapters.evm.allowance import AllowanceManager
from b402_mint.engine.exceptions import (
    AllowanceInsufficient,
    ApprovalNotReflected,
    ValidationError,
)

from sale_mocks import (
    BUYER_ADDRESS,
    SERVICE_ADDRESS,
    USDT_ADDRESS,
    FakeSaleContract,
    FakeToken,
    FakeWallet,
    build_tokens,
)

SPENDER = Web3.to_checksum_address("0x3333333333333333333333333333333333333333")


class StuckToken(FakeToken):
    """Confirms approvals without ever changing the allowance."""

    def apply(self, call, sender):
        if call.function != "approve":
            super().apply(call, sender)


def make_manager(tokens=None):
    tokens = tokens if tokens is not None else build_tokens()
    wallet = FakeWallet(FakeSaleContract(), tokens)
    manager = AllowanceManager(
        connection=None,
        wallet=wallet,
        token_factory=lambda connection, address: tokens[Web3.to_checksum_address(address)],
    )
    return manager, wallet, tokens[Web3.to_checksum_address(USDT_ADDRESS)]


@pytest.mark.asyncio
async def test_ensure_allowance_signals_shortfall():
    manager, wallet, usdt = make_manager()
    usdt.set_allowance(BUYER_ADDRESS, SPENDER, 400)

    with pytest.raises(AllowanceInsufficient) as exc_info:
        await manager.ensure_allowance(USDT_ADDRESS, BUYER_ADDRESS, SPENDER, 1_000)

    error = exc_info.value
    assert error.required == 1_000
    assert error.current == 400
    assert error.spender == SPENDER
    assert error.details["token"] == USDT_ADDRESS
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_ensure_allowance_returns_current_when_enough():
    manager, _, usdt = make_manager()
    usdt.set_allowance(BUYER_ADDRESS, SPENDER, 1_000)

    assert await manager.ensure_allowance(USDT_ADDRESS, BUYER_ADDRESS, SPENDER, 1_000) == 1_000


@pytest.mark.asyncio
async def test_sufficient_allowance_sends_nothing():
    manager, wallet, usdt = make_manager()
    usdt.set_allowance(SERVICE_ADDRESS, SPENDER, 5_000)

    result = await manager.check_and_approve(USDT_ADDRESS, SERVICE_ADDRESS, SPENDER, 1_000)

    assert result.already_sufficient is True
    assert result.tx_hash is None
    assert result.allowance == 5_000
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_short_allowance_approves_exact_amount():
    manager, wallet, usdt = make_manager()
    usdt.set_allowance(SERVICE_ADDRESS, SPENDER, 10)

    result = await manager.check_and_approve(USDT_ADDRESS, SERVICE_ADDRESS, SPENDER, 1_000)

    (approve,) = wallet.calls("approve")
    assert approve.args == (SPENDER, 1_000)
    assert result.already_sufficient is False
    assert result.allowance == 1_000
    assert result.tx_hash == "0x" + format(1000, "064x")


@pytest.mark.asyncio
async def test_cannot_approve_for_another_owner():
    manager, wallet, _ = make_manager()

    with pytest.raises(ValidationError):
        await manager.check_and_approve(USDT_ADDRESS, BUYER_ADDRESS, SPENDER, 1_000)

    assert wallet.sent == []


@pytest.mark.asyncio
async def test_approval_not_reflected():
    tokens = {Web3.to_checksum_address(USDT_ADDRESS): StuckToken(USDT_ADDRESS)}
    manager, wallet, _ = make_manager(tokens)

    with pytest.raises(ApprovalNotReflected) as exc_info:
        await manager.check_and_approve(USDT_ADDRESS, SERVICE_ADDRESS, SPENDER, 1_000)

    assert len(wallet.calls("approve")) == 1
    assert exc_info.value.details["allowance"] == "0"
    assert exc_info.value.retryable is True
