import pytest

from b402_mint.engine.exceptions import (
    AllEndpointsUnreachable,
    AllowanceInsufficient,
    ConfirmationTimeout,
    ConnectivityError,
    OnChainRevert,
    ReplayRejected,
    SaleError,
    SettlementError,
    SettlementFailed,
    SigningRejected,
    SigningUnavailable,
    ValidationError,
    VerificationRejected,
    AllocationExhausted,
)


def test_every_error_is_a_sale_error():
    for cls in (AllEndpointsUnreachable, AllowanceInsufficient, ReplayRejected, SettlementFailed, OnChainRevert):
        assert issubclass(cls, SaleError)
    assert issubclass(AllocationExhausted, ValidationError)
    assert issubclass(AllEndpointsUnreachable, ConnectivityError)


@pytest.mark.parametrize(
    "error, retryable",
    [
        (ConnectivityError("rpc down"), True),
        (ConfirmationTimeout("slow", tx_hash="0xabc"), False),
        (SigningRejected("user said no"), True),
        (SigningUnavailable(), False),
        (VerificationRejected("bad signature"), True),
        (ValidationError("bad input"), False),
        (ReplayRejected("0xabc"), False),
    ],
)
def test_retryable_flags(error, retryable):
    assert error.retryable is retryable


def test_allowance_insufficient_carries_amounts():
    error = AllowanceInsufficient(token="0xT", owner="0xO", spender="0xS", required=10, current=3)

    assert error.required == 10
    assert error.current == 3
    assert error.to_dict() == {
        "code": "allowance_insufficient",
        "message": "Allowance 3 is below the required 10",
        "retryable": True,
        "details": {"token": "0xT", "owner": "0xO", "spender": "0xS", "required": "10", "current": "3"},
    }


def test_settlement_errors_keep_reason():
    rejected = VerificationRejected("expired")
    failed = SettlementFailed("relayer out of gas")

    assert isinstance(rejected, SettlementError)
    assert rejected.reason == "expired"
    assert rejected.message == "Verification rejected: expired"
    assert failed.details["verified"] is True
    assert failed.code == "settlement_failed"


def test_timeout_and_revert_expose_tx_hash():
    assert ConfirmationTimeout("slow", tx_hash="0xabc").details["tx_hash"] == "0xabc"

    revert = OnChainRevert("Exceeds allocation", tx_hash="0xdef")
    assert revert.reason == "Exceeds allocation"
    assert revert.details == {"reason": "Exceeds allocation", "tx_hash": "0xdef"}
