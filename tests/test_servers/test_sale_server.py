"""
Test suite for SaleServer.
Tests: 1) Response envelopes 2) Error status mapping 3) Purchase saga over HTTP
"""
import pytest
from fastapi.testclient import TestClient

from b402_mint.adapters.evm.constants import DISABLE_MINTING_CONFIRMATION
from b402_mint.engine.events import PurchaseSucceededEvent
from b402_mint.engine.exceptions import (
    AllEndpointsUnreachable,
    ConfigurationError,
    InvalidTransition,
    OnChainRevert,
    ValidationError,
)
from b402_mint.servers.apps import SaleServer, status_code_for

from sale_mocks import (
    BUYER_ADDRESS,
    ONE_TOKEN,
    RECIPIENT_ADDRESS,
    SERVICE_ADDRESS,
    USDT_ADDRESS,
    FakeConnection,
    FakeSaleContract,
    build_service,
    build_tokens,
    tx_hash,
)


def make_client(**kwargs):
    service = build_service(**kwargs)
    return TestClient(SaleServer(service, title="b402 sale test")), service


@pytest.mark.parametrize(
    "error, status",
    [
        (ValidationError("bad"), 400),
        (OnChainRevert("Exceeds allocation"), 400),
        (InvalidTransition("done"), 409),
        (AllEndpointsUnreachable("down"), 503),
        (ConfigurationError("no key"), 500),
    ],
)
def test_status_code_mapping(error, status):
    assert status_code_for(error) == status


def test_airdrop_mint_envelope():
    client, _ = make_client()

    response = client.post("/mint/airdrop", json={"address": RECIPIENT_ADDRESS, "amount": 500})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Airdropped 500 tokens"
    assert body["data"]["pool"] == "airdrop"
    assert body["data"]["recipient"] == RECIPIENT_ADDRESS
    assert body["data"]["remaining_after"] == "49500"


def test_validation_error_is_400_with_code():
    client, service = make_client()

    response = client.post("/mint/airdrop", json={"recipient": RECIPIENT_ADDRESS, "amount": 1_001})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "validation_error"
    assert body["retryable"] is False
    assert service.wallet.sent == []


def test_malformed_body_is_400():
    client, _ = make_client()

    response = client.post("/mint/bayc", json={"recipient": RECIPIENT_ADDRESS})

    assert response.status_code == 400
    assert response.json()["details"]["errors"][0]["loc"] == ["amount"]


def test_exhausted_pool_reports_remaining():
    remaining = {"airdrop": 10 * ONE_TOKEN, "bayc": 0, "liquidity": 0, "public": 0}
    client, _ = make_client(sale=FakeSaleContract(remaining=remaining))

    response = client.post("/mint/airdrop", json={"recipient": RECIPIENT_ADDRESS, "amount": 11})

    assert response.status_code == 400
    assert response.json()["code"] == "allocation_exhausted"


def test_batch_endpoint():
    client, _ = make_client()

    response = client.post(
        "/mint/airdrop/batch",
        json={"recipients": [{"address": RECIPIENT_ADDRESS, "amount": 25}]},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Batch complete: 1/1 successful"


def test_purchase_awaiting_approval_then_resume():
    tokens = build_tokens()
    usdt = tokens[USDT_ADDRESS]
    usdt.set_balance(BUYER_ADDRESS, 100 * ONE_TOKEN)
    client, service = make_client(tokens=tokens)

    started = client.post(
        "/purchase",
        json={"userAddress": BUYER_ADDRESS, "paymentToken": "USDT", "tokenAmount": 200},
    )

    assert started.status_code == 200
    session = started.json()["data"]
    assert session["state"] == "awaiting_approval"
    assert session["approval"]["spender"] == SERVICE_ADDRESS
    assert session["approval"]["required_amount"] == 10 * ONE_TOKEN
    assert "quote" not in session

    usdt.set_allowance(BUYER_ADDRESS, SERVICE_ADDRESS, 10 * ONE_TOKEN)
    resumed = client.post(f"/purchase/{session['id']}/resume", json={"approvalTxHash": tx_hash(9)})

    assert resumed.status_code == 200
    assert resumed.json()["data"]["state"] == "success"
    assert client.get(f"/purchase/{session['id']}").json()["data"]["state"] == "success"

    again = client.post(f"/purchase/{session['id']}/resume", json={"approvalTxHash": tx_hash(9)})
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"


def test_unknown_purchase_is_400():
    client, _ = make_client()

    assert client.get("/purchase/nope").status_code == 400


def test_hook_decorator_reaches_the_saga():
    tokens = build_tokens()
    tokens[USDT_ADDRESS].set_balance(BUYER_ADDRESS, 100 * ONE_TOKEN)
    tokens[USDT_ADDRESS].set_allowance(BUYER_ADDRESS, SERVICE_ADDRESS, 100 * ONE_TOKEN)
    service = build_service(tokens=tokens)
    app = SaleServer(service)
    seen = []

    @app.hook(PurchaseSucceededEvent)
    async def record(event, deps):
        seen.append(event.session_id)

    response = TestClient(app).post(
        "/purchase",
        json={"recipient": BUYER_ADDRESS, "token_symbol": "USDT", "token_amount": 20},
    )

    assert response.json()["data"]["state"] == "success"
    assert seen == [response.json()["data"]["id"]]


def test_disable_requires_confirmation_phrase():
    client, service = make_client()

    rejected = client.post("/mint/disable", json={"confirmation": "yes"})
    accepted = client.post("/mint/disable", json={"confirmation": DISABLE_MINTING_CONFIRMATION})

    assert rejected.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()["data"]["tx_hash"] == tx_hash(1000)
    assert len(service.wallet.sent) == 1


def test_allocation_and_status_reads():
    client, _ = make_client()

    allocation = client.get("/mint/allocation").json()["data"]
    status = client.get("/mint/status").json()["data"]

    assert allocation["pools"]["public"]["remaining"] == "700000"
    assert allocation["total_supply"] == 1_000_000
    assert status["minting_enabled"] is True
    assert status["service_wallet"] == SERVICE_ADDRESS


def test_health_is_503_when_rpc_is_down():
    client, _ = make_client(connection=FakeConnection(error=AllEndpointsUnreachable("down")))

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["checks"]["rpc"]["status"] == "error"
