"""
Test suite for PaymentAuthorizationSigner.
Tests: 1) Typed data and validity window 2) Signature recovers to the payer
3) Signer failures map to the signing errors
"""
import pytest

from b402_mint.adapters.evm.constants import DEFAULT_MERCHANT_ADDRESS, DEFAULT_RELAYER_ADDRESS
from b402_mint.adapters.evm.schemas import EVMECDSASignature
from b402_mint.adapters.evm.signatures import (
    LocalAccountSigner,
    PaymentAuthorizationSigner,
    TypedDataSigner,
    build_authorization_typed_data,
    generate_nonce,
)
from b402_mint.adapters.evm.verifies import (
    is_authorization_signed_by_payer,
    recover_authorization_signer,
)
from b402_mint.engine.exceptions import SigningRejected, SigningUnavailable, ValidationError
from b402_mint.schemas.bases import BaseSignature

from sale_mocks import BUYER_ADDRESS, BUYER_PRIVATE_KEY, SERVICE_ADDRESS, USDT_ADDRESS

NOW = 1_760_000_000


@pytest.fixture
def authorization_signer():
    return PaymentAuthorizationSigner(
        chain_id=56,
        relayer_address=DEFAULT_RELAYER_ADDRESS,
        merchant_address=DEFAULT_MERCHANT_ADDRESS,
    )


class DecliningSigner(TypedDataSigner):

    @property
    def address(self) -> str:
        return BUYER_ADDRESS

    async def sign_typed_data(self, typed_data):
        raise RuntimeError("User rejected the request")


class GarbageSigner(DecliningSigner):

    async def sign_typed_data(self, typed_data):
        return "0xdeadbeef"


@pytest.mark.asyncio
async def test_authorization_fields(authorization_signer):
    authorization = await authorization_signer.create_authorization(
        payer=BUYER_ADDRESS,
        token_address=USDT_ADDRESS,
        amount="25.5",
        signer=LocalAccountSigner(BUYER_PRIVATE_KEY),
        now=NOW,
    )

    assert authorization.value == 25_500_000_000_000_000_000
    assert authorization.validAfter == NOW
    assert authorization.validBefore == NOW + 3600
    assert authorization.recipient == DEFAULT_MERCHANT_ADDRESS
    assert authorization.chain_id == 56
    assert authorization.nonce.startswith("0x") and len(authorization.nonce) == 66
    assert authorization.signature.v in (27, 28)
    assert not authorization.is_expired(NOW + 3599)
    assert authorization.is_expired(NOW + 3600)


@pytest.mark.asyncio
async def test_signature_recovers_to_payer(authorization_signer):
    authorization = await authorization_signer.create_authorization(
        payer=BUYER_ADDRESS,
        token_address=USDT_ADDRESS,
        amount=10,
        signer=LocalAccountSigner(BUYER_PRIVATE_KEY),
    )

    assert recover_authorization_signer(authorization, verifying_contract=DEFAULT_RELAYER_ADDRESS) == BUYER_ADDRESS
    assert is_authorization_signed_by_payer(authorization, verifying_contract=DEFAULT_RELAYER_ADDRESS)
    # bound to the relayer domain
    assert not is_authorization_signed_by_payer(authorization, verifying_contract=SERVICE_ADDRESS)


@pytest.mark.asyncio
async def test_nonces_are_fresh(authorization_signer):
    signer = LocalAccountSigner(BUYER_PRIVATE_KEY)
    first = await authorization_signer.create_authorization(BUYER_ADDRESS, USDT_ADDRESS, 1, signer=signer)
    second = await authorization_signer.create_authorization(BUYER_ADDRESS, USDT_ADDRESS, 1, signer=signer)

    assert first.nonce != second.nonce


def test_typed_data_uses_b402_domain(authorization_signer):
    from b402_mint.adapters.evm.schemas import PaymentAuthorization

    authorization = PaymentAuthorization(
        token=USDT_ADDRESS,
        chain_id=56,
        authorizer=BUYER_ADDRESS,
        recipient=DEFAULT_MERCHANT_ADDRESS,
        value=1,
        validAfter=NOW,
        validBefore=NOW + 3600,
        nonce="0x" + "00" * 32,
    )
    typed = build_authorization_typed_data(authorization, verifying_contract=DEFAULT_RELAYER_ADDRESS).to_dict()

    assert typed["primaryType"] == "TransferWithAuthorization"
    assert typed["domain"] == {
        "name": "B402",
        "version": "1",
        "chainId": 56,
        "verifyingContract": DEFAULT_RELAYER_ADDRESS,
    }
    assert typed["message"]["from"] == BUYER_ADDRESS
    assert typed["message"]["to"] == DEFAULT_MERCHANT_ADDRESS


@pytest.mark.asyncio
async def test_no_signer_is_unavailable(authorization_signer):
    with pytest.raises(SigningUnavailable):
        await authorization_signer.create_authorization(BUYER_ADDRESS, USDT_ADDRESS, 1)


@pytest.mark.asyncio
async def test_declined_and_malformed_signatures_are_rejected(authorization_signer):
    with pytest.raises(SigningRejected):
        await authorization_signer.create_authorization(BUYER_ADDRESS, USDT_ADDRESS, 1, signer=DecliningSigner())
    with pytest.raises(SigningRejected):
        await authorization_signer.create_authorization(BUYER_ADDRESS, USDT_ADDRESS, 1, signer=GarbageSigner())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payer, token, amount",
    [
        ("0x123", USDT_ADDRESS, 1),
        (BUYER_ADDRESS, "usdt", 1),
        (BUYER_ADDRESS, USDT_ADDRESS, 0),
        (BUYER_ADDRESS, USDT_ADDRESS, "1e-19"),
        (SERVICE_ADDRESS, USDT_ADDRESS, 1),  # not the signer
    ],
)
async def test_invalid_inputs_rejected(authorization_signer, payer, token, amount):
    with pytest.raises(ValidationError):
        await authorization_signer.create_authorization(
            payer, token, amount, signer=LocalAccountSigner(BUYER_PRIVATE_KEY),
        )


def test_packed_signature_round_trip_normalises_v():
    packed = "0x" + "11" * 32 + "22" * 32 + "01"
    signature = EVMECDSASignature.from_packed_hex(packed)

    assert signature.v == 28
    assert signature.to_packed_hex() == "0x" + "11" * 32 + "22" * 32 + "1c"
    with pytest.raises(ValueError):
        EVMECDSASignature.from_packed_hex("0x1234")


def test_signature_models_must_implement_format_check():
    class Unchecked(BaseSignature):
        signature_type: str = "B402"

    with pytest.raises(TypeError):
        Unchecked()


def test_nonce_fills_bytes32():
    nonce = generate_nonce()

    assert nonce.startswith("0x") and len(nonce) == 66
    assert generate_nonce() != nonce
