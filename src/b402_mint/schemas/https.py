"""
HTTP Request/Response Schema Models for the b402 token sale

Two groups of models live here:

1. The facilitator wire format. Both ``/verify`` and ``/settle`` accept the
   same body::

       {
         "paymentPayload": {
           "token": "<payment token address>",
           "payload": {
             "authorization": {from, to, value, validAfter, validBefore, nonce},
             "signature": "0x<r||s||v>"
           }
         },
         "paymentRequirements": {"relayerContract": "<address>", "network": "bsc"}
       }

   ``/verify`` answers ``{isValid, invalidReason?}`` and ``/settle`` answers
   ``{success, transaction | txHash | transactionHash, errorReason?}``.

2. The request bodies accepted by the sale HTTP surface.
"""

from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, ConfigDict, AliasChoices


# ============================================================================
# Facilitator wire format
# ============================================================================

class FacilitatorAuthorization(BaseModel):
    """Authorization fields as the facilitator expects them (EIP-712 names)."""
    model_config = ConfigDict(populate_by_name=True)

    authorizer: str = Field(..., alias="from")
    recipient: str = Field(..., alias="to")
    value: str = Field(..., description="Amount in base units, decimal string")
    validAfter: int
    validBefore: int
    nonce: str


class FacilitatorPayload(BaseModel):
    authorization: FacilitatorAuthorization
    signature: str = Field(..., description="Packed 65-byte signature (r || s || v)")


class FacilitatorPaymentPayload(BaseModel):
    token: str = Field(..., description="Payment token contract address")
    payload: FacilitatorPayload


class FacilitatorPaymentRequirements(BaseModel):
    relayerContract: str
    network: str = "bsc"


class FacilitatorRequest(BaseModel):
    """Body posted to both ``/verify`` and ``/settle``."""
    paymentPayload: FacilitatorPaymentPayload
    paymentRequirements: FacilitatorPaymentRequirements

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class VerifyResponse(BaseModel):
    """Facilitator ``/verify`` answer."""
    model_config = ConfigDict(extra="allow")

    isValid: bool = False
    invalidReason: Optional[str] = None


class SettleResponse(BaseModel):
    """Facilitator ``/settle`` answer.

    The settlement transaction hash has been observed under three different
    keys; all of them land in ``transaction``.
    """
    model_config = ConfigDict(extra="allow")

    success: bool = False
    transaction: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("transaction", "txHash", "transactionHash"),
    )
    errorReason: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None


# ============================================================================
# Sale HTTP surface
# ============================================================================

class MintRequest(BaseModel):
    """Body for the per-pool mint endpoints."""
    recipient: str = Field(..., validation_alias=AliasChoices("recipient", "address", "userAddress"))
    amount: int


class PublicMintRequest(MintRequest):
    """Public mint backed by an on-chain payment transaction."""
    tx_hash: str = Field(..., validation_alias=AliasChoices("tx_hash", "txHash", "paymentTxHash"))


class BatchMintEntryRequest(BaseModel):
    recipient: str = Field(..., validation_alias=AliasChoices("recipient", "address"))
    amount: int


class BatchMintRequest(BaseModel):
    recipients: List[BatchMintEntryRequest] = Field(default_factory=list)


class PurchaseRequest(BaseModel):
    """Start a gasless purchase."""
    recipient: str = Field(..., validation_alias=AliasChoices("recipient", "userAddress"))
    token_symbol: str = Field(..., validation_alias=AliasChoices("token_symbol", "paymentToken", "tokenSymbol"))
    token_amount: int = Field(..., validation_alias=AliasChoices("token_amount", "tokenAmount"))


class ResumePurchaseRequest(BaseModel):
    approval_tx_hash: str = Field(..., validation_alias=AliasChoices("approval_tx_hash", "approvalTxHash"))


class VerifyTransactionRequest(BaseModel):
    tx_hash: str = Field(..., validation_alias=AliasChoices("tx_hash", "txHash"))


class DisableMintingRequest(BaseModel):
    confirmation: str
    reason: Optional[str] = None


class ApiResponse(BaseModel):
    """Envelope returned by every successful sale endpoint."""
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None
