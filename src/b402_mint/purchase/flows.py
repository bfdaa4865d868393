"""
Built-in event handlers for the gasless purchase saga.

Implements: validate and quote -> allowance check -> transferFrom -> mint.
Each handler turns the first failure into a ``PurchaseFailedEvent`` so the
chain always ends in a result event.
"""

import asyncio
import logging

from ..engine.events import (
    EventBus,
    Dependencies,
    PurchaseQuote,
    PurchaseRequestedEvent,
    PaymentQuotedEvent,
    ApprovalRequiredEvent,
    ApprovalObservedEvent,
    AllowanceSufficientEvent,
    PaymentTransferredEvent,
    PurchaseSucceededEvent,
    PurchaseFailedEvent,
)
from ..engine.exceptions import (
    AllocationExhausted,
    AllowanceInsufficient,
    ApprovalNotReflected,
    MintingDisabled,
    PaymentTokenNotAccepted,
    SaleError,
    ValidationError,
)
from ..adapters.evm.constants import SALE_TOKEN_DECIMALS
from ..adapters.evm.verifies import validate_tx_hash
from ..minting.engine import MintEngine
from ..minting.pools import AllocationPool

logger = logging.getLogger(__name__)

_ONE_TOKEN = 10 ** SALE_TOKEN_DECIMALS

MINT_FAILED_AFTER_PAYMENT = "mint_failed_after_payment"


def _failed(session_id: str, error: Exception) -> PurchaseFailedEvent:
    if isinstance(error, SaleError):
        return PurchaseFailedEvent(
            session_id=session_id,
            code=error.code,
            message=error.message,
            retryable=error.retryable,
            tx_hash=error.details.get("tx_hash"),
        )
    logger.exception("Unexpected error in purchase %s", session_id, exc_info=error)
    return PurchaseFailedEvent(
        session_id=session_id,
        code="unknown_error",
        message=str(error) or type(error).__name__,
        retryable=False,
    )


# ==================== Event Handlers ====================

async def handle_purchase_requested(
    event: PurchaseRequestedEvent,
    deps: Dependencies
) -> PaymentQuotedEvent | PurchaseFailedEvent:
    """Validate the request, check sale state and quote the price."""
    try:
        recipient = MintEngine.validate_request(AllocationPool.PUBLIC, event.recipient, event.token_amount)
        asset = deps.registry.resolve(event.token_symbol)
        token_amount_wei = event.token_amount * _ONE_TOKEN

        minting, public_sale, accepted, remaining = await asyncio.gather(
            deps.sale.minting_enabled(),
            deps.sale.public_sale_enabled(),
            deps.sale.is_payment_token_accepted(asset.address),
            deps.sale.remaining_allocation(AllocationPool.PUBLIC.value),
        )
        if not minting:
            raise MintingDisabled("Minting is disabled on the sale contract")
        if not public_sale:
            raise MintingDisabled("Public sale is not active")
        if not accepted:
            raise PaymentTokenNotAccepted(
                f"{asset.symbol} is not accepted by the sale contract",
                {"token": asset.address},
            )
        if token_amount_wei > remaining:
            raise AllocationExhausted(
                "Insufficient public allocation",
                {"requested": event.token_amount, "remaining": str(remaining // _ONE_TOKEN)},
            )

        required = await deps.sale.calculate_payment(token_amount_wei, asset.address)
        balance = await deps.allowance.token(asset.address).balance_of(recipient)
        if balance < required:
            raise ValidationError(
                f"Insufficient {asset.symbol} balance",
                {"required": str(required), "available": str(balance)},
            )

        return PaymentQuotedEvent(
            session_id=event.session_id,
            quote=PurchaseQuote(
                recipient=recipient,
                token_symbol=asset.symbol,
                token_address=asset.address,
                token_amount=event.token_amount,
                required_payment=required,
                spender=deps.wallet.address,
                decimals=asset.decimals,
            ),
        )
    except Exception as e:
        return _failed(event.session_id, e)


async def handle_payment_quoted(
    event: PaymentQuotedEvent,
    deps: Dependencies
) -> AllowanceSufficientEvent | ApprovalRequiredEvent | PurchaseFailedEvent:
    """Check whether the spender may already pull the quoted payment."""
    quote = event.quote
    try:
        allowance = await deps.allowance.ensure_allowance(
            quote.token_address, quote.recipient, quote.spender, quote.required_payment,
        )
        return AllowanceSufficientEvent(session_id=event.session_id, quote=quote, allowance=allowance)
    except AllowanceInsufficient as e:
        return ApprovalRequiredEvent(session_id=event.session_id, quote=quote, current_allowance=e.current)
    except Exception as e:
        return _failed(event.session_id, e)


async def handle_approval_observed(
    event: ApprovalObservedEvent,
    deps: Dependencies
) -> AllowanceSufficientEvent | PurchaseFailedEvent:
    """Confirm the buyer's approval landed, then read the allowance again."""
    quote = event.quote
    try:
        tx_hash = validate_tx_hash(event.approval_tx_hash, "approval_tx_hash")
        if deps.transaction_verifier is not None and not await deps.transaction_verifier(tx_hash):
            raise ApprovalNotReflected(
                "Approval transaction is not confirmed",
                {"approval_tx_hash": tx_hash},
            )
        allowance = await deps.allowance.ensure_allowance(
            quote.token_address, quote.recipient, quote.spender, quote.required_payment,
        )
        return AllowanceSufficientEvent(session_id=event.session_id, quote=quote, allowance=allowance)
    except Exception as e:
        return _failed(event.session_id, e)


async def handle_allowance_sufficient(
    event: AllowanceSufficientEvent,
    deps: Dependencies
) -> PaymentTransferredEvent | PurchaseFailedEvent:
    """Pull the payment from the buyer to the facilitator."""
    quote = event.quote
    try:
        token = deps.allowance.token(quote.token_address)
        call = await token.transfer_from_call(quote.recipient, quote.spender, quote.required_payment)
        confirmation = await deps.wallet.transact(call, description="transferFrom")
        return PaymentTransferredEvent(
            session_id=event.session_id,
            quote=quote,
            transfer_tx_hash=confirmation.tx_hash,
        )
    except Exception as e:
        return _failed(event.session_id, e)


async def handle_payment_transferred(
    event: PaymentTransferredEvent,
    deps: Dependencies
) -> PurchaseSucceededEvent | PurchaseFailedEvent:
    """Mint the purchased tokens, keyed by the transfer hash."""
    quote = event.quote
    try:
        result = await deps.mint_engine.mint_purchase(
            recipient=quote.recipient,
            amount=quote.token_amount,
            payment_token=quote.token_address,
            payment_amount=quote.required_payment,
            payment_ref=event.transfer_tx_hash,
        )
        return PurchaseSucceededEvent(session_id=event.session_id, mint_result=result)
    except Exception as e:
        # Payment has moved; never retryable from IDLE.
        failed = _failed(event.session_id, e)
        logger.error(
            "Purchase %s paid by %s but mint failed: %s", event.session_id, event.transfer_tx_hash, failed.code,
        )
        return PurchaseFailedEvent(
            session_id=event.session_id,
            code=MINT_FAILED_AFTER_PAYMENT,
            message=f"Payment {event.transfer_tx_hash} was received but the mint failed: {failed.message}",
            retryable=False,
            tx_hash=event.transfer_tx_hash,
            cause=failed.code,
        )


# ==================== Event Bus Setup ====================

def setup_event_bus() -> EventBus:
    """Create an event bus with the purchase saga handlers registered."""
    event_bus = EventBus()

    event_bus.subscribe(PurchaseRequestedEvent, handle_purchase_requested)
    event_bus.subscribe(PaymentQuotedEvent, handle_payment_quoted)
    event_bus.subscribe(ApprovalObservedEvent, handle_approval_observed)
    event_bus.subscribe(AllowanceSufficientEvent, handle_allowance_sufficient)
    event_bus.subscribe(PaymentTransferredEvent, handle_payment_transferred)

    return event_bus
