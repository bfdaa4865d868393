import logging

from b402_mint import SaleSettings, TokenSaleService
from b402_mint.engine.events import (
    ApprovalRequiredEvent,
    PurchaseFailedEvent,
    PurchaseSucceededEvent,
)
from b402_mint.servers import SaleServer

logging.basicConfig(level=logging.INFO)

# Reads FACILITATOR_PRIVATE_KEY, CONTRACT_ADDRESS and BSC_RPC_URL(S) from .env
service = TokenSaleService.from_settings(SaleSettings.from_env())

app = SaleServer(
    service,
    title="B402 Token Sale API",
)


# Optional: Add event hooks for custom logic
@app.hook(ApprovalRequiredEvent)
async def on_approval_required(event, deps):
    """Log what the buyer has to approve."""
    print(f"⏳ Approval required: {event.quote.required_payment} of {event.quote.token_address} for {event.quote.spender}")

@app.hook(PurchaseSucceededEvent)
async def on_purchase_success(event, deps):
    """Log completed purchases."""
    print(f"✅ Purchase {event.session_id} minted: {event.mint_result.tx_hash}")

@app.hook(PurchaseFailedEvent)
async def on_purchase_failed(event, deps):
    """Log failed purchases."""
    print(f"❌ Purchase {event.session_id} failed: {event.code}")


@app.on_event("shutdown")
async def close_service():
    await service.aclose()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000, log_level="debug")
