"""
B402 Token Sale Server - FastAPI wrapper around :class:`TokenSaleService`.

Every successful response is ``{"success": true, "message": ..., "data": ...}``;
every sale error is ``{"success": false, "code", "message", "retryable", "details"}``
with an HTTP status derived from the error class.
"""

import logging
from typing import Any, Callable, Optional, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..engine.events import BaseEvent
from ..engine.exceptions import (
    ConfigurationError,
    ConnectivityError,
    InvalidTransition,
    SaleError,
    ValidationError,
)
from ..minting.pools import AllocationPool
from ..schemas.https import (
    ApiResponse,
    BatchMintRequest,
    DisableMintingRequest,
    MintRequest,
    PublicMintRequest,
    PurchaseRequest,
    ResumePurchaseRequest,
    VerifyTransactionRequest,
)
from ..service import TokenSaleService

logger = logging.getLogger(__name__)


def status_code_for(error: SaleError) -> int:
    """HTTP status for a sale error."""
    if isinstance(error, InvalidTransition):
        return 409
    if isinstance(error, ConnectivityError):
        return 503
    if isinstance(error, ConfigurationError):
        return 500
    return 400


def error_response(error: SaleError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code_for(error),
        content={"success": False, **error.to_dict()},
    )


def ok(data: Any = None, message: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content=ApiResponse(message=message, data=data).model_dump(mode="json"),
    )


async def parse_body(request: Request, model: Type[BaseModel]) -> Any:
    """
    Validate the JSON body against ``model``.

    Raises:
        ValidationError: Body is not JSON or does not match the model.
    """
    try:
        payload = await request.json()
    except ValueError as e:
        raise ValidationError("Request body must be JSON") from e
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid request body",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class SaleServer(FastAPI):
    """FastAPI server exposing the token sale."""

    def __init__(self, service: TokenSaleService, **fastapi_kwargs):
        """Initialize the sale server.

        Args:
            service: Fully wired token sale service
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.service = service

        super().__init__(**fastapi_kwargs)

        self.add_exception_handler(SaleError, self._handle_sale_error)
        self._setup_mint_endpoints()
        self._setup_purchase_endpoints()
        self._setup_status_endpoints()

    @staticmethod
    async def _handle_sale_error(request: Request, exc: SaleError) -> JSONResponse:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
        return error_response(exc)

    # ------------------------------------------------------------------
    # Purchase saga extension points
    # ------------------------------------------------------------------

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register a purchase event handler.

        Example:
            ```python
            async def on_success(event: PurchaseSucceededEvent, deps: Dependencies):
                return None

            app.subscribe(PurchaseSucceededEvent, on_success)
            ```
        """
        self.service.orchestrator.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register a purchase event hook for side effects."""
        self.service.orchestrator.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering purchase event hooks.

        Example:
            @app.hook(PurchaseFailedEvent)
            async def alert(event, deps):
                await notify(event.code)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.add_hook(event_class, hook_func)
            return hook_func
        return decorator

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _setup_mint_endpoints(self) -> None:
        service = self.service

        @self.post("/mint")
        async def mint_public(request: Request):
            body = await parse_body(request, PublicMintRequest)
            result = await service.mint_public_with_payment(body.recipient, body.amount, body.tx_hash)
            return ok(result, f"Minted {body.amount} tokens")

        @self.post("/mint/airdrop")
        async def mint_airdrop(request: Request):
            body = await parse_body(request, MintRequest)
            result = await service.mint_airdrop(body.recipient, body.amount)
            return ok(result, f"Airdropped {body.amount} tokens")

        @self.post("/mint/bayc")
        async def mint_bayc(request: Request):
            body = await parse_body(request, MintRequest)
            result = await service.mint_bayc(body.recipient, body.amount)
            return ok(result, f"Minted {body.amount} BAYC allocation tokens")

        @self.post("/mint/liquidity")
        async def mint_liquidity(request: Request):
            body = await parse_body(request, MintRequest)
            result = await service.mint_liquidity(body.recipient, body.amount)
            return ok(result, f"Minted {body.amount} liquidity tokens")

        @self.post("/mint/airdrop/batch")
        async def mint_airdrop_batch(request: Request):
            body = await parse_body(request, BatchMintRequest)
            summary = await service.mint_batch(
                AllocationPool.AIRDROP,
                [(entry.recipient, entry.amount) for entry in body.recipients],
            )
            return ok(summary, f"Batch complete: {summary.successful}/{summary.total} successful")

        @self.post("/mint/verify")
        async def verify_transaction(request: Request):
            body = await parse_body(request, VerifyTransactionRequest)
            confirmed = await service.verify_payment_transaction(body.tx_hash)
            return ok({"tx_hash": body.tx_hash, "confirmed": confirmed})

        @self.post("/mint/disable")
        async def disable_minting(request: Request):
            body = await parse_body(request, DisableMintingRequest)
            result = await service.disable_minting(body.confirmation, body.reason)
            return ok(result, "Minting permanently disabled")

    def _setup_purchase_endpoints(self) -> None:
        service = self.service

        @self.post("/purchase")
        async def start_purchase(request: Request):
            body = await parse_body(request, PurchaseRequest)
            session = await service.purchase(body.recipient, body.token_symbol, body.token_amount)
            return ok(session, f"Purchase {session.state.value}")

        @self.post("/purchase/{purchase_id}/resume")
        async def resume_purchase(purchase_id: str, request: Request):
            body = await parse_body(request, ResumePurchaseRequest)
            session = await service.resume_purchase(purchase_id, body.approval_tx_hash)
            return ok(session, f"Purchase {session.state.value}")

        @self.get("/purchase/{purchase_id}")
        async def get_purchase(purchase_id: str):
            return ok(service.get_purchase(purchase_id))

    def _setup_status_endpoints(self) -> None:
        service = self.service

        @self.get("/mint/allocation")
        async def allocation_status():
            return ok(await service.get_allocation_status())

        @self.get("/mint/status")
        async def minting_status():
            return ok(await service.get_minting_status())

        @self.get("/health")
        async def health():
            report = await service.health()
            status_code = 503 if report["status"] == "error" else 200
            return JSONResponse(status_code=status_code, content=report)
