"""
Event-driven system with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data. The gasless purchase saga is
expressed as a chain of these events:

    PurchaseRequestedEvent -> PaymentQuotedEvent
        -> ApprovalRequiredEvent                    (chain stops, awaiting user)
        -> AllowanceSufficientEvent -> PaymentTransferredEvent -> PurchaseSucceededEvent
    ApprovalObservedEvent -> AllowanceSufficientEvent -> ...
    any step -> PurchaseFailedEvent
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Callable, Optional, Awaitable, AsyncGenerator

from pydantic import BaseModel, ConfigDict, Field

from ..adapters.evm.allowance import AllowanceManager
from ..adapters.evm.contracts import TokenSaleContract
from ..adapters.evm.wallet import ServiceWallet
from ..adapters.registry import PaymentTokenRegistry
from ..minting.engine import MintEngine, MintResult
from ..schemas.bases import CanonicalModel

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


class PurchaseQuote(CanonicalModel):
    """Priced purchase: what the buyer pays, in which token, to whom."""
    recipient: str
    token_symbol: str
    token_address: str
    token_amount: int
    required_payment: int
    spender: str
    decimals: int = 18


# ==================== Trigger Events (External) ====================

class PurchaseRequestedEvent(BaseModel, BaseEvent):
    """External trigger: buyer asks for ``token_amount`` paid in ``token_symbol``."""
    session_id: str
    recipient: str
    token_symbol: str
    token_amount: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PurchaseRequestedEvent(session={self.session_id}, amount={self.token_amount}, token={self.token_symbol})"


class ApprovalObservedEvent(BaseModel, BaseEvent):
    """External trigger: buyer reports the hash of their approve transaction."""
    session_id: str
    approval_tx_hash: str
    quote: PurchaseQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"ApprovalObservedEvent(session={self.session_id}, tx={self.approval_tx_hash})"


# ==================== Intermediate Events ====================

class PaymentQuotedEvent(BaseModel, BaseEvent):
    """Purchase validated and priced."""
    session_id: str
    quote: PurchaseQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PaymentQuotedEvent(session={self.session_id}, required={self.quote.required_payment})"


class AllowanceSufficientEvent(BaseModel, BaseEvent):
    """The spender may pull the quoted payment."""
    session_id: str
    quote: PurchaseQuote
    allowance: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"AllowanceSufficientEvent(session={self.session_id})"


class PaymentTransferredEvent(BaseModel, BaseEvent):
    """``transferFrom`` confirmed; its hash is the mint's payment reference."""
    session_id: str
    quote: PurchaseQuote
    transfer_tx_hash: str

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PaymentTransferredEvent(session={self.session_id}, tx={self.transfer_tx_hash})"


# ==================== Result Events ====================

class ApprovalRequiredEvent(BaseModel, BaseEvent):
    """Result: the buyer must approve ``required_amount`` for ``spender`` first."""
    session_id: str
    quote: PurchaseQuote
    current_allowance: int

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return (
            f"ApprovalRequiredEvent(session={self.session_id}, "
            f"required={self.quote.required_payment}, current={self.current_allowance})"
        )


class PurchaseSucceededEvent(BaseModel, BaseEvent):
    """Result: tokens minted to the buyer."""
    session_id: str
    mint_result: MintResult

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PurchaseSucceededEvent(session={self.session_id}, tx={self.mint_result.tx_hash})"


class PurchaseFailedEvent(BaseModel, BaseEvent):
    """Result: the saga stopped at its first failure."""
    session_id: str
    code: str
    message: str
    retryable: bool = False
    tx_hash: Optional[str] = None
    cause: Optional[str] = Field(None, description="Code of the underlying error, when wrapped")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"PurchaseFailedEvent(session={self.session_id}, code={self.code})"


class BreakEvent(BaseModel, BaseEvent):
    """Internal event to break the event chain."""
    break_reason: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return "BreakEvent()"


# ==================== Dependencies Container ====================

TransactionVerifier = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only)."""
    sale: Optional[TokenSaleContract] = None
    allowance: Optional[AllowanceManager] = None
    mint_engine: Optional[MintEngine] = None
    wallet: Optional[ServiceWallet] = None
    registry: Optional[PaymentTokenRegistry] = None
    transaction_verifier: Optional[TransactionVerifier] = None


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Event dispatcher for publishing and subscribing to events."""

    def __init__(self) -> None:
        """Initialize with empty subscribers and hooks."""
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register an async handler for the given event class.
        Multiple handlers can be subscribed to the same event type and run in parallel.

        Raises:
            TypeError: If handler is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        self._subscribers.setdefault(event_class, []).append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.
        Hooks are executed before subscribers when the event is dispatched.

        Raises:
            TypeError: If hook_func is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Hook must be a coroutine function, got {type(hook_func).__name__}")

        self._hooks.setdefault(event_class, []).append(hook_func)

    async def dispatch(self, event: BaseEvent, deps: Dependencies) -> AsyncGenerator[Optional[BaseEvent], None]:
        """
        Dispatch an event to all registered hooks and subscribers.
        Hooks run first, then all subscribers run in parallel.

        Yields:
            Results from all subscribers as they complete. Yields nothing if
            no subscribers are registered.
        """
        hooks = self._hooks.get(type(event), [])
        await asyncio.gather(*(hook(event, deps) for hook in hooks))

        handlers = self._subscribers.get(type(event), [])
        if not handlers:
            return

        tasks = [handler(event, deps) for handler in handlers]
        for coro in asyncio.as_completed(tasks):
            result = await coro
            yield result
