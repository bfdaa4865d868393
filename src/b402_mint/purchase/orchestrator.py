"""
Gasless purchase orchestrator.

Drives one purchase session through

    IDLE -> CHECKING_APPROVAL ------------------> TRANSFERRING -> MINTING -> SUCCESS
                  |                                 ^
                  +--> AWAITING_APPROVAL --resume---+
    (any non-terminal state) -> ERROR

``resume`` re-reads the allowance while the session is still
``AWAITING_APPROVAL`` and moves it straight to ``TRANSFERRING`` once the
approval is reflected.

The work itself is done by the event handlers in :mod:`.flows`; this class
owns the sessions and moves them along the transition table from event
hooks, so an event that would take a session along an illegal edge raises
:class:`InvalidTransition` instead of being applied.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import Field

from .flows import setup_event_bus
from ..adapters.evm.constants import value_to_amount
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
from ..engine.exceptions import InvalidTransition, ValidationError
from ..engine.executors import EventChain
from ..minting.engine import MintResult
from ..schemas.bases import CanonicalModel

logger = logging.getLogger(__name__)


class PurchaseState(str, Enum):
    IDLE = "idle"
    CHECKING_APPROVAL = "checking_approval"
    AWAITING_APPROVAL = "awaiting_approval"
    TRANSFERRING = "transferring"
    MINTING = "minting"
    SUCCESS = "success"
    ERROR = "error"


TRANSITIONS: Dict[PurchaseState, FrozenSet[PurchaseState]] = {
    PurchaseState.IDLE: frozenset({PurchaseState.CHECKING_APPROVAL, PurchaseState.ERROR}),
    PurchaseState.CHECKING_APPROVAL: frozenset({
        PurchaseState.AWAITING_APPROVAL,
        PurchaseState.TRANSFERRING,
        PurchaseState.ERROR,
    }),
    PurchaseState.AWAITING_APPROVAL: frozenset({PurchaseState.TRANSFERRING, PurchaseState.ERROR}),
    PurchaseState.TRANSFERRING: frozenset({PurchaseState.MINTING, PurchaseState.ERROR}),
    PurchaseState.MINTING: frozenset({PurchaseState.SUCCESS, PurchaseState.ERROR}),
    PurchaseState.SUCCESS: frozenset(),
    PurchaseState.ERROR: frozenset(),
}


class ApprovalRequired(CanonicalModel):
    """What the buyer must approve before the purchase can continue."""
    token_address: str
    spender: str = Field(..., description="Facilitator address to approve")
    required_amount: int = Field(..., description="Exact amount to approve, base units")
    required_amount_display: Decimal
    current_allowance: int


class PurchaseError(CanonicalModel):
    code: str
    message: str
    retryable: bool = False
    cause: Optional[str] = None


class PurchaseSession(CanonicalModel):
    """In-memory record of one gasless purchase."""
    id: str
    recipient: str
    token_symbol: str
    token_amount: int
    state: PurchaseState = PurchaseState.IDLE
    token_address: Optional[str] = None
    required_payment: Optional[int] = None
    required_payment_display: Optional[Decimal] = None
    facilitator_address: Optional[str] = None
    approval: Optional[ApprovalRequired] = None
    approval_tx_hash: Optional[str] = None
    transfer_tx_hash: Optional[str] = None
    mint_tx_hash: Optional[str] = None
    mint_result: Optional[MintResult] = None
    error: Optional[PurchaseError] = None
    quote: Optional[PurchaseQuote] = Field(None, exclude=True)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]


class GaslessPurchaseOrchestrator:
    """
    Approval -> transfer -> mint saga for buyers paying in stablecoins.

    Example:
        orchestrator = GaslessPurchaseOrchestrator(deps)
        session = await orchestrator.purchase(buyer, "USDT", 200)
        if session.state is PurchaseState.AWAITING_APPROVAL:
            # buyer approves session.approval.required_amount for session.approval.spender
            session = await orchestrator.resume(session.id, approval_tx_hash)
    """

    def __init__(self, deps: Dependencies, event_bus: Optional[EventBus] = None):
        self.deps = deps
        self.event_bus = event_bus or setup_event_bus()
        self._sessions: Dict[str, PurchaseSession] = {}

        self.event_bus.hook(PaymentQuotedEvent, self._on_quoted)
        self.event_bus.hook(ApprovalRequiredEvent, self._on_approval_required)
        self.event_bus.hook(AllowanceSufficientEvent, self._on_allowance_sufficient)
        self.event_bus.hook(PaymentTransferredEvent, self._on_transferred)
        self.event_bus.hook(PurchaseSucceededEvent, self._on_succeeded)
        self.event_bus.hook(PurchaseFailedEvent, self._on_failed)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def purchase(self, recipient: str, token_symbol: str, token_amount: int) -> PurchaseSession:
        """
        Start a purchase and run it as far as it can go without the buyer.

        Returns:
            The session, in ``AWAITING_APPROVAL`` (with ``approval`` filled
            in), ``SUCCESS`` or ``ERROR``.
        """
        session = PurchaseSession(
            id=uuid.uuid4().hex,
            recipient=recipient,
            token_symbol=token_symbol,
            token_amount=token_amount,
        )
        self._sessions[session.id] = session
        self._transition(session, PurchaseState.CHECKING_APPROVAL)

        await EventChain(self.event_bus, self.deps).run(PurchaseRequestedEvent(
            session_id=session.id,
            recipient=recipient,
            token_symbol=token_symbol,
            token_amount=token_amount,
        ))
        return session

    async def resume(self, purchase_id: str, approval_tx_hash: str) -> PurchaseSession:
        """
        Continue a session after the buyer confirmed their approval.

        Raises:
            ValidationError: Unknown purchase id.
            InvalidTransition: The session is not awaiting approval, or
                another resume is already in flight.
        """
        session = self.get_session(purchase_id)
        if session.state is not PurchaseState.AWAITING_APPROVAL or session.approval_tx_hash is not None:
            raise InvalidTransition(
                f"Purchase {purchase_id} cannot be resumed from {session.state.value}",
                {"purchase_id": purchase_id, "state": session.state.value},
            )

        session.approval_tx_hash = approval_tx_hash

        await EventChain(self.event_bus, self.deps).run(ApprovalObservedEvent(
            session_id=session.id,
            approval_tx_hash=approval_tx_hash,
            quote=session.quote,
        ))
        return session

    def get_session(self, purchase_id: str) -> PurchaseSession:
        """
        Raises:
            ValidationError: Unknown purchase id.
        """
        session = self._sessions.get(purchase_id)
        if session is None:
            raise ValidationError(f"Unknown purchase: {purchase_id}", {"purchase_id": purchase_id})
        return session

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, session: PurchaseSession, new_state: PurchaseState) -> None:
        if new_state not in TRANSITIONS[session.state]:
            raise InvalidTransition(
                f"Cannot move purchase {session.id} from {session.state.value} to {new_state.value}",
                {"purchase_id": session.id, "from": session.state.value, "to": new_state.value},
            )
        logger.info("Purchase %s: %s -> %s", session.id, session.state.value, new_state.value)
        session.state = new_state
        session.updated_at = datetime.now()

    # ------------------------------------------------------------------
    # Event hooks
    # ------------------------------------------------------------------

    async def _on_quoted(self, event: PaymentQuotedEvent, deps: Dependencies) -> None:
        session = self._sessions[event.session_id]
        quote = event.quote
        session.quote = quote
        session.recipient = quote.recipient
        session.token_symbol = quote.token_symbol
        session.token_address = quote.token_address
        session.required_payment = quote.required_payment
        session.required_payment_display = value_to_amount(value=quote.required_payment, decimals=quote.decimals)
        session.facilitator_address = quote.spender

    async def _on_approval_required(self, event: ApprovalRequiredEvent, deps: Dependencies) -> None:
        session = self._sessions[event.session_id]
        quote = event.quote
        self._transition(session, PurchaseState.AWAITING_APPROVAL)
        session.approval = ApprovalRequired(
            token_address=quote.token_address,
            spender=quote.spender,
            required_amount=quote.required_payment,
            required_amount_display=value_to_amount(value=quote.required_payment, decimals=quote.decimals),
            current_allowance=event.current_allowance,
        )

    async def _on_allowance_sufficient(self, event: AllowanceSufficientEvent, deps: Dependencies) -> None:
        self._transition(self._sessions[event.session_id], PurchaseState.TRANSFERRING)

    async def _on_transferred(self, event: PaymentTransferredEvent, deps: Dependencies) -> None:
        session = self._sessions[event.session_id]
        session.transfer_tx_hash = event.transfer_tx_hash
        self._transition(session, PurchaseState.MINTING)

    async def _on_succeeded(self, event: PurchaseSucceededEvent, deps: Dependencies) -> None:
        session = self._sessions[event.session_id]
        session.mint_result = event.mint_result
        session.mint_tx_hash = event.mint_result.tx_hash
        self._transition(session, PurchaseState.SUCCESS)

    async def _on_failed(self, event: PurchaseFailedEvent, deps: Dependencies) -> None:
        session = self._sessions[event.session_id]
        session.error = PurchaseError(
            code=event.code, message=event.message, retryable=event.retryable, cause=event.cause,
        )
        self._transition(session, PurchaseState.ERROR)
