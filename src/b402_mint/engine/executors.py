"""
Event chain execution engine.

Drives a saga on top of :class:`EventBus`: every event a handler returns is
dispatched in turn until a handler returns nothing or a :class:`BreakEvent`.
"""

import asyncio
import logging
from typing import AsyncGenerator, List, Optional

from .events import BaseEvent, BreakEvent, EventBus, Dependencies

logger = logging.getLogger(__name__)


class EventChain:
    """
    Runs one saga to completion.

    Usage:
        ```python
        last = await EventChain(bus, deps).run(PurchaseRequestedEvent(...))
        ```
    """

    def __init__(
        self,
        event_bus: EventBus,
        deps: Dependencies,
        max_steps: int = 32,
    ) -> None:
        """
        Args:
            event_bus: The event bus to dispatch events through.
            deps: Dependencies container passed to every hook and handler.
            max_steps: Upper bound on produced events; a chain that keeps
                going past it raises ``RuntimeError``.
        """
        self.event_bus = event_bus
        self.deps = deps
        self.max_steps = max_steps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Yield every event the chain produces, in order.

        The chain runs in a producer task; a hook or handler exception is
        re-raised here once the events before it have been yielded.
        """
        events_queue: asyncio.Queue = asyncio.Queue()
        failure: List[BaseException] = []

        async def producer():
            try:
                steps = 0
                async for event in self._process_event(initial_event):
                    steps += 1
                    if steps > self.max_steps:
                        raise RuntimeError(
                            f"Event chain from {type(initial_event).__name__} exceeded {self.max_steps} steps"
                        )
                    await events_queue.put(event)
            except Exception as e:
                failure.append(e)
            finally:
                await events_queue.put(None)

        task = asyncio.create_task(producer())

        while True:
            event = await events_queue.get()
            if event is None:
                break
            yield event

        await task
        if failure:
            raise failure[0]

    async def run(self, initial_event: BaseEvent) -> Optional[BaseEvent]:
        """Execute the whole chain and return its last event (None if it produced none)."""
        last: Optional[BaseEvent] = None
        async for event in self.execute(initial_event):
            last = event
        return last

    async def _process_event(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        if isinstance(event, BreakEvent):
            logger.debug("Chain stopped: %s", event.break_reason or "break")
            return

        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if not isinstance(result, BaseEvent):
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
            logger.debug("%s -> %s", type(event).__name__, type(result).__name__)
            yield result
            async for e in self._process_event(result):
                yield e
