"""
Payment reference replay guard.

A payment reference (the hash of the transaction that paid for a mint) may
back at most one successful mint. References move through three states:

    free --reserve--> reserved --commit--> consumed
                        |
                        +--release--> free

``reserve`` fails for a reference that is reserved or consumed, so two
concurrent requests with the same payment cannot both proceed. The in-memory
guard lives and dies with the process.
"""

import logging
from abc import ABC, abstractmethod
from typing import Set

from ..engine.exceptions import ReplayRejected

logger = logging.getLogger(__name__)


def normalize_reference(reference: str) -> str:
    return reference.strip().lower()


class ReplayGuard(ABC):
    """Storage interface for consumed payment references."""

    @abstractmethod
    def reserve(self, reference: str) -> str:
        """
        Claim ``reference`` for an in-flight mint.

        Returns:
            The normalised reference.

        Raises:
            ReplayRejected: Reference already reserved or consumed.
        """

    @abstractmethod
    def commit(self, reference: str) -> None:
        """Mark a reserved reference as consumed by a successful mint."""

    @abstractmethod
    def release(self, reference: str) -> None:
        """Return a reserved reference to the free state after a failed mint."""

    @abstractmethod
    def is_consumed(self, reference: str) -> bool:
        """True for reserved or consumed references."""


class InMemoryReplayGuard(ReplayGuard):
    """
    Process-local guard. Operations are synchronous, so on a single event
    loop the check and the insert of ``reserve`` cannot interleave.
    """

    def __init__(self):
        self._reserved: Set[str] = set()
        self._consumed: Set[str] = set()

    def reserve(self, reference: str) -> str:
        key = normalize_reference(reference)
        if key in self._consumed or key in self._reserved:
            raise ReplayRejected(key)
        self._reserved.add(key)
        logger.debug("Reserved payment reference %s", key)
        return key

    def commit(self, reference: str) -> None:
        key = normalize_reference(reference)
        self._reserved.discard(key)
        self._consumed.add(key)
        logger.debug("Consumed payment reference %s", key)

    def release(self, reference: str) -> None:
        key = normalize_reference(reference)
        if key in self._reserved:
            self._reserved.remove(key)
            logger.info("Released payment reference %s", key)

    def is_consumed(self, reference: str) -> bool:
        key = normalize_reference(reference)
        return key in self._consumed or key in self._reserved

