"""
B402 Facilitator Settlement Client

Two-phase submission of signed payment authorizations: ``POST /verify``
checks the authorization without moving funds, ``POST /settle`` has the
relayer execute it on-chain.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..adapters.evm.connection import retry_async
from ..adapters.evm.constants import DEFAULT_FACILITATOR_URL, DEFAULT_RELAYER_ADDRESS
from ..adapters.evm.schemas import PaymentAuthorization
from ..engine.exceptions import (
    ConnectivityError,
    SettlementFailed,
    ValidationError,
    VerificationRejected,
)
from ..schemas.https import (
    FacilitatorPaymentRequirements,
    FacilitatorRequest,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


class FacilitatorClient(httpx.AsyncClient):
    """
    httpx.AsyncClient bound to a B402 facilitator.

    Fully compatible with httpx.AsyncClient and usable as an async context
    manager.

    Usage:
        ```python
        async with FacilitatorClient() as facilitator:
            result = await facilitator.submit(authorization)
            print(result.transaction)
        ```
    """

    def __init__(
        self,
        base_url: str = DEFAULT_FACILITATOR_URL,
        relayer_address: str = DEFAULT_RELAYER_ADDRESS,
        network: str = "bsc",
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        **kwargs
    ):
        """
        Args:
            base_url: Facilitator root URL.
            relayer_address: Relayer contract sent as ``paymentRequirements.relayerContract``.
            network: Network id sent as ``paymentRequirements.network``.
            max_attempts: Attempts per request on transport failures.
            retry_delay: First backoff delay (doubles on each retry).
            **kwargs: All standard httpx.AsyncClient arguments (timeout, transport, ...)
        """
        kwargs.setdefault("timeout", 30.0)
        super().__init__(base_url=base_url, **kwargs)
        self.requirements = FacilitatorPaymentRequirements(
            relayerContract=relayer_address,
            network=network,
        )
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def build_request_body(self, authorization: PaymentAuthorization) -> Dict[str, Any]:
        """Wire body shared by ``/verify`` and ``/settle``."""
        return FacilitatorRequest(
            paymentPayload=authorization.to_facilitator_payload(),
            paymentRequirements=self.requirements,
        ).to_wire()

    def _check_window(self, authorization: PaymentAuthorization, now: Optional[int] = None) -> None:
        if authorization.signature is None:
            raise ValidationError("Authorization is not signed")
        if authorization.is_expired(now):
            raise ValidationError(
                "Authorization has expired",
                {"validBefore": authorization.validBefore},
            )

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def verify(self, authorization: PaymentAuthorization) -> VerifyResponse:
        """
        Ask the facilitator whether ``authorization`` would settle.

        Safe to repeat, so every transport error is retried.

        Raises:
            ValidationError: Unsigned or expired authorization (no HTTP call).
            ConnectivityError: Transport failures on every attempt.
        """
        self._check_window(authorization)
        body = self.build_request_body(authorization)

        response = await retry_async(
            lambda: self.post("/verify", json=body),
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
            retry_on=(httpx.TransportError,),
            description="facilitator /verify",
        )
        result = VerifyResponse.model_validate(self._json(response))
        if not response.is_success and result.isValid:
            result = VerifyResponse(isValid=False, invalidReason=f"HTTP {response.status_code}")
        elif not response.is_success and not result.invalidReason:
            result.invalidReason = f"HTTP {response.status_code}"
        return result

    async def settle(self, authorization: PaymentAuthorization) -> SettleResponse:
        """
        Ask the facilitator to execute ``authorization`` on-chain.

        Only connection failures are retried: once the request may have
        reached the facilitator, repeating it could double-submit.

        Raises:
            ValidationError: Unsigned or expired authorization (no HTTP call).
            ConnectivityError: The facilitator could not be reached, or the
                connection broke after the request was sent (``details``
                carry ``outcome="unknown"``).
        """
        self._check_window(authorization)
        body = self.build_request_body(authorization)

        try:
            response = await retry_async(
                lambda: self.post("/settle", json=body),
                max_attempts=self.max_attempts,
                base_delay=self.retry_delay,
                retry_on=(httpx.ConnectError, httpx.ConnectTimeout),
                description="facilitator /settle",
            )
        except httpx.TransportError as e:
            raise ConnectivityError(
                f"Facilitator /settle interrupted: {e}",
                {"outcome": "unknown", "nonce": authorization.nonce},
            ) from e
        result = SettleResponse.model_validate(self._json(response))
        if not response.is_success:
            result.success = False
            result.errorReason = result.errorReason or f"HTTP {response.status_code}"
        return result

    async def submit(self, authorization: PaymentAuthorization, now: Optional[int] = None) -> SettleResponse:
        """
        Verify, then settle only if verification passed.

        Returns:
            Successful :class:`SettleResponse`, with the settlement
            transaction hash in ``transaction``.

        Raises:
            ValidationError: Unsigned or expired authorization.
            VerificationRejected: ``/verify`` said the authorization is invalid.
            SettlementFailed: ``/verify`` passed but ``/settle`` failed.
            ConnectivityError: The facilitator could not be reached.
        """
        self._check_window(authorization, now)
        started = time.monotonic()

        verification = await self.verify(authorization)
        if not verification.isValid:
            logger.warning("Facilitator rejected authorization %s: %s", authorization.nonce, verification.invalidReason)
            raise VerificationRejected(verification.invalidReason or "invalid authorization")

        settlement = await self.settle(authorization)
        if not settlement.success:
            logger.warning("Facilitator settlement failed for %s: %s", authorization.nonce, settlement.errorReason)
            raise SettlementFailed(settlement.errorReason or "settlement failed")

        logger.info(
            "Settled authorization %s in %.2fs: %s",
            authorization.nonce, time.monotonic() - started, settlement.transaction,
        )
        return settlement
