"""
RPC connection management for BSC.

Binds the process to the first RPC endpoint that answers a liveness probe and
offers a bounded, exponentially backed-off retry wrapper for calls made
through it. The binding is sticky: it only changes when ``rebind()`` is
called explicitly.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import ContractLogicError

from ...engine.exceptions import (
    AllEndpointsUnreachable,
    ConfigurationError,
    ConnectivityError,
    SaleError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that are answers, not transport problems.
_NEVER_RETRY: Tuple[Type[BaseException], ...] = (SaleError, ContractLogicError, ValueError)


async def retry_async(
    op: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    never_retry: Tuple[Type[BaseException], ...] = _NEVER_RETRY,
    description: str = "operation",
) -> T:
    """
    Run ``op`` up to ``max_attempts`` times with exponential backoff.

    The delay before attempt ``n`` (1-based, n > 1) is
    ``base_delay * 2 ** (n - 2)``: 2 s then 4 s with the defaults.

    Args:
        op: Zero-argument coroutine factory.
        max_attempts: Total attempts, including the first.
        base_delay: Delay before the first retry, in seconds.
        retry_on: Exception types that trigger another attempt.
        never_retry: Exception types re-raised immediately even if they match
            ``retry_on``.
        description: Used in log lines and the final error.

    Returns:
        Whatever ``op`` returns on its first successful attempt.

    Raises:
        ConnectivityError: When every attempt failed with a retryable error.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await op()
        except never_retry:
            raise
        except retry_on as e:
            last_error = e
            if attempt == max_attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                description, attempt, max_attempts, e, delay,
            )
            await asyncio.sleep(delay)

    raise ConnectivityError(
        f"{description} failed after {max_attempts} attempts: {last_error}",
        {"attempts": max_attempts},
    ) from last_error


class ConnectionManager:
    """
    Ordered RPC endpoint failover with a sticky binding.

    Example:
        connection = ConnectionManager([
            "https://bsc-dataseed.binance.org",
            "https://bsc-dataseed1.defibit.io",
        ])
        web3 = await connection.web3()
        block = await connection.retry(lambda: web3.eth.block_number, "eth_blockNumber")
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        probe_timeout: float = 5.0,
        request_timeout: int = 30,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        web3_factory: Optional[Callable[[str], AsyncWeb3]] = None,
    ):
        """
        Args:
            endpoints: RPC URLs in priority order.
            probe_timeout: Seconds allowed for each liveness probe.
            request_timeout: HTTP timeout for regular RPC requests.
            max_attempts: Attempts per call in :meth:`retry`.
            base_delay: First backoff delay in :meth:`retry`.
            web3_factory: Builds an ``AsyncWeb3`` for a URL; defaults to an
                ``AsyncHTTPProvider`` with ``request_timeout``.

        Raises:
            ConfigurationError: If no endpoints are given.
        """
        if not endpoints:
            raise ConfigurationError("At least one RPC endpoint is required")
        self.endpoints: List[str] = list(endpoints)
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._web3_factory = web3_factory or self._default_web3
        self._web3: Optional[AsyncWeb3] = None
        self._bound_endpoint: Optional[str] = None
        self._bind_lock = asyncio.Lock()

    def _default_web3(self, url: str) -> AsyncWeb3:
        return AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": self.request_timeout}))

    @property
    def bound_endpoint(self) -> Optional[str]:
        return self._bound_endpoint

    async def bind(self) -> AsyncWeb3:
        """
        Probe endpoints in order and bind to the first one that answers.

        Returns the existing binding if there is one.

        Raises:
            AllEndpointsUnreachable: If no endpoint answered within
                ``probe_timeout``.
        """
        async with self._bind_lock:
            if self._web3 is not None:
                return self._web3

            failures: Dict[str, str] = {}
            for url in self.endpoints:
                web3 = self._web3_factory(url)
                try:
                    block = await asyncio.wait_for(web3.eth.block_number, timeout=self.probe_timeout)
                except asyncio.TimeoutError:
                    failures[url] = f"no answer within {self.probe_timeout}s"
                    logger.warning("RPC endpoint %s timed out during probe", url)
                    continue
                except Exception as e:
                    failures[url] = str(e) or type(e).__name__
                    logger.warning("RPC endpoint %s failed probe: %s", url, e)
                    continue

                self._web3 = web3
                self._bound_endpoint = url
                logger.info("Bound to RPC endpoint %s at block %s", url, block)
                return web3

            raise AllEndpointsUnreachable(
                f"None of {len(self.endpoints)} RPC endpoints answered",
                {"failures": failures},
            )

    async def web3(self) -> AsyncWeb3:
        """Bound ``AsyncWeb3`` instance, binding on first use."""
        if self._web3 is not None:
            return self._web3
        return await self.bind()

    async def rebind(self) -> AsyncWeb3:
        """Drop the current binding and probe the endpoint list again."""
        logger.info("Rebinding RPC connection (was %s)", self._bound_endpoint)
        self._web3 = None
        self._bound_endpoint = None
        return await self.bind()

    async def retry(self, op: Callable[[], Awaitable[T]], description: str = "rpc call") -> T:
        """
        Run an RPC operation against the bound endpoint with bounded retry.

        Contract reverts and this package's own errors surface at once;
        transport errors are retried with backoff and never trigger a switch
        to another endpoint.
        """
        return await retry_async(
            op,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            description=description,
        )

    async def health(self) -> Dict[str, Any]:
        """Bound endpoint and latest block, for the health check."""
        web3 = await self.web3()
        block = await self.retry(lambda: web3.eth.block_number, "eth_blockNumber")
        return {"endpoint": self._bound_endpoint, "block_number": block}
