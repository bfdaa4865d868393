"""
Token sale service: the caller-facing surface.

Composes the connection, service wallet, contracts, mint engine, batch
processor, purchase orchestrator and facilitator client, and exposes the
operations a web layer or script needs.
"""

import asyncio
import functools
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from .adapters.evm.allowance import AllowanceManager
from .adapters.evm.connection import ConnectionManager
from .adapters.evm.constants import (
    DISABLE_MINTING_CONFIRMATION,
    GAS_BALANCE_HEALTHY,
    GAS_BALANCE_WARNING,
    SALE_TOKEN_DECIMALS,
    SaleSettings,
    value_to_amount,
)
from .adapters.evm.contracts import TokenSaleContract
from .adapters.evm.schemas import PaymentAuthorization
from .adapters.evm.signatures import PaymentAuthorizationSigner
from .adapters.evm.verifies import validate_tx_hash, verify_transaction_receipt
from .adapters.evm.wallet import ServiceWallet
from .adapters.registry import PaymentTokenRegistry
from .clients.facilitator import FacilitatorClient
from .engine.events import Dependencies
from .engine.exceptions import (
    ConfigurationError,
    MintingDisabled,
    SaleError,
    SettlementFailed,
    ValidationError,
)
from .minting.batch import BatchMintProcessor, BatchMintSummary
from .minting.engine import AllocationStatus, MintEngine, MintResult
from .minting.pools import AllocationPool
from .minting.replay import InMemoryReplayGuard, ReplayGuard
from .purchase.orchestrator import GaslessPurchaseOrchestrator, PurchaseSession

logger = logging.getLogger(__name__)


def _pool(pool: Any) -> AllocationPool:
    try:
        return AllocationPool(pool)
    except ValueError as e:
        raise ValidationError(
            f"Unknown allocation pool: {pool}",
            {"supported": [p.value for p in AllocationPool]},
        ) from e


class TokenSaleService:
    """
    Facade over every sale component.

    Usage:
        ```python
        service = TokenSaleService.from_settings(SaleSettings.from_env())
        session = await service.purchase(buyer, "USDT", 200)
        status = await service.get_allocation_status()
        await service.aclose()
        ```
    """

    def __init__(
        self,
        connection: ConnectionManager,
        sale: TokenSaleContract,
        wallet: ServiceWallet,
        allowance: AllowanceManager,
        mint_engine: MintEngine,
        registry: Optional[PaymentTokenRegistry] = None,
        batch_processor: Optional[BatchMintProcessor] = None,
        orchestrator: Optional[GaslessPurchaseOrchestrator] = None,
        facilitator: Optional[FacilitatorClient] = None,
        authorization_signer: Optional[PaymentAuthorizationSigner] = None,
        settings: Optional[SaleSettings] = None,
    ):
        self.connection = connection
        self.sale = sale
        self.wallet = wallet
        self.allowance = allowance
        self.mint_engine = mint_engine
        self.registry = registry or PaymentTokenRegistry()
        self.batch_processor = batch_processor or BatchMintProcessor(mint_engine)
        self.orchestrator = orchestrator or GaslessPurchaseOrchestrator(Dependencies(
            sale=sale,
            allowance=allowance,
            mint_engine=mint_engine,
            wallet=wallet,
            registry=self.registry,
            transaction_verifier=functools.partial(verify_transaction_receipt, connection),
        ))
        self.facilitator = facilitator
        self.authorization_signer = authorization_signer
        self.settings = settings

    @classmethod
    def from_settings(
        cls,
        settings: SaleSettings,
        replay_guard: Optional[ReplayGuard] = None,
        **facilitator_kwargs
    ) -> "TokenSaleService":
        """Wire every component from ``settings``."""
        connection = ConnectionManager(
            settings.rpc_urls,
            probe_timeout=settings.probe_timeout,
            request_timeout=settings.request_timeout,
        )
        wallet = ServiceWallet(
            connection,
            settings.private_key,
            confirmation_timeout=settings.confirmation_timeout,
            poll_interval=settings.poll_interval,
        )
        sale = TokenSaleContract(connection, settings.contract_address)
        mint_engine = MintEngine(
            sale,
            wallet,
            replay_guard=replay_guard if replay_guard is not None else InMemoryReplayGuard(),
            payment_verifier=functools.partial(verify_transaction_receipt, connection),
        )
        facilitator = FacilitatorClient(
            base_url=settings.facilitator_url,
            relayer_address=settings.relayer_address,
            network=settings.network,
            **facilitator_kwargs
        )
        signer = PaymentAuthorizationSigner(
            chain_id=settings.chain_id,
            relayer_address=settings.relayer_address,
            merchant_address=settings.merchant_address,
        )
        return cls(
            connection=connection,
            sale=sale,
            wallet=wallet,
            allowance=AllowanceManager(connection, wallet),
            mint_engine=mint_engine,
            facilitator=facilitator,
            authorization_signer=signer,
            settings=settings,
        )

    async def aclose(self) -> None:
        if self.facilitator is not None:
            await self.facilitator.aclose()

    # ------------------------------------------------------------------
    # Gasless purchase
    # ------------------------------------------------------------------

    async def purchase(self, recipient: str, token_symbol: str, token_amount: int) -> PurchaseSession:
        return await self.orchestrator.purchase(recipient, token_symbol, token_amount)

    async def resume_purchase(self, purchase_id: str, approval_tx_hash: str) -> PurchaseSession:
        return await self.orchestrator.resume(purchase_id, approval_tx_hash)

    def get_purchase(self, purchase_id: str) -> PurchaseSession:
        return self.orchestrator.get_session(purchase_id)

    # ------------------------------------------------------------------
    # Mints
    # ------------------------------------------------------------------

    async def mint_airdrop(self, recipient: str, amount: int) -> MintResult:
        return await self.mint_engine.mint(AllocationPool.AIRDROP, recipient, amount)

    async def mint_bayc(self, recipient: str, amount: int) -> MintResult:
        return await self.mint_engine.mint(AllocationPool.BAYC, recipient, amount)

    async def mint_liquidity(self, recipient: str, amount: int) -> MintResult:
        return await self.mint_engine.mint(AllocationPool.LIQUIDITY, recipient, amount)

    async def mint_public_with_payment(self, recipient: str, amount: int, payment_tx_hash: str) -> MintResult:
        return await self.mint_engine.mint_public_with_payment(recipient, amount, payment_tx_hash)

    async def mint_batch(self, pool: Any, entries: Iterable[Any]) -> BatchMintSummary:
        return await self.batch_processor.mint_batch(_pool(pool), entries)

    async def public_sale_purchase(
        self,
        authorization: PaymentAuthorization,
        recipient: str,
        amount: int,
    ) -> MintResult:
        """
        Synchronous public sale: settle a signed payment authorization
        through the facilitator, then mint keyed by the settlement hash.

        Raises:
            ConfigurationError: No facilitator configured.
            ValidationError / VerificationRejected / SettlementFailed /
            ConnectivityError: From the facilitator.
            Anything :meth:`MintEngine.mint_public_with_payment` raises.
        """
        if self.facilitator is None:
            raise ConfigurationError("No facilitator client configured")

        MintEngine.validate_request(AllocationPool.PUBLIC, recipient, amount)
        settlement = await self.facilitator.submit(authorization)
        if not settlement.transaction:
            raise SettlementFailed("Facilitator reported success without a transaction hash")

        return await self.mint_engine.mint_public_with_payment(recipient, amount, settlement.transaction)

    # ------------------------------------------------------------------
    # Status and administration
    # ------------------------------------------------------------------

    async def get_allocation_status(self) -> AllocationStatus:
        return await self.mint_engine.get_allocation_status()

    async def get_minting_status(self) -> Dict[str, Any]:
        flags, owner, total_minted = await asyncio.gather(
            self.sale.sale_flags(),
            self.sale.owner(),
            self.sale.total_minted(),
        )
        return {
            **flags,
            "owner": owner,
            "total_minted": value_to_amount(value=total_minted, decimals=SALE_TOKEN_DECIMALS),
            "service_wallet": self.wallet.address,
        }

    async def verify_payment_transaction(self, tx_hash: str) -> bool:
        """
        True when ``tx_hash`` was included and did not revert.

        Raises:
            ValidationError: Malformed hash.
        """
        return await verify_transaction_receipt(self.connection, validate_tx_hash(tx_hash))

    async def disable_minting(self, confirmation: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Permanently disable minting on the sale contract.

        Raises:
            ValidationError: ``confirmation`` is not the exact confirmation phrase.
            MintingDisabled: Minting is already disabled.
        """
        if confirmation != DISABLE_MINTING_CONFIRMATION:
            raise ValidationError(
                f"Confirmation must be exactly {DISABLE_MINTING_CONFIRMATION!r}",
            )
        if not await self.sale.minting_enabled():
            raise MintingDisabled("Minting is already disabled")

        logger.warning("Disabling minting permanently (reason: %s)", reason or "none given")
        confirmation_receipt = await self.mint_engine.disable_minting()
        return {
            "tx_hash": confirmation_receipt.tx_hash,
            "block_number": confirmation_receipt.block_number,
            "reason": reason,
        }

    async def health(self) -> Dict[str, Any]:
        """
        Health report: RPC, contract, service wallet gas balance, config.

        Never raises for a failing dependency; failures are reported per check.
        """
        checks: Dict[str, Dict[str, Any]] = {}

        try:
            checks["rpc"] = {"status": "healthy", **(await self.connection.health())}
        except SaleError as e:
            checks["rpc"] = {"status": "error", "error": e.message}

        try:
            flags = await self.sale.sale_flags()
            checks["contract"] = {"status": "healthy", "address": self.sale.address, **flags}
        except SaleError as e:
            checks["contract"] = {"status": "error", "address": self.sale.address, "error": e.message}

        try:
            balance = await self.wallet.native_balance()
            checks["wallet"] = {
                "status": _balance_status(balance),
                "address": self.wallet.address,
                "balance": str(balance),
            }
        except SaleError as e:
            checks["wallet"] = {"status": "error", "address": self.wallet.address, "error": e.message}

        checks["config"] = {
            "status": "healthy" if self.settings is not None else "warning",
            "facilitator": self.facilitator is not None,
        }

        statuses = {check["status"] for check in checks.values()}
        overall = "error" if "error" in statuses else "warning" if "warning" in statuses else "healthy"
        return {"status": overall, "checks": checks}


def _balance_status(balance: Decimal) -> str:
    if balance > GAS_BALANCE_HEALTHY:
        return "healthy"
    if balance > GAS_BALANCE_WARNING:
        return "warning"
    return "error"
