"""
ERC20 allowance checks and approvals.

The gasless purchase needs the facilitator (spender) to be allowed to pull
the quoted payment from the buyer (owner). This module reads that allowance,
turns a shortfall into an :class:`AllowanceInsufficient` signal, and, when the
service wallet is itself the owner, tops the allowance up with an exact
``approve``.
"""

import logging
from typing import Callable, Optional

from web3 import Web3

from .connection import ConnectionManager
from .contracts import ERC20Token
from .schemas import ApprovalResult
from .wallet import ServiceWallet
from ...engine.exceptions import (
    AllowanceInsufficient,
    ApprovalNotReflected,
    ValidationError,
)

logger = logging.getLogger(__name__)

TokenFactory = Callable[[ConnectionManager, str], ERC20Token]


class AllowanceManager:
    """
    Allowance reads and exact approvals for ERC20 payment tokens.

    Approvals are only ever for the exact required amount; this class never
    grants unlimited allowances.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        wallet: Optional[ServiceWallet] = None,
        token_factory: TokenFactory = ERC20Token,
    ):
        self.connection = connection
        self.wallet = wallet
        self._token_factory = token_factory

    def token(self, address: str) -> ERC20Token:
        return self._token_factory(self.connection, address)

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        """Live ``allowance(owner, spender)`` in base units."""
        return await self.token(token).allowance(owner, spender)

    async def ensure_allowance(self, token: str, owner: str, spender: str, required_amount: int) -> int:
        """
        Check that ``spender`` may pull ``required_amount`` from ``owner``.

        Returns:
            The current allowance when it is sufficient.

        Raises:
            AllowanceInsufficient: Carrying token, spender, required and
                current amounts so the caller can request an approval.
        """
        current = await self.get_allowance(token, owner, spender)
        if current < required_amount:
            raise AllowanceInsufficient(
                token=token,
                owner=owner,
                spender=spender,
                required=required_amount,
                current=current,
            )
        return current

    async def check_and_approve(self, token: str, owner: str, spender: str, required_amount: int) -> ApprovalResult:
        """
        Make sure ``spender`` may pull ``required_amount`` from ``owner``.

        Issues zero transactions when the allowance already suffices and
        exactly one ``approve(spender, required_amount)`` otherwise. The
        allowance is read again after confirmation.

        Raises:
            ValidationError: The service wallet is not ``owner``, so it
                cannot approve on the owner's behalf.
            ApprovalNotReflected: The approval confirmed but the allowance
                read back is still short.
            OnChainRevert / ConnectivityError: From the approval transaction.
        """
        current = await self.get_allowance(token, owner, spender)
        if current >= required_amount:
            return ApprovalResult(approved=True, already_sufficient=True, allowance=current)

        if self.wallet is None or Web3.to_checksum_address(owner) != self.wallet.address:
            raise ValidationError(
                "Only the service wallet's own allowances can be approved here",
                {"owner": owner},
            )

        erc20 = self.token(token)
        logger.info("Approving %s base units of %s for %s", required_amount, token, spender)
        call = await erc20.approve_call(spender, required_amount)
        confirmation = await self.wallet.transact(call, description="approve")

        allowance = await erc20.allowance(owner, spender)
        if allowance < required_amount:
            raise ApprovalNotReflected(
                f"Allowance is {allowance} after approving {required_amount}",
                {"tx_hash": confirmation.tx_hash, "allowance": str(allowance)},
            )

        return ApprovalResult(
            approved=True,
            already_sufficient=False,
            allowance=allowance,
            tx_hash=confirmation.tx_hash,
        )
