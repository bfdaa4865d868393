"""
Service wallet: the single on-chain identity that mints, approves and
transfers on behalf of users.

Every transaction goes through :meth:`ServiceWallet.transact`, which holds one
``asyncio.Lock`` from nonce lookup until the receipt is observed. Two
submissions from this wallet therefore never overlap and never race for the
same nonce.
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from eth_account import Account
from web3.exceptions import ContractLogicError, TransactionNotFound

from .connection import ConnectionManager
from .constants import value_to_amount
from .schemas import EVMTransactionConfirmation
from ...schemas.bases import TransactionStatus
from ...engine.exceptions import (
    ConfigurationError,
    ConfirmationTimeout,
    OnChainRevert,
    TransactionSubmissionError,
)

logger = logging.getLogger(__name__)

GAS_LIMIT_MULTIPLIER = Decimal("1.2")


def _revert_reason(error: Exception) -> str:
    message = getattr(error, "message", None) or str(error)
    return message.replace("execution reverted: ", "").strip() or "execution reverted"


class ServiceWallet:
    """
    Signs and submits contract calls from the service wallet.

    Example:
        wallet = ServiceWallet(connection, private_key)
        call = await sale.mint_call("airdrop", recipient, 100 * 10 ** 18)
        confirmation = await wallet.transact(call, description="mintAirdrop")
    """

    def __init__(
        self,
        connection: ConnectionManager,
        private_key: str,
        confirmation_timeout: float = 120.0,
        poll_interval: float = 3.0,
    ):
        """
        Raises:
            ConfigurationError: If the private key is missing or unusable.
        """
        if not private_key:
            raise ConfigurationError("Service wallet private key is required")
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError("Service wallet private key is invalid") from e

        self.connection = connection
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self._account.address

    async def native_balance(self) -> Decimal:
        """Native (BNB) balance of the wallet, in whole units."""
        web3 = await self.connection.web3()
        balance = await self.connection.retry(lambda: web3.eth.get_balance(self.address), "eth_getBalance")
        return value_to_amount(value=balance, decimals=18)

    async def transact(self, call: Any, description: str = "transaction") -> EVMTransactionConfirmation:
        """
        Estimate, sign, submit and confirm a bound contract call.

        Steps, all under the wallet lock:
            1. ``estimate_gas``; a revert here raises before anything is sent.
            2. gas limit = estimate * 1.2.
            3. EIP-1559 fees from ``fee_history``, else legacy ``gas_price``.
            4. nonce from the ``pending`` transaction count.
            5. sign, broadcast, poll for the receipt.

        Args:
            call: Bound contract function (``contract.functions.fn(*args)``).
            description: Used in log lines and error messages.

        Returns:
            :class:`EVMTransactionConfirmation` with ``SUCCESS`` status.

        Raises:
            OnChainRevert: Estimation reverted, or the receipt has status 0.
            TransactionSubmissionError: The transaction could not be broadcast.
            ConfirmationTimeout: No receipt within ``confirmation_timeout``.
            ConnectivityError: RPC reads failed after retries.
        """
        async with self._lock:
            web3 = await self.connection.web3()
            sender = self.address

            try:
                gas_estimate = await self.connection.retry(
                    lambda: call.estimate_gas({"from": sender}),
                    f"estimate_gas({description})",
                )
            except ContractLogicError as e:
                raise OnChainRevert(_revert_reason(e)) from e

            tx_params: Dict[str, Any] = {
                "from": sender,
                "chainId": await self.connection.retry(lambda: web3.eth.chain_id, "eth_chainId"),
                "gas": int(Decimal(gas_estimate) * GAS_LIMIT_MULTIPLIER),
                "nonce": await self.connection.retry(
                    lambda: web3.eth.get_transaction_count(sender, "pending"),
                    "eth_getTransactionCount",
                ),
            }
            tx_params.update(await self._fee_params(web3))

            transaction = await call.build_transaction(tx_params)
            signed_tx = self._account.sign_transaction(transaction)

            started = time.monotonic()
            try:
                tx_hash = await web3.eth.send_raw_transaction(signed_tx.raw_transaction)
            except Exception as e:
                raise TransactionSubmissionError(
                    f"Failed to broadcast {description}: {e}",
                    {"description": description},
                ) from e

            tx_hash_hex = web3.to_hex(tx_hash)
            logger.info("Submitted %s: %s (nonce %s)", description, tx_hash_hex, tx_params["nonce"])

            receipt = await self._wait_for_receipt(web3, tx_hash_hex, description)
            elapsed = time.monotonic() - started

        fee = receipt["gasUsed"] * receipt.get("effectiveGasPrice", 0)
        if receipt.get("status") != 1:
            logger.warning("%s reverted: %s", description, tx_hash_hex)
            raise OnChainRevert("transaction reverted on-chain", tx_hash=tx_hash_hex)

        logger.info("Confirmed %s: %s in block %s", description, tx_hash_hex, receipt["blockNumber"])
        return EVMTransactionConfirmation(
            status=TransactionStatus.SUCCESS,
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            gas_limit=tx_params["gas"],
            transaction_fee=fee,
            from_address=receipt.get("from"),
            to_address=receipt.get("to"),
            execution_time=elapsed,
        )

    async def _fee_params(self, web3) -> Dict[str, int]:
        try:
            fee_history = await web3.eth.fee_history(1, "latest", [25.0])
            base_fee = fee_history["baseFeePerGas"][-1]
            priority_fee = fee_history["reward"][0][0]
            return {
                "maxPriorityFeePerGas": priority_fee,
                "maxFeePerGas": (base_fee * 2) + priority_fee,
            }
        except Exception as e:
            logger.debug("fee_history unavailable (%s); using legacy gas price", e)
            gas_price = await self.connection.retry(lambda: web3.eth.gas_price, "eth_gasPrice")
            return {"gasPrice": gas_price}

    async def _wait_for_receipt(self, web3, tx_hash: str, description: str) -> Dict[str, Any]:
        deadline = time.monotonic() + self.confirmation_timeout
        receipt: Optional[Dict[str, Any]] = None
        while True:
            try:
                receipt = await web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except Exception as e:
                logger.debug("Receipt poll for %s failed: %s", tx_hash, e)
                receipt = None
            if receipt:
                return receipt
            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(
                    f"{description} not confirmed within {self.confirmation_timeout}s",
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(self.poll_interval)
