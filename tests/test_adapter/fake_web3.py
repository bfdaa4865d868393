"""
Minimal AsyncWeb3 stand-in for connection and wallet tests.

Only the attributes the sale code touches are implemented. Awaitable
properties (``block_number``, ``chain_id``, ``gas_price``) return a fresh
coroutine on every access, like AsyncWeb3 does.
"""

import asyncio
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound


class FakeEth:

    def __init__(
        self,
        block: int = 40_000_000,
        probe_error: Optional[Exception] = None,
        probe_delay: float = 0.0,
        fee_history_error: Optional[Exception] = None,
        receipt_status: int = 1,
        receipt_after_polls: int = 1,
        never_confirm: bool = False,
    ):
        self.block = block
        self.probe_error = probe_error
        self.probe_delay = probe_delay
        self.fee_history_error = fee_history_error
        self.receipt_status = receipt_status
        self.receipt_after_polls = receipt_after_polls
        self.never_confirm = never_confirm
        self.probes = 0
        self.sent: List[bytes] = []
        self.nonce_tags: List[str] = []
        self._polls: Dict[str, int] = {}

    async def _block_number(self) -> int:
        self.probes += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.probe_error is not None:
            raise self.probe_error
        return self.block

    @property
    def block_number(self):
        return self._block_number()

    async def _chain_id(self) -> int:
        return 56

    @property
    def chain_id(self):
        return self._chain_id()

    async def _gas_price(self) -> int:
        return 3_000_000_000

    @property
    def gas_price(self):
        return self._gas_price()

    async def get_transaction_count(self, address: str, block_identifier: str = "latest") -> int:
        self.nonce_tags.append(block_identifier)
        return len(self.sent)

    async def fee_history(self, block_count: int, newest_block: str, reward_percentiles: List[float]) -> Dict[str, Any]:
        if self.fee_history_error is not None:
            raise self.fee_history_error
        return {"baseFeePerGas": [1_000_000_000, 1_000_000_000], "reward": [[100_000_000]]}

    async def get_balance(self, address: str) -> int:
        return 5 * 10 ** 16

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        self.sent.append(bytes(raw))
        return Web3.keccak(raw)

    async def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        polls = self._polls.get(tx_hash, 0) + 1
        self._polls[tx_hash] = polls
        if self.never_confirm or polls < self.receipt_after_polls:
            raise TransactionNotFound(f"Transaction {tx_hash} not found")
        return {
            "transactionHash": tx_hash,
            "status": self.receipt_status,
            "blockNumber": self.block + 1,
            "gasUsed": 90_000,
            "effectiveGasPrice": 1_100_000_000,
            "from": None,
            "to": None,
        }


class FakeWeb3:

    def __init__(self, eth: Optional[FakeEth] = None):
        self.eth = eth or FakeEth()

    @staticmethod
    def to_hex(value: bytes) -> str:
        return Web3.to_hex(value)


class FakeContractCall:
    """Bound contract function: estimate, then build."""

    def __init__(self, to: str, estimate: int = 100_000, estimate_error: Optional[Exception] = None):
        self.to = to
        self.estimate = estimate
        self.estimate_error = estimate_error
        self.built: List[Dict[str, Any]] = []

    async def estimate_gas(self, params: Dict[str, Any]) -> int:
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.estimate

    async def build_transaction(self, params: Dict[str, Any]) -> Dict[str, Any]:
        transaction = dict(params)
        transaction.update({"to": self.to, "value": 0, "data": "0x"})
        self.built.append(transaction)
        return transaction
