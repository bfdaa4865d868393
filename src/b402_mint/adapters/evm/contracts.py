"""
Thin async wrappers around the sale contract and ERC20 payment tokens.

Reads go through :meth:`ConnectionManager.retry`. Writes are never sent from
here: the ``*_call`` methods return bound contract functions that the
:class:`ServiceWallet` estimates, signs and submits.
"""

import asyncio
from typing import Dict

from web3 import Web3
from web3.contract.async_contract import AsyncContract, AsyncContractFunction

from .connection import ConnectionManager
from .ERC20_ABI import get_erc20_abi, get_token_sale_abi

# Pool name -> sale contract mint function.
MINT_FUNCTIONS: Dict[str, str] = {
    "airdrop": "mintAirdrop",
    "bayc": "mintBayc",
    "liquidity": "mintLiquidity",
    "public": "mintPublic",
}

# Order of the values returned by getRemainingAllocations().
POOL_ORDER = ("airdrop", "bayc", "liquidity", "public")


class _ContractBase:

    def __init__(self, connection: ConnectionManager, address: str, abi):
        self.connection = connection
        self.address = Web3.to_checksum_address(address)
        self._abi = abi

    async def _contract(self) -> AsyncContract:
        web3 = await self.connection.web3()
        return web3.eth.contract(address=self.address, abi=self._abi)

    async def _read(self, fn_name: str, *args):
        contract = await self._contract()
        fn = getattr(contract.functions, fn_name)
        return await self.connection.retry(lambda: fn(*args).call(), f"{fn_name}()")


class TokenSaleContract(_ContractBase):
    """Sale contract: four capped pools, price quoting and the purchase entry point."""

    def __init__(self, connection: ConnectionManager, address: str):
        super().__init__(connection, address, get_token_sale_abi())

    # ---------------- reads ----------------

    async def remaining_allocations(self) -> Dict[str, int]:
        """Remaining balance of every pool, in base units."""
        values = await self._read("getRemainingAllocations")
        return dict(zip(POOL_ORDER, (int(v) for v in values)))

    async def remaining_allocation(self, pool: str) -> int:
        return (await self.remaining_allocations())[pool]

    async def distribution_status(self) -> Dict[str, int]:
        """Total minted (base units) and per-pool progress as reported by the contract."""
        total, *progress = await self._read("getDistributionStatus")
        status = {"total_minted": int(total)}
        status.update({f"{pool}_progress": int(p) for pool, p in zip(POOL_ORDER, progress)})
        return status

    async def total_minted(self) -> int:
        return (await self.distribution_status())["total_minted"]

    async def minting_enabled(self) -> bool:
        return bool(await self._read("mintingEnabled"))

    async def public_sale_enabled(self) -> bool:
        return bool(await self._read("publicSaleEnabled"))

    async def owner(self) -> str:
        return await self._read("owner")

    async def is_payment_token_accepted(self, token: str) -> bool:
        return bool(await self._read("isPaymentTokenAccepted", Web3.to_checksum_address(token)))

    async def calculate_payment(self, token_amount: int, payment_token: str) -> int:
        """Price of ``token_amount`` sale-token base units in ``payment_token`` base units."""
        return int(await self._read("calculatePayment", token_amount, Web3.to_checksum_address(payment_token)))

    async def sale_flags(self) -> Dict[str, bool]:
        minting, public_sale = await asyncio.gather(self.minting_enabled(), self.public_sale_enabled())
        return {"minting_enabled": minting, "public_sale_enabled": public_sale}

    # ---------------- writes ----------------

    async def mint_call(self, pool: str, recipient: str, amount: int) -> AsyncContractFunction:
        contract = await self._contract()
        fn = getattr(contract.functions, MINT_FUNCTIONS[pool])
        return fn(Web3.to_checksum_address(recipient), amount)

    async def purchase_call(
        self,
        buyer: str,
        token_amount: int,
        payment_token: str,
        payment_amount: int,
    ) -> AsyncContractFunction:
        contract = await self._contract()
        return contract.functions.purchaseTokensGasless(
            Web3.to_checksum_address(buyer),
            token_amount,
            Web3.to_checksum_address(payment_token),
            payment_amount,
        )

    async def disable_minting_call(self) -> AsyncContractFunction:
        contract = await self._contract()
        return contract.functions.disableMinting()


class ERC20Token(_ContractBase):
    """ERC20 payment token."""

    def __init__(self, connection: ConnectionManager, address: str):
        super().__init__(connection, address, get_erc20_abi())

    async def allowance(self, owner: str, spender: str) -> int:
        return int(await self._read(
            "allowance",
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        ))

    async def balance_of(self, account: str) -> int:
        return int(await self._read("balanceOf", Web3.to_checksum_address(account)))

    async def decimals(self) -> int:
        return int(await self._read("decimals"))

    async def approve_call(self, spender: str, amount: int) -> AsyncContractFunction:
        contract = await self._contract()
        return contract.functions.approve(Web3.to_checksum_address(spender), amount)

    async def transfer_from_call(self, owner: str, recipient: str, amount: int) -> AsyncContractFunction:
        contract = await self._contract()
        return contract.functions.transferFrom(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(recipient),
            amount,
        )
