"""
ERC20 Payment Token + Token Sale Contract ABI Module

Minimal ABI definitions for the calls this package makes: the ERC20 subset
used on payment tokens, and the sale contract's mint, purchase and
distribution-status functions.

Usage:
    from .ERC20_ABI import get_erc20_abi, get_token_sale_abi

    token = web3.eth.contract(address=token_address, abi=get_erc20_abi())
    sale = web3.eth.contract(address=contract_address, abi=get_token_sale_abi())
"""

from typing import Dict, Any, List, Sequence, Tuple


def _function(
    name: str,
    inputs: Sequence[Tuple[str, str]] = (),
    outputs: Sequence[Tuple[str, str]] = (),
    state_mutability: str = "view",
) -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": state_mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


def get_balance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for querying a token balance.

    Returns:
        List[Dict[str, Any]]: ABI for balanceOf function
    """
    return [_function("balanceOf", [("account", "address")], [("", "uint256")])]


def get_allowance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `allowance(owner, spender)`.

    Returns:
        List[Dict[str, Any]]: ABI for ERC20 `allowance` function.
    """
    return [
        _function(
            "allowance",
            [("owner", "address"), ("spender", "address")],
            [("", "uint256")],
        )
    ]


def get_approve_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `approve(spender, amount)`.

    Returns:
        List[Dict[str, Any]]: ABI for ERC20 `approve` function.
    """
    return [
        _function(
            "approve",
            [("spender", "address"), ("amount", "uint256")],
            [("", "bool")],
            "nonpayable",
        )
    ]


def get_transfer_from_abi() -> List[Dict[str, Any]]:
    """ABI for ERC20 `transferFrom(from, to, amount)`."""
    return [
        _function(
            "transferFrom",
            [("from", "address"), ("to", "address"), ("amount", "uint256")],
            [("", "bool")],
            "nonpayable",
        )
    ]


def get_erc20_abi() -> List[Dict[str, Any]]:
    """Every ERC20 function used on payment tokens, plus `decimals()`."""
    return (
        get_balance_abi()
        + get_allowance_abi()
        + get_approve_abi()
        + get_transfer_from_abi()
        + [_function("decimals", outputs=[("", "uint8")])]
    )


def get_token_sale_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for the token sale contract.

    Covers the four pool mint functions, the gasless purchase entry point,
    price quoting, sale flags and the distribution read-outs.

    Returns:
        List[Dict[str, Any]]: ABI for the sale contract.
    """
    mint_inputs = [("to", "address"), ("amount", "uint256")]
    return [
        _function("mintAirdrop", mint_inputs, state_mutability="nonpayable"),
        _function("mintBayc", mint_inputs, state_mutability="nonpayable"),
        _function("mintLiquidity", mint_inputs, state_mutability="nonpayable"),
        _function("mintPublic", mint_inputs, state_mutability="nonpayable"),
        _function(
            "purchaseTokensGasless",
            [
                ("buyer", "address"),
                ("tokenAmount", "uint256"),
                ("paymentToken", "address"),
                ("paymentAmount", "uint256"),
            ],
            state_mutability="nonpayable",
        ),
        _function(
            "calculatePayment",
            [("tokenAmount", "uint256"), ("paymentToken", "address")],
            [("", "uint256")],
        ),
        _function("isPaymentTokenAccepted", [("token", "address")], [("", "bool")]),
        _function("mintingEnabled", outputs=[("", "bool")]),
        _function("publicSaleEnabled", outputs=[("", "bool")]),
        _function("disableMinting", state_mutability="nonpayable"),
        _function("owner", outputs=[("", "address")]),
        _function(
            "getRemainingAllocations",
            outputs=[
                ("airdropRemaining", "uint256"),
                ("baycRemaining", "uint256"),
                ("liquidityRemaining", "uint256"),
                ("publicRemaining", "uint256"),
            ],
        ),
        _function(
            "getDistributionStatus",
            outputs=[
                ("totalMinted", "uint256"),
                ("airdropProgress", "uint256"),
                ("baycProgress", "uint256"),
                ("liquidityProgress", "uint256"),
                ("publicProgress", "uint256"),
            ],
        ),
    ]
