"""
EIP-712 structures signed by B402 payers.

B402 reuses the ``TransferWithAuthorization`` message of EIP-3009 but binds it
to the relayer: the domain's ``verifyingContract`` is the relayer contract and
its name/version are ``"B402"``/``"1"``, so a signature is only redeemable
through that relayer.
"""

from dataclasses import dataclass
from typing import Dict, Any, List

from .constants import B402_DOMAIN_NAME, B402_DOMAIN_VERSION

PRIMARY_TYPE = "TransferWithAuthorization"

EIP712_DOMAIN_FIELDS: List[Dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

TRANSFER_WITH_AUTHORIZATION_FIELDS: List[Dict[str, str]] = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]


@dataclass(frozen=True)
class EIP712Domain:
    """Signing domain. Defaults to the B402 name and version."""
    chainId: int
    verifyingContract: str
    name: str = B402_DOMAIN_NAME
    version: str = B402_DOMAIN_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {field["name"]: getattr(self, field["name"]) for field in EIP712_DOMAIN_FIELDS}


@dataclass(frozen=True)
class TransferWithAuthorizationMessage:
    """
    ``from`` is a Python keyword, so the payer is ``authorizer`` and the payee
    ``recipient``; ``to_dict()`` restores the typed field names.
    """
    authorizer: str
    recipient: str
    value: int
    validAfter: int
    validBefore: int
    nonce: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.authorizer,
            "to": self.recipient,
            "value": self.value,
            "validAfter": self.validAfter,
            "validBefore": self.validBefore,
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class TransferWithAuthorizationTypedData:
    """
    Signable envelope.

    ``to_dict()`` is the ``full_message`` accepted by
    ``eth_account.Account.sign_typed_data`` and the payload of a wallet's
    ``eth_signTypedData_v4``.
    """
    domain: EIP712Domain
    message: TransferWithAuthorizationMessage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": {
                "EIP712Domain": list(EIP712_DOMAIN_FIELDS),
                PRIMARY_TYPE: list(TRANSFER_WITH_AUTHORIZATION_FIELDS),
            },
            "primaryType": PRIMARY_TYPE,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }
