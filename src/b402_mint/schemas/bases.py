"""
Base Schema Models for the b402 token sale

This module defines the base classes every other schema model inherits from.
It keeps serialization deterministic and gives transaction outcomes one shape
regardless of which component produced them.

Core Classes:
    - CanonicalModel: Pydantic base model with JSON-compatible dumps
    - BaseSignature: Abstract signature component model
    - TransactionStatus: Execution status of an on-chain transaction
    - BaseTransactionConfirmation: Abstract transaction confirmation model

Dependencies:
    - pydantic: For data validation and serialization
"""

from typing import Optional, Dict, Any
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model shared by every cross-boundary schema.

    Fields may be populated by name or alias, and ``to_dict()`` always yields
    plain JSON types (enums, Decimals and nested models included).

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        MyModel(name="test", value=123).to_dict()  # {"name": "test", "value": 123}
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to a JSON-compatible dictionary.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump(mode="json")


class BaseSignature(CanonicalModel, ABC):
    """
    Abstract base class for signature components.

    Attributes:
        signature_type: The signing standard (e.g. "B402")
        created_at: Timestamp when the signature was created
    """

    signature_type: str = Field(..., description="Signing standard (e.g. B402)")
    created_at: datetime = Field(default_factory=datetime.now, description="Signature creation timestamp")

    @abstractmethod
    def validate_format(self) -> bool:
        """
        Validate the signature format.

        Returns:
            bool: True if the signature format is valid.

        Raises:
            ValueError: If the signature format is invalid.
        """


class TransactionStatus(str, Enum):
    """
    Execution status recorded on a confirmation.

    Only included, non-reverted transactions produce a confirmation; a revert
    raises ``OnChainRevert`` and a missing receipt ``ConfirmationTimeout``.
    """
    SUCCESS = "success"


class BaseTransactionConfirmation(CanonicalModel, ABC):
    """
    Abstract base class for transaction confirmation data.

    Attributes:
        confirmation_type: Type of confirmation (e.g. "evm")
        status: Transaction execution status
        execution_time: Seconds between submission and confirmation
        created_at: Timestamp when the confirmation was recorded
    """

    confirmation_type: str = Field(..., description="Type of confirmation (e.g. evm)")
    status: TransactionStatus = Field(..., description="Transaction execution status")
    execution_time: Optional[float] = Field(None, ge=0, description="Time to confirm (seconds)")
    created_at: datetime = Field(default_factory=datetime.now, description="Confirmation recording timestamp")

    def is_success(self) -> bool:
        """
        Check whether the transaction executed successfully on-chain.

        Returns:
            bool: True only for an included, non-reverted transaction.
        """
        return self.status == TransactionStatus.SUCCESS
