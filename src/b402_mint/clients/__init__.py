"""
Client module for the B402 facilitator.

Verifies and settles signed payment authorizations over HTTP.
"""

from .facilitator import FacilitatorClient

__all__ = ["FacilitatorClient"]
