"""
Error taxonomy for the payment-gated search flow.
"""

from enum import Enum
from typing import Optional


class FailureReason(Enum):
    """Terminal reasons a payment attempt can fail with."""
    WALLET_NOT_CONNECTED = "wallet_not_connected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSFER_REJECTED = "transfer_rejected"
    ON_CHAIN_REVERT = "on_chain_revert"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    PROVIDER_ERROR = "provider_error"
    CANCELLED = "cancelled"


class PaidSearchError(Exception):
    """Base class for errors surfaced to the user."""


class ValidationError(PaidSearchError, ValueError):
    """Raised when input is rejected before any side effect."""


class ProviderError(PaidSearchError):
    """Raised when the wallet provider fails or declines a request."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ProviderUnavailable(ProviderError):
    """No wallet capability is present."""


class ConnectionRejected(ProviderError):
    """The user or provider declined the account request."""


class NetworkSwitchFailed(ProviderError):
    """The target network could not be selected or registered."""


class TransferRejected(ProviderError):
    """The value transfer was declined or failed to submit."""


class EndpointError(PaidSearchError):
    """Raised on a non-success search response or a transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
