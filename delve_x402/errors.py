"""
Error taxonomy for the delve-x402 client
Every failure surfaced by the controller and registry is one of these kinds
"""

from typing import Optional


class X402Error(Exception):
    """Base class for all client errors"""

    default_message = "Payment client error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class WalletNotConnected(X402Error):
    """No wallet is connected; recoverable by connecting one"""

    default_message = "Wallet not connected. Please connect your wallet to continue."


class SigningRejected(X402Error):
    """The user declined the signature request"""

    default_message = "Signature request was rejected in the wallet"


class WalletError(X402Error):
    """The wallet failed to sign for a reason other than rejection"""

    default_message = "Wallet failed to sign the payment authorization"


class EncodeError(X402Error):
    """A payment header could not be serialized"""

    default_message = "Failed to encode payment header"


class DecodeError(X402Error):
    """A payment header is not valid base64 JSON of the expected shape"""

    default_message = "Failed to decode payment header"


class InvalidAmount(X402Error, ValueError):
    """A payment amount is not a finite, non-negative decimal"""

    default_message = "Invalid payment amount"


class MicrosubError(X402Error):
    """A microsub credit could not be used"""

    reason = "invalid"
    default_message = "Subscription is no longer valid"


class MicrosubExpired(MicrosubError):
    reason = "expired"
    default_message = "Subscription has expired"


class MicrosubExhausted(MicrosubError):
    reason = "exhausted"
    default_message = "Subscription has no queries remaining"


class MicrosubInvalid(MicrosubError):
    reason = "invalid"
    default_message = "Subscription is invalid or was not found"


class NetworkFailure(X402Error):
    """The backend could not be reached or answered with an error status"""

    default_message = "Failed to connect to the backend"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        details=None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class RequestTimeout(NetworkFailure):
    default_message = "Request timeout. Backend did not respond in time."


class FetchCancelled(X402Error):
    """A fetch was aborted through its cancellation token"""

    default_message = "Request was cancelled"
