"""
Domain errors raised by the checkout, subscription and notification services.

Each carries the HTTP status the API layer answers with, so services stay free
of FastAPI imports and the client can raise the same types from responses.
"""

from typing import Optional


class PosError(Exception):
    """Base class for all POS domain errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(PosError):
    """Missing or malformed request field. Caller error, never retried."""

    status_code = 400


class SubscriptionExpired(PosError):
    """Tenant subscription has lapsed; checkout is blocked until renewal."""

    status_code = 403

    def __init__(self, message: str = "Subscription expired. Please renew to continue processing sales."):
        super().__init__(message)


class NotFound(PosError):
    """Referenced tenant, product or payment does not exist."""

    status_code = 404


class AlreadyProcessed(PosError):
    """Payment has already left the pending state."""

    status_code = 400

    def __init__(self, message: str = "Payment already processed"):
        super().__init__(message)


class TransientNetworkFailure(PosError):
    """
    The server could not be reached (or answered with a gateway error).

    Raised on the client side only. Checkout callers buffer the request in the
    offline queue instead of surfacing this to the cashier.
    """

    status_code = 503
