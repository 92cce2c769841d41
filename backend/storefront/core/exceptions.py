"""
Custom exception classes for storefront operations.
"""


class StorefrontError(Exception):
    """Base class for storefront errors."""


class PaymentProviderError(StorefrontError):
    """Raised when the payment provider cannot be reached or answers with an error."""


class ProviderNotConfiguredError(PaymentProviderError):
    """Raised when no provider access token is configured."""


class UpstreamDataError(PaymentProviderError):
    """Raised when a provider response lacks fields required for reconciliation."""

    status_code = 502


class OrderPersistenceError(StorefrontError):
    """Raised when an order cannot be saved or the saved state does not match."""

    status_code = 500

    def __init__(
        self,
        message: str,
        order_id: str | None = None,
        attempted_status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.order_id = order_id
        self.attempted_status = attempted_status


class DuplicateWebhookError(StorefrontError):
    """Raised when registering a webhook URL that already exists."""

    status_code = 409
