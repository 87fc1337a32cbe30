"""
Billing error taxonomy.

Every error raised by the billing services derives from BillingError,
and app.py maps each class to an HTTP status.
"""


class BillingError(Exception):
    """Base class for billing errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(BillingError):
    """Bad input from the caller. Never retried automatically."""

    status_code = 422


class NotFoundError(BillingError):
    """A record the operation needs does not exist."""

    status_code = 404


class GatewayError(BillingError):
    """A payment gateway call failed; nothing was persisted for it."""

    status_code = 502

    def __init__(self, gateway: str, message: str = ""):
        super().__init__(f"{gateway}: {message}" if message else gateway)
        self.gateway = gateway


class InconsistentPriceError(BillingError):
    """A configured gateway price id does not match the catalog."""

    def __init__(self, price_id: str, message: str = ""):
        super().__init__(f"Price {price_id!r} is inconsistent: {message}")
        self.price_id = price_id


class PersistenceError(BillingError):
    """The database rejected a write; the transaction was rolled back."""
