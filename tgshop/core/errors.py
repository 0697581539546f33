"""Payment core exceptions. Gateway business errors keep the gateway's own text."""


class PaymentError(Exception):
    """Base class for errors raised by the payment core."""


class ConfigurationError(PaymentError):
    """Merchant credentials or redirect URLs are missing."""


class ValidationError(PaymentError):
    """Request rejected locally before any network call."""


class GatewayUnavailable(PaymentError):
    """Transport failure, timeout, non-2xx or non-JSON gateway response."""


class PaymentRejected(PaymentError):
    """The gateway answered Success=false."""

    def __init__(self, message: str, error_code: str | None = None, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details


class SignatureInvalid(PaymentError):
    """Token missing or not matching the payload."""


class IllegalTransition(PaymentError):
    """Requested status would move a payment backwards in the status lattice."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"illegal transition {current} -> {requested}")
        self.current = current
        self.requested = requested


class ConcurrentUpdate(PaymentError):
    """A payment record kept changing under us; the caller should retry later."""
