# orderease/core/errors.py
"""Failure kinds raised at component boundaries.

External capability failures are converted into one of these before they
reach the conversation engine or an HTTP handler.
"""


class OrderEaseError(Exception):
    """Base class for every domain error."""


class ParsingUnavailable(OrderEaseError):
    """The intelligent parser cannot run (no credentials, outage, timeout)."""


class ValidationFailed(OrderEaseError):
    """Customer input is malformed; the message is safe to show."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PaymentProviderError(OrderEaseError):
    """The payment provider is unreachable, misconfigured or refused."""


class SignatureInvalid(OrderEaseError):
    """A webhook body did not match its signature."""


class DraftNotFound(OrderEaseError):
    """A payment signal could not be tied to any draft order."""


class StaleSessionError(OrderEaseError):
    """A session changed underneath a unit of work (lost compare-and-swap)."""
