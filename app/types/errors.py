"""Failure taxonomy shared by the gateway, the code authority and the engine.

The lifecycle engine catches these at its boundary and turns them into plain
``None`` / ``False`` results; background tasks log them and move on.
"""

from __future__ import annotations


class SubscriptionError(Exception):
    """Base class for every expected failure in the subscription core."""


class ValidationFailure(SubscriptionError):
    """Malformed or missing input, rejected before the store is touched."""


class NotFound(SubscriptionError):
    """A lookup by key returned nothing."""


class Conflict(SubscriptionError):
    """A unique constraint was violated (duplicate email, code clash...)."""


class TransactionAborted(SubscriptionError):
    """A statement inside a multi-statement transition failed; rolled back."""


class CodeSpaceExhausted(Conflict):
    """No free one-time code value was found within the retry bound."""
