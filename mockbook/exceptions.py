"""Errors raised by the ledger and quote-source services.

The HTTP layer maps them to status codes in ``mockbook.main``.
"""


class MockBookError(Exception):
    """Base class; ``str(exc)`` is safe to show to the user."""


class ValidationError(MockBookError):
    """Rejected input: raised before anything is written."""


class CollaboratorError(MockBookError):
    """The record store or the quote source failed."""


class NotFoundError(MockBookError):
    """An expected row is missing."""
