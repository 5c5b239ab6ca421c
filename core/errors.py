"""
core/errors.py
--------------
Exception hierarchy for the marketplace core.

Only validation and gateway problems are exceptions. Domain conditions such as
"approve an unknown id" never raise; the reducer reports them as a diagnostic
on its result instead.
"""


class MarketplaceError(Exception):
    """Base class for all marketplace core errors."""


class ValidationError(MarketplaceError):
    """Input rejected before any action is dispatched."""


class GatewayError(MarketplaceError):
    """A call to the remote data gateway failed."""

    def __init__(self, operation: str, table: str, cause: Exception | None = None):
        self.operation = operation
        self.table = table
        self.cause = cause
        detail = f": {type(cause).__name__}: {cause}" if cause else ""
        super().__init__(f"{operation} on '{table}' failed{detail}")


class GatewayNotConfigured(MarketplaceError):
    """Raised when an online-only operation is attempted in offline/demo mode."""
