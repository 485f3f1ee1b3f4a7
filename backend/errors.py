from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""


class UpstreamUnavailable(StorefrontError):
    """Raised when the spreadsheet or a notification service cannot be reached."""


class NotFound(StorefrontError):
    """Raised when an order number, store or partner has no match."""


class MalformedInput(StorefrontError):
    """Raised when a submission is missing required fields, before any I/O."""

    def __init__(self, field: Optional[str], message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}" if field else message)
