"""Blobgate error taxonomy.

Every failure surfaced by the gateway services is one of these types:

- InvalidInputError: malformed client input (bad cursor, page size, payload size)
- UnauthorizedError: ownership check negative or credential malformed
- BackendError: blob store or tag index backend failed; names the sub-write
- ConfigurationError: required configuration missing; needs an operator
- ItemNotFoundError: no representation of the item exists

None of these are retried internally. Retry policy belongs to the caller.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for gateway operations.

    Attributes:
        message: Human-readable error message.
        item_id: Item id associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, item_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.item_id = item_id

    def __str__(self) -> str:
        if self.item_id:
            return f"{self.message} item_id={self.item_id}"
        return self.message


class InvalidInputError(GatewayError):
    """Raised for client-input errors.

    Attributes:
        reason: Machine-readable reason (e.g. "page_size_out_of_range").
    """

    def __init__(self, message: str, *, reason: str = "invalid_input") -> None:
        super().__init__(message)
        self.reason = reason


class InvalidCursorError(InvalidInputError):
    """Raised when a pagination cursor cannot be decoded."""

    def __init__(self, message: str = "Invalid pagination cursor") -> None:
        super().__init__(message, reason="invalid_cursor")


class UnauthorizedError(GatewayError):
    """Raised when the ownership gate rejects a caller for a collection."""

    def __init__(
        self,
        message: str = "Caller is not authorized for this collection",
        *,
        collection: str | None = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection


class BackendError(GatewayError):
    """Raised when the blob store or tag index backend cannot complete.

    Attributes:
        sub_write: Which backend operation failed: "envelope", "raw",
            "index", "registry", "publish" or "read".
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        sub_write: str,
        item_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, item_id=item_id)
        self.sub_write = sub_write
        self.cause = cause


class ConfigurationError(GatewayError):
    """Raised when required external configuration is absent or invalid.

    This is a fail-closed error: the operation cannot proceed without
    operator intervention.
    """

    pass


class ItemNotFoundError(GatewayError):
    """Raised when neither representation of an item exists."""

    def __init__(self, item_id: str, message: str = "Item not found") -> None:
        super().__init__(message, item_id=item_id)
