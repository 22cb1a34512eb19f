"""Error kinds surfaced by the inventory services."""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for failures that are reported back to the API caller."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(InventoryError):
    status_code = 404


class ValidationFailure(InventoryError):
    status_code = 400


class StorageFailure(InventoryError):
    """Raised when the database rejects or fails a write/read."""

    status_code = 500
