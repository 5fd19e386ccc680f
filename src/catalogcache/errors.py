"""Error taxonomy shared by the origin accessor and resource controllers.

``CatalogError`` is the only exception that leaves this package. The cache
store never raises; the origin accessor raises ``CatalogError`` for every
transport or protocol failure; controllers convert those into their
``error`` state flag and only let precondition violations (``MAX_FEATURED``,
``INVALID_UPLOAD``, ``NOT_FOUND``) reach the caller.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    ORIGIN_UNAVAILABLE = "ORIGIN_UNAVAILABLE"
    ORIGIN_REJECTED = "ORIGIN_REJECTED"
    ORIGIN_INVALID_RESPONSE = "ORIGIN_INVALID_RESPONSE"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    MAX_FEATURED = "MAX_FEATURED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_UPLOAD = "INVALID_UPLOAD"


class CatalogError(Exception):
    """Structured failure carrying a machine-readable code."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, object]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "recoverable": self.recoverable,
            }
        }

    def __repr__(self) -> str:
        return f"CatalogError({self.code.value}, {self.message!r}, recoverable={self.recoverable})"
