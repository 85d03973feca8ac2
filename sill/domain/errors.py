"""
Typed failures of the SILL data service.

Precondition violations are raised as ``SillError`` subclasses and leave the
cached state untouched. Storage and transport failures are not wrapped: they
propagate to the caller as raised by the row store (``RowStoreError``,
``OSError``, ``httpx.HTTPError``).
"""

from __future__ import annotations

from typing import Any, Dict


class SillError(Exception):
    """Base exception for all SILL precondition failures."""

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class NotFoundError(SillError):
    code = "not_found"
    http_status = 404


class ForbiddenError(SillError):
    code = "forbidden"
    http_status = 403


class ConflictError(SillError):
    code = "conflict"
    http_status = 409


class InvalidSoftwareError(SillError):
    """The merged software row does not satisfy the software schema."""

    code = "invalid_software"
    http_status = 400


class ConsistencyError(SillError):
    """The recomputed catalog does not contain the entity that was just written."""

    code = "consistency_error"
    http_status = 500


class RowStoreError(Exception):
    """A row store operation failed (checkout, commit or push)."""

    def __init__(self, message: str, command: str = "", stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr
