"""
Errors raised by the supplier gateway.

The supplier answers most calls with an envelope such as
{"success": "false", "description": "..."}. When an HTTP error carries that
envelope, its description is kept on the exception so the worker can put the
supplier's own wording into the retry reason.

Every SupplierError is an infrastructure failure from the processor's point
of view: the attempt is retried with backoff until max_attempts.
"""

from typing import Optional, Dict, Any


class SupplierError(Exception):
    """Base exception for supplier gateway failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        description: Optional[str] = None,
        upstream_reference: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.description = description
        self.upstream_reference = upstream_reference
        self.body = body or {}

    @property
    def reason(self) -> str:
        """Short text for a job's last_error."""
        if self.description:
            return f"{self.message} ({self.description})"
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, upstream_reference={self.upstream_reference!r})"
        )


class SupplierAuthenticationError(SupplierError):
    """The supplier rejected the user token or kiosk token (401/403)."""

    def __init__(self, message: str = "Supplier rejected user or kiosk token", **kwargs):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, **kwargs)


class SupplierRateLimitError(SupplierError):
    """Too many getProducts calls (429). Retried on the normal backoff."""

    def __init__(self, message: str = "Supplier rate limit exceeded", **kwargs):
        kwargs["status_code"] = 429
        super().__init__(message, **kwargs)


class SupplierConnectionError(SupplierError):
    def __init__(self, message: str = "Unable to reach supplier API", **kwargs):
        super().__init__(message, **kwargs)


class SupplierTimeoutError(SupplierError):
    def __init__(self, message: str = "Supplier request timed out", **kwargs):
        super().__init__(message, **kwargs)


class SupplierResponseError(SupplierError):
    """The supplier answered with a body that is not a usable envelope."""
