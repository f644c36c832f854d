"""
Classified provider errors.

Every failure that leaves a bank adapter is a ``ProviderError``, so callers
can decide "retry or not" and "merchant's fault or bank's fault" from
``retryable`` and ``status_code`` alone:

  - ``*_FAILED``: the bank answered with an HTTP error status.
  - ``*_ERROR``: the request never got an answer (transport, timeout).
  - ``PARSE_ERROR`` / ``MARSHAL_ERROR`` / ``CERT_ERROR``: never retryable.
"""

from enum import Enum
from typing import Any, Optional

RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


class ErrorCode(str, Enum):
    AUTH_FAILED = "AUTH_FAILED"
    AUTH_ERROR = "AUTH_ERROR"
    TRANSFER_FAILED = "TRANSFER_FAILED"
    TRANSFER_ERROR = "TRANSFER_ERROR"
    QUERY_FAILED = "QUERY_FAILED"
    QUERY_ERROR = "QUERY_ERROR"
    QRCODE_FAILED = "QRCODE_FAILED"
    QRCODE_ERROR = "QRCODE_ERROR"
    CANCEL_FAILED = "CANCEL_FAILED"
    CANCEL_ERROR = "CANCEL_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    MARSHAL_ERROR = "MARSHAL_ERROR"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    HEALTH_CHECK_FAILED = "HEALTH_CHECK_FAILED"
    CERT_ERROR = "CERT_ERROR"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    ALREADY_INITIALIZED = "ALREADY_INITIALIZED"
    NO_HEALTHY_PROVIDER = "NO_HEALTHY_PROVIDER"


class ProviderError(Exception):
    """Base exception for everything raised across the provider contract."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 0,
        retryable: bool = False,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        self.details = details or {}

    @property
    def is_client_error(self) -> bool:
        """True when the bank rejected the request itself (4xx, not 429)."""
        return 400 <= self.status_code < 500 and self.status_code != 429

    @property
    def retry_after(self) -> Optional[float]:
        value = self.details.get("retry_after")
        return float(value) if value is not None else None

    def __repr__(self) -> str:
        return (
            f"ProviderError(code={self.code!r}, status_code={self.status_code}, "
            f"retryable={self.retryable}, message={self.message!r})"
        )


def not_supported(message: str) -> ProviderError:
    """The capability exists elsewhere but not on this call path."""
    return ProviderError(ErrorCode.NOT_SUPPORTED, message)


def not_implemented(message: str) -> ProviderError:
    """The adapter will never offer this capability."""
    return ProviderError(ErrorCode.NOT_IMPLEMENTED, message)


def http_failure(
    code: ErrorCode,
    message: str,
    status_code: int,
    body: str = "",
    retry_after: Optional[float] = None,
) -> ProviderError:
    details: dict[str, Any] = {"response": body[:2000]}
    if retry_after is not None:
        details["retry_after"] = retry_after
    return ProviderError(
        code,
        message,
        status_code=status_code,
        retryable=status_code in RETRYABLE_STATUS_CODES,
        details=details,
    )


def transport_failure(code: ErrorCode, message: str, exc: BaseException, timeout: bool = False) -> ProviderError:
    details: dict[str, Any] = {"error": str(exc) or type(exc).__name__}
    if timeout:
        details["timeout"] = True
    return ProviderError(code, f"{message}: {details['error']}", retryable=True, details=details)
