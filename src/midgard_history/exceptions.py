"""Custom exceptions for the interval history service.

Ingestion-side failures (transport, rate limiting, decoding, storage) and
query-side failures all live here to avoid circular imports between the
data, ingestion and query packages.
"""


class HistoryError(Exception):
    """Base exception for all history service errors."""


class TransportError(HistoryError):
    """Raised when the upstream request fails (connection refused, timeout, reset)."""


class RateLimitedError(HistoryError):
    """Raised when the upstream answers with its throttling notice instead of data."""


class DecodeError(HistoryError):
    """Raised when a payload cannot be decoded into typed intervals."""


class StorageError(HistoryError):
    """Raised when a write or query against the persisted store fails."""


class InvalidSortFieldError(StorageError):
    """Raised when a sort field is not a plain column identifier."""


class ValidationError(HistoryError):
    """Raised for malformed request-side input (e.g. an unparseable date range).

    Callers treat it as "no filter applied" rather than rejecting the request.
    """
