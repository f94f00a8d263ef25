"""ECOMMIND — Error Taxonomy.

Every error carries an HTTP status so route handlers can translate it
without inspecting the message.
"""

from typing import Any, Optional


class EcommindError(Exception):
    """Base class for all ECOMMIND errors."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = "", details: Any = None):
        self.details = details
        super().__init__(message or self.error)


class ValidationFailedError(EcommindError):
    """Malformed input: bad JSON, schema mismatch, bad request params."""

    status_code = 400
    error = "Validation failed"


class AuthError(EcommindError):
    """Missing session context or invalid webhook signature."""

    status_code = 401
    error = "Unauthorized"


class NotFoundError(EcommindError):
    status_code = 404
    error = "Not found"


class IntegrationNotFoundError(NotFoundError):
    error = "Integration not found"


class IntegrationDisabledError(EcommindError):
    status_code = 400
    error = "Integration disabled"


class StorageError(EcommindError):
    """Raised when an upsert or insert into the canonical store fails."""

    error = "Storage failure"


class TokenDecryptionError(EcommindError):
    """Decryption failed; tamper, wrong key or key rotation. Never retried."""

    error = "Token decryption failed"


class ConfigurationError(EcommindError):
    error = "Configuration error"


class VendorAPIError(EcommindError):
    """Raised when a marketplace/ERP API returns an error."""

    status_code = 502
    error = "Vendor API error"

    def __init__(
        self,
        vendor: str,
        message: str,
        status_code: int = 0,
        error_code: Optional[str] = None,
    ):
        self.vendor = vendor
        self.http_status = status_code
        self.error_code = error_code
        super().__init__(f"[{vendor}] {message}")


class RateLimitError(VendorAPIError):
    """429 from the vendor after retries were exhausted."""

    error = "Vendor rate limit exceeded"
