"""
Error hierarchy shared by the venue engine, CLI and session helpers
Each error carries a code, details and an HTTP-style status for callers
"""
from typing import Any, Dict, Optional


class VenueCatalogError(Exception):
    """Root of every error the engine raises on purpose"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Payload form used by the CLI and any HTTP wrapper"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(VenueCatalogError):
    """Bad venue ids, similarity bounds or limits"""

    def __init__(self, message: str, field: Optional[str] = None, **details):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={"field": field, **details} if field else details,
            status_code=400,
        )


class NotFoundError(VenueCatalogError):
    """Unknown venue, city or user"""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND",
            details={"resource": resource, "identifier": str(identifier)},
            status_code=404,
        )


class DuplicateError(VenueCatalogError):
    """Second write of a unique record, e.g. an exclusion pair"""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} already exists: {identifier}",
            error_code="DUPLICATE",
            details={"resource": resource, "identifier": str(identifier)},
            status_code=409,
        )


class ProviderUnavailableError(VenueCatalogError):
    """Raised when the spatial/text query capability fails"""

    def __init__(self, provider: str, message: str, **details):
        super().__init__(
            message=f"{provider} provider unavailable: {message}",
            error_code="PROVIDER_UNAVAILABLE",
            details={"provider": provider, **details},
            status_code=503,
        )


class ConfigurationError(VenueCatalogError):
    """Settings that cannot be honoured, e.g. an unknown spatial provider"""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting} if setting else {},
            status_code=500,
        )


class DatabaseError(VenueCatalogError):
    """Storage failure outside the merge transaction"""

    def __init__(self, message: str, operation: Optional[str] = None, **details):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            details={"operation": operation, **details} if operation else details,
            status_code=500,
        )
