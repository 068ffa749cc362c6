from __future__ import annotations


class HaccpError(Exception):
    """Base error for the HACCP engine."""


class ConfigurationError(HaccpError):
    """Missing or invalid startup configuration."""


class ValidationError(HaccpError):
    """Observation input rejected; nothing was written."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"missing or invalid field: {field}")


class ConflictError(HaccpError):
    """Storage uniqueness violation on a known field."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"conflicting value for field: {field}")


class TenantScopeError(ValidationError):
    """Write attempted without a tenant while unscoped writes are disabled."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__("tenant_id", message or "tenant_id is required")


class QueryError(HaccpError):
    """Observation storage failed during synthesis; retryable."""


class RenderError(HaccpError):
    """A record (or the whole document, when structural) could not be rendered."""

    def __init__(self, message: str, *, record_id: int | None = None, structural: bool = False) -> None:
        self.record_id = record_id
        self.structural = structural
        super().__init__(message)


class PersistError(HaccpError):
    """Archive store write failure."""


class PurgeError(HaccpError):
    """Archive store deletion failure for a single entry."""
