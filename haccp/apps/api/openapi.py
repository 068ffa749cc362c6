from __future__ import annotations

from typing import Any

from haccp.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message, details=details)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: _response("Unauthorized", code="AUTH_UNAUTHORIZED", message="X-Tenant-Id header is required"),
    422: _response(
        "Validation error",
        code="VALIDATION_ERROR",
        message="zone_id: Field required",
        details={"field": "zone_id"},
    ),
    500: _response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
}

REPORT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    **DEFAULT_ERROR_RESPONSES,
    400: _response("Invalid period", code="INVALID_PERIOD", message="invalid period key: '2024-13'"),
    404: _response("Not found", code="NOT_FOUND", message="No archived report for this period"),
    503: _response("Observation storage unavailable", code="QUERY_FAILED", message="observation query failed"),
}

OBSERVATION_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    **DEFAULT_ERROR_RESPONSES,
    409: _response(
        "Conflict",
        code="CONFLICT",
        message="conflicting value for field: client_ref",
        details={"field": "client_ref"},
    ),
}
