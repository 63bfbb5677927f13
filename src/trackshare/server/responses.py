"""Mapping of adapter results onto HTTP responses."""

from __future__ import annotations

from fastapi.responses import JSONResponse


def error_status(result: dict, default: int = 400) -> int:
    """Status carried by a failed result's error, or *default*."""
    error = result.get("error")
    if isinstance(error, dict) and isinstance(error.get("status"), int):
        return error["status"]
    return default


def json_result(result: dict, failure_status: int = 400) -> JSONResponse:
    """Serialize an adapter result; anything not marked successful fails."""
    status = 200 if result.get("success") else failure_status
    return JSONResponse(result, status_code=status)


def missing_file() -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": {"message": "File not found!", "code": 400}},
        status_code=400,
    )
