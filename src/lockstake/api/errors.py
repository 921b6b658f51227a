from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lockstake.runtime.errors import (
    EmptyDeposit,
    Forbidden,
    InsufficientFunding,
    InvalidInput,
    StakingError,
    StillLocked,
)


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


def _status_for(e: StakingError) -> int:
    if isinstance(e, Forbidden):
        return 403
    if isinstance(e, (StillLocked, InsufficientFunding)):
        return 409
    if isinstance(e, (InvalidInput, EmptyDeposit)):
        return 400
    return 500


def from_staking_error(e: StakingError) -> ApiError:
    details = e.details if isinstance(e.details, dict) else ({} if e.details is None else {"value": e.details})
    return ApiError(_status_for(e), e.code, e.reason, details)


def _render(err: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=err.status_code,
        content={"ok": False, "error": {"code": err.code, "message": err.message, "details": err.details}},
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return _render(exc)

    @app.exception_handler(StakingError)
    async def _staking_error(_request: Request, exc: StakingError) -> JSONResponse:
        return _render(from_staking_error(exc))
