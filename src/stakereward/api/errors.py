from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from stakereward.runtime.errors import PAYOUT_FAILURE, ClaimError


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
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_claim_error(e: ClaimError) -> "ApiError":
        if e.code == "not_found":
            return ApiError.not_found(e.code, e.reason, dict(e.details))
        if e.code in {PAYOUT_FAILURE, "conflict"}:
            return ApiError.conflict(e.code, e.reason, dict(e.details))
        return ApiError.bad_request(e.code, e.reason, dict(e.details))

    def to_body(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}
