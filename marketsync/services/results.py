"""
공통 결과/에러 타입.

서비스의 공개 연산은 예외를 밖으로 던지지 않고 ActionResult를 반환합니다.
내부에서는 SyncError 계열 예외로 흐름을 끊고, 경계에서 분류(kind)와 복구 제안으로 변환합니다.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    PARTIAL = "partial"
    LOCKED = "locked"
    REMOTE = "remote"
    UNKNOWN = "unknown"


# 큐 레이어가 재시도 여부를 판단할 때 사용
RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.LOCKED, ErrorKind.REMOTE, ErrorKind.UNKNOWN})


class SyncError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, status_code: int | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class SyncValidationError(SyncError):
    kind = ErrorKind.VALIDATION


class RemoteNotFound(SyncError):
    kind = ErrorKind.NOT_FOUND


class RateLimited(SyncError):
    kind = ErrorKind.RATE_LIMITED


class AuthFailure(SyncError):
    kind = ErrorKind.AUTH


class PartialBulkFailure(SyncError):
    kind = ErrorKind.PARTIAL


class PairLocked(SyncError):
    kind = ErrorKind.LOCKED


class RemoteApiError(SyncError):
    kind = ErrorKind.REMOTE


_RATE_LIMIT_MARKERS = ("rate limit", "ratelimit", "throttled", "too many requests")
_AUTH_MARKERS = ("authentication", "unauthorized", "access denied", "invalid api key", "forbidden")


def classify_error(message: str | None, status_code: int | None = None) -> ErrorKind:
    """에러 메시지/HTTP status로 에러 종류를 분류"""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 404:
        return ErrorKind.NOT_FOUND

    text = (message or "").lower()
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in text for marker in _AUTH_MARKERS):
        return ErrorKind.AUTH
    if "not found" in text or "does not exist" in text:
        return ErrorKind.NOT_FOUND
    if status_code is not None and status_code >= 500:
        return ErrorKind.REMOTE
    return ErrorKind.UNKNOWN


_ERROR_TYPES: dict[ErrorKind, type[SyncError]] = {
    ErrorKind.VALIDATION: SyncValidationError,
    ErrorKind.NOT_FOUND: RemoteNotFound,
    ErrorKind.RATE_LIMITED: RateLimited,
    ErrorKind.AUTH: AuthFailure,
    ErrorKind.PARTIAL: PartialBulkFailure,
    ErrorKind.LOCKED: PairLocked,
    ErrorKind.REMOTE: RemoteApiError,
    ErrorKind.UNKNOWN: SyncError,
}


def error_for_kind(
    kind: ErrorKind,
    message: str,
    *,
    status_code: int | None = None,
    details: dict[str, Any] | None = None,
) -> SyncError:
    return _ERROR_TYPES[kind](message, status_code=status_code, details=details)


def error_from_response(prefix: str, message: str, status_code: int | None = None) -> SyncError:
    """API 실패 envelope을 분류된 SyncError로 변환"""
    kind = classify_error(message, status_code)
    return error_for_kind(kind, f"{prefix}: {message}", status_code=status_code)


_RECOVERY_SUGGESTIONS: dict[ErrorKind, list[str]] = {
    ErrorKind.RATE_LIMITED: [
        "Wait a few minutes and retry - marketplace API rate limit reached",
        "Enable automatic retry with exponential backoff",
    ],
    ErrorKind.AUTH: [
        "Check marketplace API credentials and permissions",
        "Verify the marketplace app is still installed and authorized",
    ],
    ErrorKind.NOT_FOUND: [
        "Product may have been deleted in the marketplace - consider re-creating",
        "Reset sync record and perform fresh sync",
    ],
    ErrorKind.VALIDATION: [
        "Check the sync account and product input before retrying",
    ],
    ErrorKind.LOCKED: [
        "Another sync for this product and account is in progress - retry after it finishes",
    ],
}

_DEFAULT_SUGGESTIONS = [
    "Review error details and check marketplace API documentation",
    "Contact support if the issue persists",
]


def recovery_suggestions(kind: ErrorKind) -> list[str]:
    return list(_RECOVERY_SUGGESTIONS.get(kind, _DEFAULT_SUGGESTIONS))


@dataclass
class ActionResult:
    """서비스 연산 결과 (success 플래그 + data/error)"""
    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, message: str, **data: Any) -> "ActionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, *, kind: ErrorKind = ErrorKind.UNKNOWN, error: str | None = None, **data: Any) -> "ActionResult":
        return cls(success=False, message=message, data=data, error=error or message, error_kind=kind)

    @classmethod
    def from_error(cls, prefix: str, exc: Exception, **data: Any) -> "ActionResult":
        if isinstance(exc, SyncError):
            kind = exc.kind
        else:
            kind = classify_error(str(exc))
        data.setdefault("error_type", type(exc).__name__)
        data.setdefault("recovery_suggestions", recovery_suggestions(kind))
        data.setdefault("retryable", kind in RETRYABLE_KINDS)
        return cls.fail(f"{prefix}: {exc}", kind=kind, error=str(exc), **data)

    @property
    def retryable(self) -> bool:
        return bool(self.error_kind and self.error_kind in RETRYABLE_KINDS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "data": self.data,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }
