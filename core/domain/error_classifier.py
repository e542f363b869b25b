"""
오류 분류기

어댑터가 발생시킨 예외를 속도 제한, 인증, 없음, 워터마크 만료, 일반 오류로
분류하고 코어가 반환하는 오류 값(SyncError)으로 변환합니다.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

import httpx

from .errors import (
    AuthFailure,
    NotFound,
    RateLimited,
    RemoteApiError,
    SyncError,
    TransientApiFailure,
    WatermarkExpired,
)

T = TypeVar("T")

# 403과 함께 오면 속도 제한으로 보는 사유
RATE_LIMIT_REASONS = frozenset({
    "userRateLimitExceeded",
    "rateLimitExceeded",
    "quotaExceeded",
    "dailyLimitExceeded",
    "limitExceeded",
    "backendError",
})

AUTH_REASONS = frozenset({"invalid_grant", "unauthorized_client", "invalid_client", "UNAUTHENTICATED"})


class ErrorCategory(str, Enum):
    """오류 분류"""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    WATERMARK_EXPIRED = "watermark_expired"
    GENERIC = "generic"


def status_of(err: BaseException) -> Optional[int]:
    """예외에서 HTTP 상태 코드를 꺼냅니다."""
    if isinstance(err, RemoteApiError):
        return err.status_code
    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code
    return None


def reasons_of(err: BaseException) -> list:
    if isinstance(err, RemoteApiError):
        return list(err.reasons)
    return []


def is_rate_limit_error(err: BaseException) -> bool:
    """429, 또는 속도 제한 사유를 가진 403"""
    status = status_of(err)
    if status == 429:
        return True
    if status == 403:
        return any(reason in RATE_LIMIT_REASONS for reason in reasons_of(err))
    return False


def is_auth_error(err: BaseException) -> bool:
    status = status_of(err)
    if status == 401:
        return True
    return status in (400, 403) and any(reason in AUTH_REASONS for reason in reasons_of(err))


def is_not_found_error(err: BaseException) -> bool:
    return status_of(err) == 404


def is_watermark_expired(err: BaseException) -> bool:
    """404, 또는 메시지에 historyId가 들어 있는 400"""
    status = status_of(err)
    if status == 404:
        return True
    if status == 400:
        message = err.message if isinstance(err, RemoteApiError) else str(err)
        return "historyId" in message
    return False


def classify(err: BaseException, watermark: bool = False) -> ErrorCategory:
    """
    예외를 분류합니다.

    watermark=True 이면 변경 이력 조회 문맥으로 보고 워터마크 만료 신호를
    NOT_FOUND보다 먼저 검사합니다.
    """
    if is_rate_limit_error(err):
        return ErrorCategory.RATE_LIMIT
    if is_auth_error(err):
        return ErrorCategory.AUTH
    if watermark and is_watermark_expired(err):
        return ErrorCategory.WATERMARK_EXPIRED
    if is_not_found_error(err):
        return ErrorCategory.NOT_FOUND
    return ErrorCategory.GENERIC


def to_error_value(err: BaseException, email: Optional[str] = None, watermark: bool = False,
                   resource_id: Optional[str] = None) -> SyncError:
    """예외를 오류 값으로 변환합니다."""
    if isinstance(err, SyncError):
        return err

    category = classify(err, watermark=watermark)
    message = str(err) or err.__class__.__name__

    if category == ErrorCategory.AUTH:
        return AuthFailure(email or "", message, cause=err)
    if category == ErrorCategory.RATE_LIMIT:
        return RateLimited(f"속도 제한 재시도 소진: {message}", email=email, cause=err)
    if category == ErrorCategory.WATERMARK_EXPIRED:
        return WatermarkExpired(f"워터마크 만료: {message}", email=email, cause=err)
    if category == ErrorCategory.NOT_FOUND:
        return NotFound(f"리소스 없음: {message}", email=email, resource_id=resource_id, cause=err)
    return TransientApiFailure(message, email=email, cause=err)


async def call_boundary(
    operation: Callable[[], Awaitable[T]],
    email: Optional[str] = None,
    watermark: bool = False,
    resource_id: Optional[str] = None,
) -> Union[T, SyncError]:
    """
    원격 호출 경계. 발생한 예외를 오류 값으로 바꿔 반환합니다.

    취소(asyncio.CancelledError)는 BaseException이므로 그대로 전파됩니다.
    """
    try:
        return await operation()
    except (RemoteApiError, httpx.HTTPError) as e:
        return to_error_value(e, email=email, watermark=watermark, resource_id=resource_id)


def is_error(value: Any) -> bool:
    return isinstance(value, SyncError)
