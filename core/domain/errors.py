"""
도메인 오류 정의

어댑터가 발생시키는 전송 예외(RemoteApiError)와, 코어가 값으로 반환하는
동기화 오류(SyncError 계열)를 정의합니다.

코어 내부에서 SyncError는 raise 하지 않고 반환합니다.
호출자는 isinstance(result, SyncError)로 분기합니다.
"""

from typing import Any, Dict, List, Optional


class RemoteApiError(Exception):
    """원격 API가 2xx가 아닌 응답을 돌려줄 때 어댑터가 발생시키는 예외"""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        reasons: Optional[List[str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.message = message
        self.reasons = reasons or []
        self.payload = payload or {}
        super().__init__(f"HTTP {status_code}: {message}")

    @classmethod
    def from_response_body(cls, status_code: int, body: Any) -> "RemoteApiError":
        """Google 오류 본문({"error": {...}})으로부터 예외를 생성합니다."""
        message = ""
        reasons: List[str] = []
        payload: Dict[str, Any] = body if isinstance(body, dict) else {}

        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message") or ""
            for item in error.get("errors") or []:
                reason = item.get("reason") if isinstance(item, dict) else None
                if reason:
                    reasons.append(reason)
            status = error.get("status")
            if status and not reasons:
                reasons.append(status)
        elif isinstance(error, str):
            # 토큰 엔드포인트는 {"error": "invalid_grant", "error_description": ...} 형태
            reasons.append(error)
            message = payload.get("error_description") or error
        elif isinstance(body, str):
            message = body

        return cls(status_code, message, reasons, payload)


class SyncError(Exception):
    """동기화 오류 값의 기반 클래스"""

    kind = "sync_error"

    def __init__(self, message: str, email: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.email = email
        self.cause = cause

    def describe(self) -> str:
        """사용자에게 보여줄 설명"""
        if self.email:
            return f"{self.email}: {self.message}"
        return self.message


class AuthFailure(SyncError):
    """자격 증명이 없거나 갱신할 수 없음. 배치 전체를 중단시킨다."""

    kind = "auth"

    def __init__(self, email: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(reason, email=email, cause=cause)
        self.reason = reason

    def describe(self) -> str:
        return (
            f"{self.email}: 인증 실패 ({self.reason}). "
            f"`mailsync auth import --email {self.email}` 로 다시 인증하세요."
        )


class RateLimited(SyncError):
    """재시도 횟수를 모두 소진한 속도 제한"""

    kind = "rate_limit"


class NotFound(SyncError):
    """원격 리소스가 없음"""

    kind = "not_found"

    def __init__(self, message: str, email: Optional[str] = None, resource_id: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, email=email, cause=cause)
        self.resource_id = resource_id


class TransientApiFailure(SyncError):
    """그 밖의 원격/네트워크 오류"""

    kind = "transient"


class WatermarkExpired(SyncError):
    """저장된 워터마크(historyId)를 원격이 더 이상 인정하지 않음"""

    kind = "watermark_expired"


class ParseFailure(SyncError):
    """원격 페이로드를 읽기 모델로 변환하지 못함"""

    kind = "parse"
