"""
도메인 엔티티 정의

동기화 코어가 다루는 계정 식별자, 자격 증명, 캐시 항목, 워터마크와
메일 읽기 모델을 정의합니다.
모든 엔티티는 Pydantic 모델을 기반으로 하여 타입 안정성을 보장합니다.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """현재 UTC 시간을 반환합니다."""
    return datetime.now(timezone.utc)


class CacheTTL:
    """리소스 종류별 캐시 유효 시간 (밀리초)"""

    THREAD = 30 * 60 * 1000
    LABELS = 30 * 60 * 1000
    PROFILE = 24 * 60 * 60 * 1000


class WatcherState(str, Enum):
    """변경 감시기 상태"""
    BOOT = "boot"
    SEEDED = "seeded"
    POLLING = "polling"
    EXPIRED = "expired"
    RESEEDING = "reseeding"
    STOPPED = "stopped"


class AccountIdentity(BaseModel):
    """계정 식별자. 모든 캐시, 자격 증명, 워터마크 행의 범위를 정한다."""

    model_config = ConfigDict(frozen=True)

    email: str = Field(..., description="계정 이메일 주소")
    app_id: str = Field(..., description="OAuth 클라이언트 ID")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        """이메일 형식 검증"""
        if "@" not in v:
            raise ValueError("유효한 이메일 주소가 아닙니다")
        return v.strip().lower()

    def __str__(self) -> str:
        return self.email


class Credential(BaseModel):
    """OAuth 자격 증명"""

    access_token: str = Field(..., description="액세스 토큰")
    refresh_token: Optional[str] = Field(None, description="리프레시 토큰")
    expires_at: Optional[datetime] = Field(None, description="만료 시간 (UTC)")
    token_type: str = Field(default="Bearer", description="토큰 타입")
    scope: Optional[str] = Field(None, description="권한 범위")
    id_token: Optional[str] = Field(None, description="ID 토큰")

    @field_validator("expires_at")
    @classmethod
    def ensure_aware(cls, v):
        if v is not None and v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """토큰이 만료되었는지 확인. 만료 시간이 없으면 만료되지 않은 것으로 본다."""
        if self.expires_at is None:
            return False
        return self.expires_at < (now or utc_now())

    def can_refresh(self) -> bool:
        """토큰 갱신 가능한지 확인"""
        return bool(self.refresh_token)

    def merge(self, response: Dict[str, Any], now: Optional[datetime] = None) -> "Credential":
        """
        갱신 응답을 병합한 새 자격 증명을 반환합니다.

        응답에 있는 필드는 덮어쓰고, 없는 필드(특히 refresh_token)는 유지합니다.
        expires_in은 절대 시각 expires_at으로 변환합니다.
        """
        data = self.model_dump()
        for field in ("access_token", "refresh_token", "token_type", "scope", "id_token"):
            value = response.get(field)
            if value:
                data[field] = value

        if response.get("expires_in") is not None:
            data["expires_at"] = (now or utc_now()) + timedelta(seconds=int(response["expires_in"]))
        elif response.get("expires_at") is not None:
            data["expires_at"] = response["expires_at"]

        return Credential(**data)

    @classmethod
    def from_token_response(cls, response: Dict[str, Any], now: Optional[datetime] = None) -> "Credential":
        """토큰 응답 또는 저장된 JSON에서 자격 증명을 생성합니다."""
        expires_at = response.get("expires_at")
        if expires_at is None and response.get("expiry_date") is not None:
            # 밀리초 에포크 형식
            expires_at = datetime.fromtimestamp(int(response["expiry_date"]) / 1000, tz=timezone.utc)
        if expires_at is None and response.get("expires_in") is not None:
            expires_at = (now or utc_now()) + timedelta(seconds=int(response["expires_in"]))

        return cls(
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token"),
            expires_at=expires_at,
            token_type=response.get("token_type") or "Bearer",
            scope=response.get("scope"),
            id_token=response.get("id_token"),
        )


class CacheEntry(BaseModel):
    """캐시 항목"""

    key: str
    value: Any
    ttl_ms: int
    created_at: int = Field(..., description="생성 시각 (에포크 밀리초)")

    def is_expired(self, now_ms: int) -> bool:
        """created_at + ttl_ms < now 이면 만료"""
        return self.created_at + self.ttl_ms < now_ms


class SyncWatermark(BaseModel):
    """계정별 변경 감지 워터마크 (historyId)"""

    identity: AccountIdentity
    value: str
    updated_at: datetime = Field(default_factory=utc_now)


class Sender(BaseModel):
    """발신자/수신자"""

    name: str = ""
    email: str = ""

    def display(self) -> str:
        return f"{self.name} {self.email}".strip()


class AttachmentMeta(BaseModel):
    """첨부 파일 메타데이터"""

    filename: str
    mime_type: str = ""
    size: int = 0
    attachment_id: str


class ParsedMessage(BaseModel):
    """메시지 읽기 모델"""

    id: str
    thread_id: str = ""
    subject: str = "(no subject)"
    sender: Sender = Field(default_factory=Sender)
    to: List[Sender] = Field(default_factory=list)
    cc: List[Sender] = Field(default_factory=list)
    date: Optional[datetime] = None
    snippet: str = ""
    body: str = ""
    body_html: bool = False
    label_ids: List[str] = Field(default_factory=list)
    unread: bool = False
    starred: bool = False
    is_draft: bool = False
    mime_type: str = ""
    attachments: List[AttachmentMeta] = Field(default_factory=list)
    history_id: Optional[str] = None

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments) or "multipart/mixed" in self.mime_type.lower()


class ThreadData(BaseModel):
    """스레드 상세 읽기 모델"""

    id: str
    history_id: Optional[str] = None
    subject: str = "(no subject)"
    sender: Sender = Field(default_factory=Sender)
    date: Optional[datetime] = None
    snippet: str = ""
    labels: List[str] = Field(default_factory=list)
    has_unread: bool = False
    message_count: int = 0
    messages: List[ParsedMessage] = Field(default_factory=list)


class ThreadListItem(BaseModel):
    """스레드 목록 항목"""

    id: str
    history_id: Optional[str] = None
    subject: str = "(no subject)"
    sender: Sender = Field(default_factory=Sender)
    date: Optional[datetime] = None
    snippet: str = ""
    labels: List[str] = Field(default_factory=list)
    has_unread: bool = False
    message_count: int = 0


class SkippedItem(BaseModel):
    """부분 실패로 건너뛴 항목"""

    id: str
    reason: str


class ThreadListResult(BaseModel):
    """스레드 목록 조회 결과"""

    threads: List[ThreadListItem] = Field(default_factory=list)
    raw_threads: List[Dict[str, Any]] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    result_size_estimate: int = 0
    skipped: List[SkippedItem] = Field(default_factory=list)


class ThreadResult(BaseModel):
    """단일 스레드 조회 결과"""

    thread: ThreadData
    raw: Dict[str, Any]
    from_cache: bool = False


class HistoryPage(BaseModel):
    """변경 이력 조회 결과 (모든 페이지 합산)"""

    history: List[Any] = Field(default_factory=list)
    history_id: Optional[str] = None


class WatchEvent(BaseModel):
    """감시기가 방출하는 새 메시지 이벤트"""

    account: str
    type: str = "new_message"
    message: ParsedMessage
    thread_id: str


class WatchNotice(BaseModel):
    """감시기 상태 안내 (재시드 등)"""

    account: str
    type: str
    text: str
