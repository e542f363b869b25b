"""
포트 인터페이스 정의

클린 아키텍처의 핵심으로, Core 레이어와 외부 어댑터 간의 계약을 정의합니다.
모든 포트는 추상 기본 클래스(ABC)로 정의되어 구현을 강제합니다.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .entities import AccountIdentity, Credential


class MailApiClientPort(ABC):
    """
    원격 메일 API 클라이언트 포트

    모든 메서드는 2xx가 아닌 응답에 대해 RemoteApiError를 발생시킵니다.
    재시도와 오류 값 변환은 코어가 담당합니다.
    """

    @abstractmethod
    async def list_threads(
        self,
        access_token: str,
        q: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
        max_results: int = 25,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """스레드 참조 목록 조회 ({threads, nextPageToken, resultSizeEstimate})"""
        pass

    @abstractmethod
    async def get_thread(self, access_token: str, thread_id: str, format: str = "full") -> Dict[str, Any]:
        """스레드 상세 조회"""
        pass

    @abstractmethod
    async def get_message(self, access_token: str, message_id: str, format: str = "full") -> Dict[str, Any]:
        """메시지 상세 조회"""
        pass

    @abstractmethod
    async def list_history(
        self,
        access_token: str,
        start_history_id: str,
        label_id: Optional[str] = None,
        history_types: Optional[List[str]] = None,
        page_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """워터마크 이후 변경 이력 한 페이지 조회 ({history, historyId, nextPageToken})"""
        pass

    @abstractmethod
    async def get_profile(self, access_token: str) -> Dict[str, Any]:
        """프로필 조회 ({emailAddress, messagesTotal, threadsTotal, historyId})"""
        pass

    @abstractmethod
    async def list_labels(self, access_token: str) -> List[Dict[str, Any]]:
        """라벨 목록 조회"""
        pass

    @abstractmethod
    async def refresh_credential(self, refresh_token: str) -> Dict[str, Any]:
        """리프레시 토큰으로 새 토큰 응답을 받습니다."""
        pass


class CacheStorePort(ABC):
    """TTL 캐시 저장소 포트. 모든 항목은 계정 범위로 격리됩니다."""

    @abstractmethod
    async def get(self, identity: AccountIdentity, key: str) -> Optional[Any]:
        """만료되지 않은 값을 조회합니다. 만료된 항목은 삭제하고 None을 반환합니다."""
        pass

    @abstractmethod
    async def set(self, identity: AccountIdentity, key: str, value: Any, ttl_ms: int) -> None:
        """값을 저장합니다 (upsert)."""
        pass

    @abstractmethod
    async def invalidate(self, identity: AccountIdentity, key: Optional[str] = None,
                         prefix: Optional[str] = None) -> int:
        """키 또는 접두사로 항목을 삭제합니다. 둘 다 없으면 계정의 모든 항목을 삭제합니다."""
        pass

    @abstractmethod
    async def clear_expired(self) -> int:
        """만료된 항목을 모두 삭제합니다."""
        pass

    @abstractmethod
    async def clear_all(self, identity: Optional[AccountIdentity] = None) -> int:
        """전체 또는 계정의 항목을 모두 삭제합니다."""
        pass


class CredentialRepositoryPort(ABC):
    """자격 증명 저장소 포트"""

    @abstractmethod
    async def load(self, identity: AccountIdentity) -> Optional[Credential]:
        pass

    @abstractmethod
    async def save(self, identity: AccountIdentity, credential: Credential) -> None:
        pass

    @abstractmethod
    async def delete(self, identity: AccountIdentity) -> bool:
        pass

    @abstractmethod
    async def list_identities(self) -> List[AccountIdentity]:
        pass


class WatermarkRepositoryPort(ABC):
    """동기화 워터마크 저장소 포트 (TTL 없음)"""

    @abstractmethod
    async def get(self, identity: AccountIdentity) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, identity: AccountIdentity, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, identity: AccountIdentity) -> bool:
        pass


class EncryptionServicePort(ABC):
    """암호화 서비스 포트"""

    @abstractmethod
    async def encrypt(self, data: str) -> str:
        """데이터 암호화"""
        pass

    @abstractmethod
    async def decrypt(self, encrypted_data: str) -> str:
        """데이터 복호화"""
        pass


class LoggerPort(ABC):
    """로거 포트"""

    @abstractmethod
    def info(self, message: str, **kwargs) -> None:
        """정보 로그"""
        pass

    @abstractmethod
    def warning(self, message: str, **kwargs) -> None:
        """경고 로그"""
        pass

    @abstractmethod
    def error(self, message: str, **kwargs) -> None:
        """오류 로그"""
        pass

    @abstractmethod
    def debug(self, message: str, **kwargs) -> None:
        """디버그 로그"""
        pass


class ConfigPort(ABC):
    """설정 포트"""

    @abstractmethod
    def get_environment(self) -> str:
        pass

    @abstractmethod
    def is_debug(self) -> bool:
        pass

    @abstractmethod
    def get_database_url(self) -> str:
        pass

    @abstractmethod
    def get_database_busy_timeout_ms(self) -> int:
        pass

    @abstractmethod
    def get_google_client_id(self) -> str:
        pass

    @abstractmethod
    def get_google_client_secret(self) -> str:
        pass

    @abstractmethod
    def get_token_url(self) -> str:
        pass

    @abstractmethod
    def get_api_base_url(self) -> str:
        pass

    @abstractmethod
    def get_http_timeout(self) -> float:
        pass

    @abstractmethod
    def get_encryption_key(self) -> str:
        pass

    @abstractmethod
    def get_log_level(self) -> str:
        pass

    @abstractmethod
    def get_log_format(self) -> str:
        pass

    @abstractmethod
    def get_retry_max_attempts(self) -> int:
        pass

    @abstractmethod
    def get_retry_base_delay_ms(self) -> int:
        pass

    @abstractmethod
    def get_hydrate_concurrency(self) -> int:
        pass

    @abstractmethod
    def get_watch_interval_seconds(self) -> float:
        pass

    @abstractmethod
    def get_page_size(self) -> int:
        pass
