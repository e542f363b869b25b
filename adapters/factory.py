"""
어댑터 팩토리

모든 어댑터들을 생성하고 의존성을 주입하는 팩토리 클래스입니다.
클린 아키텍처의 의존성 역전 원칙을 구현합니다.

데이터베이스 어댑터는 전역으로 두지 않고 팩토리가 소유하며,
open()/close()로 수명을 명시적으로 관리합니다.
"""

from typing import Optional

import httpx

from core.domain.entities import AccountIdentity
from core.domain.ports import (
    CacheStorePort,
    ConfigPort,
    CredentialRepositoryPort,
    EncryptionServicePort,
    LoggerPort,
    MailApiClientPort,
    WatermarkRepositoryPort,
)
from core.domain.query_matcher import QueryMatcher
from core.execution.bounded_executor import BoundedExecutor
from core.execution.retry_scheduler import RetryScheduler
from core.usecases.change_watch import ChangeWatcher
from core.usecases.credential_management import CredentialManager
from core.usecases.thread_sync import ThreadSyncEngine

from .db.cache_repository import DatabaseCacheStore
from .db.database import DatabaseAdapter
from .db.repositories import CredentialRepositoryAdapter, WatermarkRepositoryAdapter
from .external.encryption_service import EncryptionServiceAdapter
from .external.gmail_api_client import GmailApiClientAdapter
from .logger import LoggerAdapter
from config.adapters import get_config


class AdapterFactory:
    """어댑터 팩토리"""

    def __init__(
        self,
        config: Optional[ConfigPort] = None,
        database: Optional[DatabaseAdapter] = None,
        api_client: Optional[MailApiClientPort] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or get_config()
        self.database = database or DatabaseAdapter.from_config(self.config)
        self._transport = transport
        self._logger: Optional[LoggerPort] = None
        self._encryption_service: Optional[EncryptionServicePort] = None
        self._api_client: Optional[MailApiClientPort] = api_client
        self._cache_store: Optional[CacheStorePort] = None
        self._credential_repository: Optional[CredentialRepositoryPort] = None
        self._watermark_repository: Optional[WatermarkRepositoryPort] = None
        self._credential_manager: Optional[CredentialManager] = None
        self._thread_sync_engine: Optional[ThreadSyncEngine] = None

    async def open(self) -> "AdapterFactory":
        """데이터베이스 연결을 열고 테이블이 없으면 생성합니다."""
        await self.database.open()
        await self.database.create_tables()
        return self

    async def close(self) -> None:
        await self.database.close()

    async def __aenter__(self) -> "AdapterFactory":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def create_logger(self) -> LoggerPort:
        """로거 어댑터를 생성합니다."""
        if self._logger is None:
            self._logger = LoggerAdapter(
                name="mailsync",
                level=self.config.get_log_level(),
                format_string=self.config.get_log_format(),
            )
        return self._logger

    def create_encryption_service(self) -> EncryptionServicePort:
        """암호화 서비스 어댑터를 생성합니다."""
        if self._encryption_service is None:
            self._encryption_service = EncryptionServiceAdapter(
                encryption_key=self.config.get_encryption_key(),
                logger=self.create_logger(),
            )
        return self._encryption_service

    def create_api_client(self) -> MailApiClientPort:
        """Gmail API 클라이언트 어댑터를 생성합니다."""
        if self._api_client is None:
            self._api_client = GmailApiClientAdapter(
                logger=self.create_logger(),
                client_id=self.config.get_google_client_id(),
                client_secret=self.config.get_google_client_secret(),
                base_url=self.config.get_api_base_url(),
                token_url=self.config.get_token_url(),
                timeout=self.config.get_http_timeout(),
                transport=self._transport,
            )
        return self._api_client

    def create_cache_store(self) -> CacheStorePort:
        """캐시 저장소 어댑터를 생성합니다."""
        if self._cache_store is None:
            self._cache_store = DatabaseCacheStore(self.database, self.create_logger())
        return self._cache_store

    def create_credential_repository(self) -> CredentialRepositoryPort:
        if self._credential_repository is None:
            self._credential_repository = CredentialRepositoryAdapter(
                self.database, self.create_encryption_service()
            )
        return self._credential_repository

    def create_watermark_repository(self) -> WatermarkRepositoryPort:
        if self._watermark_repository is None:
            self._watermark_repository = WatermarkRepositoryAdapter(self.database)
        return self._watermark_repository

    def create_retry_scheduler(self) -> RetryScheduler:
        return RetryScheduler(
            max_attempts=self.config.get_retry_max_attempts(),
            base_delay_ms=self.config.get_retry_base_delay_ms(),
            logger=self.create_logger(),
        )

    def create_executor(self) -> BoundedExecutor:
        return BoundedExecutor(concurrency=self.config.get_hydrate_concurrency())

    def create_credential_manager(self) -> CredentialManager:
        """자격 증명 관리자를 생성합니다. 계정별 잠금을 공유하도록 하나만 만듭니다."""
        if self._credential_manager is None:
            self._credential_manager = CredentialManager(
                credential_repository=self.create_credential_repository(),
                api_client=self.create_api_client(),
                retry_scheduler=self.create_retry_scheduler(),
                logger=self.create_logger(),
            )
        return self._credential_manager

    def create_thread_sync_engine(self) -> ThreadSyncEngine:
        """스레드 동기화 엔진을 생성합니다."""
        if self._thread_sync_engine is None:
            self._thread_sync_engine = ThreadSyncEngine(
                api_client=self.create_api_client(),
                cache_store=self.create_cache_store(),
                credential_manager=self.create_credential_manager(),
                retry_scheduler=self.create_retry_scheduler(),
                executor=self.create_executor(),
                logger=self.create_logger(),
            )
        return self._thread_sync_engine

    def create_change_watcher(
        self,
        identity: AccountIdentity,
        folder: str = "inbox",
        interval_seconds: Optional[float] = None,
        query: Optional[str] = None,
        once: bool = False,
    ) -> ChangeWatcher:
        """변경 감시기를 생성합니다."""
        logger = self.create_logger()
        return ChangeWatcher(
            identity=identity,
            engine=self.create_thread_sync_engine(),
            watermark_repository=self.create_watermark_repository(),
            executor=self.create_executor(),
            logger=logger,
            folder=folder,
            interval_seconds=(
                interval_seconds if interval_seconds is not None else self.config.get_watch_interval_seconds()
            ),
            query=query,
            once=once,
            matcher=QueryMatcher(logger),
        )

    def get_config(self) -> ConfigPort:
        """설정 객체를 반환합니다."""
        return self.config
