"""공용 테스트 픽스처"""

from datetime import timedelta

import pytest

from adapters.db.cache_repository import DatabaseCacheStore
from adapters.db.database import DatabaseAdapter
from adapters.db.repositories import CredentialRepositoryAdapter, WatermarkRepositoryAdapter
from adapters.external.encryption_service import EncryptionServiceAdapter
from core.domain.entities import AccountIdentity, Credential, utc_now
from core.execution.bounded_executor import BoundedExecutor
from core.execution.retry_scheduler import RetryScheduler
from core.usecases.credential_management import CredentialManager
from core.usecases.thread_sync import ThreadSyncEngine

from tests.fakes import FakeClock, FakeMailApiClient, RecordingLogger


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def identity():
    return AccountIdentity(email="Me@Example.com", app_id="client-1")


@pytest.fixture
async def database(tmp_path):
    adapter = DatabaseAdapter(f"sqlite+aiosqlite:///{tmp_path / 'mailsync.db'}")
    await adapter.open()
    await adapter.create_tables()
    yield adapter
    await adapter.close()


@pytest.fixture
def cache_store(database, logger, clock):
    return DatabaseCacheStore(database, logger, clock=clock)


@pytest.fixture
def encryption_service(logger):
    return EncryptionServiceAdapter("test_encryption_key_32_bytes_long", logger)


@pytest.fixture
def credential_repository(database, encryption_service):
    return CredentialRepositoryAdapter(database, encryption_service)


@pytest.fixture
def watermark_repository(database):
    return WatermarkRepositoryAdapter(database)


@pytest.fixture
def api():
    return FakeMailApiClient()


@pytest.fixture
def retry_scheduler(logger):
    return RetryScheduler(max_attempts=3, base_delay_ms=1000, logger=logger, sleep=no_sleep)


@pytest.fixture
async def credential_manager(credential_repository, api, retry_scheduler, logger, identity):
    manager = CredentialManager(credential_repository, api, retry_scheduler, logger)
    await manager.store(
        identity,
        Credential(access_token="valid", refresh_token="refresh-1", expires_at=utc_now() + timedelta(hours=1)),
    )
    return manager


@pytest.fixture
def engine(api, cache_store, credential_manager, retry_scheduler, logger):
    return ThreadSyncEngine(
        api_client=api,
        cache_store=cache_store,
        credential_manager=credential_manager,
        retry_scheduler=retry_scheduler,
        executor=BoundedExecutor(concurrency=3),
        logger=logger,
    )
