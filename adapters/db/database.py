"""
데이터베이스 연결 및 세션 관리

SQLAlchemy 비동기 엔진과 세션 관리를 담당합니다.
전역 인스턴스 없이 명시적으로 생성해 open()/close() 하고, 필요한 곳에 주입합니다.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.domain.ports import ConfigPort
from .models import Base


class DatabaseAdapter:
    """데이터베이스 어댑터"""

    def __init__(self, database_url: str, busy_timeout_ms: int = 5000, echo: bool = False):
        self.database_url = database_url
        self.busy_timeout_ms = busy_timeout_ms
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    @classmethod
    def from_config(cls, config: ConfigPort) -> "DatabaseAdapter":
        return cls(config.get_database_url(), config.get_database_busy_timeout_ms())

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    @property
    def dialect_name(self) -> str:
        if self.engine is None:
            return make_url(self.database_url).get_backend_name()
        return self.engine.dialect.name

    async def open(self) -> "DatabaseAdapter":
        """데이터베이스 연결을 초기화합니다."""
        if self.engine is not None:
            return self

        engine_kwargs: Dict[str, Any] = {"echo": self.echo, "pool_pre_ping": True}
        if not self.is_sqlite:
            engine_kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600)

        self.engine = create_async_engine(self.database_url, **engine_kwargs)

        if self.is_sqlite:
            busy_timeout = self.busy_timeout_ms

            # CLI와 watch 프로세스가 같은 파일을 공유하므로 WAL + busy_timeout
            @event.listens_for(self.engine.sync_engine, "connect")
            def _set_sqlite_pragmas(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout)}")
                cursor.close()

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        return self

    async def create_tables(self) -> None:
        """데이터베이스 테이블을 생성합니다."""
        if self.engine is None:
            raise RuntimeError("데이터베이스가 초기화되지 않았습니다")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """데이터베이스 테이블을 삭제합니다."""
        if self.engine is None:
            raise RuntimeError("데이터베이스가 초기화되지 않았습니다")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        데이터베이스 세션을 생성합니다.

        AsyncSession은 동시 작업 간에 공유할 수 없으므로 작업마다 새 세션을 엽니다.
        """
        if self.session_factory is None:
            raise RuntimeError("데이터베이스가 초기화되지 않았습니다")

        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """데이터베이스 연결을 종료합니다."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None

    async def __aenter__(self) -> "DatabaseAdapter":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
