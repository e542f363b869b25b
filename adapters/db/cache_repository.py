"""
데이터베이스 기반 캐시 저장소 어댑터

CacheStorePort 구현입니다. 계정 범위 (email, app_id) 로 항목을 격리하고,
읽을 때 만료를 검사해 만료된 행은 즉시 삭제합니다.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import and_, delete, select
from sqlalchemy.dialects import postgresql, sqlite

from core.domain.entities import AccountIdentity, CacheEntry
from core.domain.ports import CacheStorePort, LoggerPort
from .database import DatabaseAdapter
from .models import CacheModel


def now_ms() -> int:
    """현재 시각 (에포크 밀리초)"""
    return int(time.time() * 1000)


def upsert_statement(dialect_name: str, model, values: Dict[str, Any], index_elements: List[str],
                     preserve: Sequence[str] = ()):
    """방언별 INSERT ... ON CONFLICT DO UPDATE 문을 만듭니다. preserve 컬럼은 갱신하지 않습니다."""
    if dialect_name == "postgresql":
        insert = postgresql.insert
    elif dialect_name == "sqlite":
        insert = sqlite.insert
    else:
        raise RuntimeError(f"지원하지 않는 데이터베이스입니다: {dialect_name}")

    stmt = insert(model).values(**values)
    update_columns = {
        k: stmt.excluded[k] for k in values if k not in index_elements and k not in preserve
    }
    return stmt.on_conflict_do_update(index_elements=index_elements, set_=update_columns)


class DatabaseCacheStore(CacheStorePort):
    """데이터베이스 기반 캐시 저장소"""

    def __init__(self, database: DatabaseAdapter, logger: LoggerPort, clock: Callable[[], int] = now_ms):
        self.database = database
        self.logger = logger
        self.clock = clock

    @staticmethod
    def _scope(identity: AccountIdentity):
        return and_(CacheModel.email == identity.email, CacheModel.app_id == identity.app_id)

    async def get_entry(self, identity: AccountIdentity, key: str) -> Optional[CacheEntry]:
        """만료되지 않은 캐시 항목을 조회합니다."""
        async with self.database.get_session() as session:
            stmt = select(CacheModel).where(self._scope(identity), CacheModel.key == key)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                self.logger.debug(f"캐시 없음: {identity.email} {key}")
                return None

            entry = CacheEntry(
                key=row.key,
                value=json.loads(row.value),
                ttl_ms=row.ttl_ms,
                created_at=row.created_at,
            )
            if entry.is_expired(self.clock()):
                await session.execute(
                    delete(CacheModel).where(self._scope(identity), CacheModel.key == key)
                )
                await session.commit()
                self.logger.debug(f"캐시 만료, 삭제: {identity.email} {key}")
                return None

            self.logger.debug(f"캐시 조회 성공: {identity.email} {key}")
            return entry

    async def get(self, identity: AccountIdentity, key: str) -> Optional[Any]:
        """캐시에서 값을 조회합니다."""
        entry = await self.get_entry(identity, key)
        return entry.value if entry else None

    async def set(self, identity: AccountIdentity, key: str, value: Any, ttl_ms: int) -> None:
        """캐시에 값을 저장합니다."""
        values = {
            "email": identity.email,
            "app_id": identity.app_id,
            "key": key,
            "value": json.dumps(value, ensure_ascii=False),
            "ttl_ms": int(ttl_ms),
            "created_at": self.clock(),
        }
        stmt = upsert_statement(self.database.dialect_name, CacheModel, values, ["email", "app_id", "key"])

        async with self.database.get_session() as session:
            await session.execute(stmt)
            await session.commit()

        self.logger.debug(f"캐시 저장 성공: {identity.email} {key}, 유효시간: {ttl_ms}ms")

    async def invalidate(self, identity: AccountIdentity, key: Optional[str] = None,
                         prefix: Optional[str] = None) -> int:
        """키 또는 접두사로 캐시를 무효화합니다."""
        stmt = delete(CacheModel).where(self._scope(identity))
        if key is not None:
            stmt = stmt.where(CacheModel.key == key)
        elif prefix is not None:
            stmt = stmt.where(CacheModel.key.startswith(prefix, autoescape=True))

        async with self.database.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()

        deleted = result.rowcount or 0
        self.logger.debug(f"캐시 무효화: {identity.email} key={key} prefix={prefix}, {deleted}건")
        return deleted

    async def clear_expired(self) -> int:
        """만료된 캐시를 정리합니다."""
        stmt = delete(CacheModel).where(CacheModel.created_at + CacheModel.ttl_ms < self.clock())

        async with self.database.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()

        deleted = result.rowcount or 0
        if deleted:
            self.logger.info(f"만료된 캐시 {deleted}개 정리 완료")
        return deleted

    async def clear_all(self, identity: Optional[AccountIdentity] = None) -> int:
        """모든 캐시를 삭제합니다."""
        stmt = delete(CacheModel)
        if identity is not None:
            stmt = stmt.where(self._scope(identity))

        async with self.database.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()

        deleted = result.rowcount or 0
        self.logger.info(f"캐시 {deleted}개 삭제 완료")
        return deleted
