"""
SQLAlchemy 데이터베이스 모델

모든 테이블은 (email, app_id)로 계정 범위가 정해집니다.
- accounts: 암호화된 자격 증명
- cache: TTL 캐시 (원격 원본 페이로드 JSON)
- sync_state: 워터마크 등 TTL 없는 동기화 상태
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Index, String, Text
from sqlalchemy.orm import declarative_base


def now_utc() -> datetime:
    """현재 UTC 시간을 반환합니다."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


Base = declarative_base()


class AccountModel(Base):
    """계정 자격 증명 테이블 모델"""

    __tablename__ = "accounts"

    email = Column(String(255), primary_key=True)
    app_id = Column(String(255), primary_key=True)
    credential_blob = Column(Text, nullable=False)  # Fernet 암호화된 JSON
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return f"<AccountModel(email='{self.email}', app_id='{self.app_id}')>"


class CacheModel(Base):
    """캐시 테이블 모델"""

    __tablename__ = "cache"

    email = Column(String(255), primary_key=True)
    app_id = Column(String(255), primary_key=True)
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    ttl_ms = Column(BigInteger, nullable=False)
    created_at = Column(BigInteger, nullable=False)  # 에포크 밀리초

    __table_args__ = (
        Index("idx_cache_expiry", "created_at", "ttl_ms"),
    )

    def __repr__(self):
        return f"<CacheModel(email='{self.email}', key='{self.key}')>"


class SyncStateModel(Base):
    """동기화 상태 테이블 모델"""

    __tablename__ = "sync_state"

    email = Column(String(255), primary_key=True)
    app_id = Column(String(255), primary_key=True)
    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return f"<SyncStateModel(email='{self.email}', key='{self.key}', value='{self.value}')>"
