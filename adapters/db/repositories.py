"""
Repository 어댑터 구현

자격 증명과 동기화 워터마크를 저장하는 Repository 포트 구현체입니다.
"""

from typing import List, Optional

from sqlalchemy import and_, delete, select

from core.domain.entities import AccountIdentity, Credential
from core.domain.ports import (
    CredentialRepositoryPort,
    EncryptionServicePort,
    WatermarkRepositoryPort,
)
from .cache_repository import upsert_statement
from .database import DatabaseAdapter
from .models import AccountModel, SyncStateModel, now_utc

HISTORY_ID_KEY = "history_id"


class CredentialRepositoryAdapter(CredentialRepositoryPort):
    """자격 증명 Repository 어댑터. 자격 증명 JSON을 암호화해서 저장합니다."""

    def __init__(self, database: DatabaseAdapter, encryption_service: EncryptionServicePort):
        self.database = database
        self.encryption_service = encryption_service

    @staticmethod
    def _scope(identity: AccountIdentity):
        return and_(AccountModel.email == identity.email, AccountModel.app_id == identity.app_id)

    async def load(self, identity: AccountIdentity) -> Optional[Credential]:
        """자격 증명을 조회합니다."""
        async with self.database.get_session() as session:
            result = await session.execute(select(AccountModel).where(self._scope(identity)))
            model = result.scalar_one_or_none()

        if model is None:
            return None

        decrypted = await self.encryption_service.decrypt(model.credential_blob)
        return Credential.model_validate_json(decrypted)

    async def save(self, identity: AccountIdentity, credential: Credential) -> None:
        """자격 증명을 저장합니다."""
        blob = await self.encryption_service.encrypt(credential.model_dump_json())
        now = now_utc()
        values = {
            "email": identity.email,
            "app_id": identity.app_id,
            "credential_blob": blob,
            "created_at": now,
            "updated_at": now,
        }
        # created_at은 최초 값을 유지
        stmt = upsert_statement(
            self.database.dialect_name, AccountModel, values, ["email", "app_id"], preserve=("created_at",)
        )

        async with self.database.get_session() as session:
            await session.execute(stmt)
            await session.commit()

    async def delete(self, identity: AccountIdentity) -> bool:
        """자격 증명을 삭제합니다."""
        async with self.database.get_session() as session:
            result = await session.execute(delete(AccountModel).where(self._scope(identity)))
            await session.commit()
        return (result.rowcount or 0) > 0

    async def list_identities(self) -> List[AccountIdentity]:
        """저장된 계정 목록을 조회합니다."""
        async with self.database.get_session() as session:
            result = await session.execute(
                select(AccountModel.email, AccountModel.app_id).order_by(AccountModel.email)
            )
            rows = result.all()
        return [AccountIdentity(email=email, app_id=app_id) for email, app_id in rows]


class WatermarkRepositoryAdapter(WatermarkRepositoryPort):
    """동기화 워터마크 Repository 어댑터"""

    def __init__(self, database: DatabaseAdapter, key: str = HISTORY_ID_KEY):
        self.database = database
        self.key = key

    def _scope(self, identity: AccountIdentity):
        return and_(
            SyncStateModel.email == identity.email,
            SyncStateModel.app_id == identity.app_id,
            SyncStateModel.key == self.key,
        )

    async def get(self, identity: AccountIdentity) -> Optional[str]:
        async with self.database.get_session() as session:
            result = await session.execute(select(SyncStateModel.value).where(self._scope(identity)))
            return result.scalar_one_or_none()

    async def set(self, identity: AccountIdentity, value: str) -> None:
        values = {
            "email": identity.email,
            "app_id": identity.app_id,
            "key": self.key,
            "value": str(value),
            "updated_at": now_utc(),
        }
        stmt = upsert_statement(self.database.dialect_name, SyncStateModel, values, ["email", "app_id", "key"])

        async with self.database.get_session() as session:
            await session.execute(stmt)
            await session.commit()

    async def delete(self, identity: AccountIdentity) -> bool:
        async with self.database.get_session() as session:
            result = await session.execute(delete(SyncStateModel).where(self._scope(identity)))
            await session.commit()
        return (result.rowcount or 0) > 0
