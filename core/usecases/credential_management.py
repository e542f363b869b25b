"""
자격 증명 관리 유즈케이스

계정별 OAuth 자격 증명을 저장하고, 만료 시 갱신 후 병합해 저장합니다.
같은 계정의 갱신은 계정별 잠금으로 직렬화합니다.
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from core.domain.entities import AccountIdentity, Credential, utc_now
from core.domain.error_classifier import call_boundary
from core.domain.errors import AuthFailure, SyncError
from core.domain.ports import (
    CredentialRepositoryPort,
    LoggerPort,
    MailApiClientPort,
)
from core.execution.retry_scheduler import RetryScheduler


class CredentialManager:
    """자격 증명 관리자"""

    def __init__(
        self,
        credential_repository: CredentialRepositoryPort,
        api_client: MailApiClientPort,
        retry_scheduler: RetryScheduler,
        logger: LoggerPort,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.credential_repository = credential_repository
        self.api_client = api_client
        self.retry_scheduler = retry_scheduler
        self.logger = logger
        self.clock = clock
        self._locks: Dict[AccountIdentity, asyncio.Lock] = {}

    def _lock_for(self, identity: AccountIdentity) -> asyncio.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            lock = self._locks[identity] = asyncio.Lock()
        return lock

    async def resolve(self, identity: AccountIdentity) -> Union[Credential, SyncError]:
        """
        사용 가능한 자격 증명을 반환합니다.

        만료되었으면 갱신 응답을 병합해 저장한 뒤 반환합니다.
        저장된 자격 증명이 없거나 갱신할 수 없으면 AuthFailure를 반환합니다.
        """
        credential = await self.credential_repository.load(identity)
        if credential is None:
            return AuthFailure(identity.email, "저장된 자격 증명이 없습니다")
        if not credential.is_expired(self.clock()):
            return credential

        async with self._lock_for(identity):
            # 다른 호출자(또는 다른 프로세스)가 이미 갱신했을 수 있으므로 다시 읽는다
            credential = await self.credential_repository.load(identity)
            if credential is None:
                return AuthFailure(identity.email, "저장된 자격 증명이 없습니다")
            if not credential.is_expired(self.clock()):
                return credential
            return await self._refresh_locked(identity, credential)

    async def refresh(self, identity: AccountIdentity) -> Union[Credential, SyncError]:
        """만료 여부와 관계없이 자격 증명을 갱신합니다."""
        async with self._lock_for(identity):
            credential = await self.credential_repository.load(identity)
            if credential is None:
                return AuthFailure(identity.email, "저장된 자격 증명이 없습니다")
            return await self._refresh_locked(identity, credential)

    async def _refresh_locked(self, identity: AccountIdentity,
                              credential: Credential) -> Union[Credential, SyncError]:
        if not credential.can_refresh():
            return AuthFailure(identity.email, "리프레시 토큰이 없습니다")

        self.logger.info(f"토큰 갱신 시작: {identity.email}")
        response = await call_boundary(
            lambda: self.retry_scheduler.run(
                lambda: self.api_client.refresh_credential(credential.refresh_token)
            ),
            email=identity.email,
        )
        if isinstance(response, SyncError):
            self.logger.error(f"토큰 갱신 실패: {identity.email} - {response.message}")
            return response

        merged = credential.merge(response, now=self.clock())
        await self.credential_repository.save(identity, merged)
        self.logger.info(f"토큰 갱신 완료: {identity.email}, 만료: {merged.expires_at}")
        return merged

    async def store(self, identity: AccountIdentity, credential: Credential) -> None:
        """외부에서 받은 자격 증명을 저장합니다."""
        await self.credential_repository.save(identity, credential)
        self.logger.info(f"자격 증명 저장 완료: {identity.email}")

    async def forget(self, identity: AccountIdentity) -> bool:
        """자격 증명을 삭제합니다."""
        deleted = await self.credential_repository.delete(identity)
        if deleted:
            self.logger.info(f"자격 증명 삭제 완료: {identity.email}")
        return deleted

    async def status(self, identity: AccountIdentity) -> dict:
        """인증 상태를 조회합니다."""
        credential = await self.credential_repository.load(identity)
        if credential is None:
            return {"email": identity.email, "authenticated": False}
        return {
            "email": identity.email,
            "authenticated": True,
            "expired": credential.is_expired(self.clock()),
            "expires_at": credential.expires_at,
            "has_refresh_token": credential.can_refresh(),
            "scope": credential.scope,
        }

    async def list_identities(self) -> List[AccountIdentity]:
        """인증된 계정 목록을 조회합니다."""
        return await self.credential_repository.list_identities()

    async def find_identity(self, email: Optional[str] = None) -> Union[AccountIdentity, SyncError]:
        """
        이메일로 계정을 찾습니다.

        이메일을 생략하면 저장된 계정이 하나일 때 그 계정을 반환합니다.
        """
        identities = await self.list_identities()
        if email:
            lowered = email.strip().lower()
            for identity in identities:
                if identity.email == lowered:
                    return identity
            return AuthFailure(lowered, "등록되지 않은 계정입니다")
        if len(identities) == 1:
            return identities[0]
        if not identities:
            return AuthFailure("", "등록된 계정이 없습니다")
        return AuthFailure("", "계정이 여러 개입니다. --email 로 지정하세요")
