"""
스레드 동기화 유즈케이스

스레드 목록 조회 후 각 스레드를 동시성 제한 하에 상세 조회(하이드레이션)하고,
원격 원본 페이로드를 TTL 캐시에 저장합니다. 프로필/라벨/변경 이력 조회와
캐시 무효화도 담당합니다.

원격 호출과 파싱 오류는 raise 하지 않고 SyncError 값으로 반환합니다.
"""

import hashlib
import json
from typing import Any, Dict, List, Optional, Tuple, Union

from core.domain.entities import (
    AccountIdentity,
    CacheTTL,
    HistoryPage,
    ParsedMessage,
    SkippedItem,
    ThreadListResult,
    ThreadResult,
)
from core.domain.error_classifier import call_boundary
from core.domain.errors import AuthFailure, ParseFailure, SyncError
from core.domain.parsing import (
    parse_raw_labels,
    parse_raw_message,
    parse_raw_thread,
    parse_raw_thread_list_item,
)
from core.domain.ports import CacheStorePort, LoggerPort, MailApiClientPort
from core.execution.bounded_executor import BoundedExecutor
from core.execution.retry_scheduler import RetryScheduler
from core.usecases.credential_management import CredentialManager

THREAD_PREFIX = "thread"
LABELS_KEY = "labels"
PROFILE_KEY = "profile"

INVALIDATION_SCOPES = ("threads", "labels", "profile", "all")

FOLDER_QUERIES = {
    "sent": "in:sent",
    "trash": "in:trash",
    "bin": "in:trash",
    "spam": "in:spam",
    "drafts": "is:draft",
    "draft": "is:draft",
    "starred": "is:starred",
    "archive": "in:archive",
    "snoozed": "label:Snoozed",
    "all": "in:anywhere",
}


def cache_key(operation: str, params: Optional[Dict[str, Any]] = None) -> str:
    """작업 이름과 파라미터로 결정적인 캐시 키를 만듭니다."""
    if not params:
        return operation
    encoded = json.dumps(params, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    digest = hashlib.sha256(encoded.encode()).hexdigest()[:16]
    return f"{operation}:{digest}"


def thread_cache_key(thread_id: str) -> str:
    return cache_key(THREAD_PREFIX, {"id": thread_id})


def build_search_params(
    folder: Optional[str] = None,
    query: Optional[str] = None,
    label_ids: Optional[List[str]] = None,
) -> Tuple[str, List[str]]:
    """폴더 이름을 검색어와 라벨 ID로 변환합니다."""
    resolved = list(label_ids or [])
    q = query or ""

    if not folder or folder == "inbox":
        if "INBOX" not in resolved:
            resolved.append("INBOX")
        return q, resolved

    prefix = FOLDER_QUERIES.get(folder, f"label:{folder}")
    return f"{prefix} {q}".strip(), resolved


def _cached_revision_matches(reference: Dict[str, Any], cached: Dict[str, Any]) -> bool:
    ref_history = reference.get("historyId")
    cached_history = cached.get("historyId")
    # 참조에 리비전이 있으면 캐시도 같은 리비전이어야 한다
    return not ref_history or ref_history == cached_history


class ThreadSyncEngine:
    """스레드 동기화 엔진"""

    def __init__(
        self,
        api_client: MailApiClientPort,
        cache_store: CacheStorePort,
        credential_manager: CredentialManager,
        retry_scheduler: RetryScheduler,
        executor: BoundedExecutor,
        logger: LoggerPort,
    ):
        self.api_client = api_client
        self.cache_store = cache_store
        self.credential_manager = credential_manager
        self.retry_scheduler = retry_scheduler
        self.executor = executor
        self.logger = logger

    async def _remote(self, identity: AccountIdentity, call, watermark: bool = False,
                      resource_id: Optional[str] = None):
        """자격 증명 확보 → 재시도 → 오류 값 변환을 거쳐 원격 호출을 실행합니다."""
        credential = await self.credential_manager.resolve(identity)
        if isinstance(credential, SyncError):
            return credential
        return await call_boundary(
            lambda: self.retry_scheduler.run(lambda: call(credential.access_token)),
            email=identity.email,
            watermark=watermark,
            resource_id=resource_id,
        )

    # =========================================================================
    # 스레드
    # =========================================================================

    async def list_threads(
        self,
        identity: AccountIdentity,
        folder: Optional[str] = None,
        query: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
        max_results: int = 25,
        page_token: Optional[str] = None,
    ) -> Union[ThreadListResult, SyncError]:
        """
        스레드 목록을 조회하고 각 스레드를 하이드레이션합니다.

        목록 호출 자체는 캐시하지 않습니다. 결과 순서는 목록 호출 순서를 따르며,
        AuthFailure는 배치 전체를 중단시키고 그 밖의 항목별 실패는 skipped에 기록됩니다.
        """
        q, resolved_label_ids = build_search_params(folder, query, label_ids)
        self.logger.debug(f"스레드 목록 조회: {identity.email} q={q!r} labels={resolved_label_ids}")

        listing = await self._remote(
            identity,
            lambda token: self.api_client.list_threads(
                token,
                q=q or None,
                label_ids=resolved_label_ids or None,
                max_results=max_results,
                page_token=page_token,
            ),
        )
        if isinstance(listing, SyncError):
            return listing

        references = listing.get("threads") or []
        skipped: List[SkippedItem] = []

        async def hydrate(reference: Dict[str, Any]):
            if not isinstance(reference, dict):
                self.logger.warning(f"스레드 참조 형식 오류: {reference!r}")
                skipped.append(SkippedItem(id=str(reference), reason="참조 형식 오류"))
                return None
            thread_id = reference.get("id")
            if not thread_id:
                return None

            key = thread_cache_key(thread_id)
            cached = await self.cache_store.get(identity, key)
            fetched = cached is None or not _cached_revision_matches(reference, cached)
            if not fetched:
                raw = cached
            else:
                raw = await self._remote(
                    identity,
                    lambda token: self.api_client.get_thread(token, thread_id, format="full"),
                    resource_id=thread_id,
                )
                if isinstance(raw, AuthFailure):
                    return raw
                if isinstance(raw, SyncError):
                    self.logger.warning(f"스레드 건너뜀: {thread_id} - {raw.message}")
                    skipped.append(SkippedItem(id=thread_id, reason=raw.message))
                    return None

            try:
                item = parse_raw_thread_list_item(raw)
            except ValueError as e:
                self.logger.warning(f"스레드 파싱 실패: {thread_id} - {e}")
                skipped.append(SkippedItem(id=thread_id, reason=f"파싱 실패: {e}"))
                return None
            # 파싱되는 페이로드만 캐시한다
            if fetched:
                await self.cache_store.set(identity, key, raw, CacheTTL.THREAD)
            return item, raw

        hydrated = await self.executor.run(references, hydrate)
        if isinstance(hydrated, SyncError):
            return hydrated

        valid = [entry for entry in hydrated if entry is not None]
        result = ThreadListResult(
            threads=[item for item, _ in valid],
            raw_threads=[raw for _, raw in valid],
            next_page_token=listing.get("nextPageToken"),
            result_size_estimate=int(listing.get("resultSizeEstimate") or 0),
            skipped=skipped,
        )
        if skipped:
            self.logger.warning(f"스레드 {len(skipped)}개를 건너뛰었습니다: {identity.email}")
        return result

    async def get_thread(self, identity: AccountIdentity, thread_id: str) -> Union[ThreadResult, SyncError]:
        """스레드 상세를 조회합니다. 캐시가 있으면 캐시를 사용합니다."""
        key = thread_cache_key(thread_id)
        raw = await self.cache_store.get(identity, key)
        from_cache = raw is not None

        if raw is None:
            raw = await self._remote(
                identity,
                lambda token: self.api_client.get_thread(token, thread_id, format="full"),
                resource_id=thread_id,
            )
            if isinstance(raw, SyncError):
                return raw

        try:
            thread = parse_raw_thread(raw)
        except ValueError as e:
            return ParseFailure(f"스레드 파싱 실패: {thread_id} - {e}", email=identity.email, cause=e)
        if not from_cache:
            await self.cache_store.set(identity, key, raw, CacheTTL.THREAD)
        return ThreadResult(thread=thread, raw=raw, from_cache=from_cache)

    # =========================================================================
    # 메시지 / 프로필 / 라벨 / 변경 이력
    # =========================================================================

    async def get_message(self, identity: AccountIdentity, message_id: str,
                          format: str = "full") -> Union[ParsedMessage, SyncError]:
        """메시지를 조회합니다. 메시지는 캐시하지 않습니다."""
        raw = await self._remote(
            identity,
            lambda token: self.api_client.get_message(token, message_id, format=format),
            resource_id=message_id,
        )
        if isinstance(raw, SyncError):
            return raw
        try:
            return parse_raw_message(raw)
        except ValueError as e:
            return ParseFailure(f"메시지 파싱 실패: {message_id} - {e}", email=identity.email, cause=e)

    async def get_profile(self, identity: AccountIdentity, fresh: bool = False) -> Union[Dict[str, Any], SyncError]:
        """프로필을 조회합니다. fresh=True 이면 캐시를 건너뜁니다."""
        if not fresh:
            cached = await self.cache_store.get(identity, PROFILE_KEY)
            if cached is not None:
                return cached

        profile = await self._remote(identity, self.api_client.get_profile)
        if isinstance(profile, SyncError):
            return profile
        await self.cache_store.set(identity, PROFILE_KEY, profile, CacheTTL.PROFILE)
        return profile

    async def list_labels(self, identity: AccountIdentity) -> Union[List[Dict[str, Any]], SyncError]:
        """라벨 목록을 조회합니다."""
        raw = await self.cache_store.get(identity, LABELS_KEY)
        if raw is None:
            raw = await self._remote(identity, self.api_client.list_labels)
            if isinstance(raw, SyncError):
                return raw
            await self.cache_store.set(identity, LABELS_KEY, raw, CacheTTL.LABELS)
        try:
            return parse_raw_labels(raw)
        except ValueError as e:
            return ParseFailure(f"라벨 파싱 실패: {e}", email=identity.email, cause=e)

    async def list_history(
        self,
        identity: AccountIdentity,
        start_history_id: str,
        label_id: Optional[str] = None,
        history_types: Optional[List[str]] = None,
    ) -> Union[HistoryPage, SyncError]:
        """
        워터마크 이후의 변경 이력을 모든 페이지에 걸쳐 조회합니다.

        워터마크가 만료되었으면 WatermarkExpired를 반환합니다.
        """
        entries: List[Any] = []
        latest = start_history_id
        page_token: Optional[str] = None

        while True:
            token_for_page = page_token
            page = await self._remote(
                identity,
                lambda token: self.api_client.list_history(
                    token,
                    start_history_id,
                    label_id=label_id,
                    history_types=history_types,
                    page_token=token_for_page,
                ),
                watermark=True,
            )
            if isinstance(page, SyncError):
                return page

            history = page.get("history") or []
            if isinstance(history, list):
                entries.extend(history)
            else:
                self.logger.warning(f"변경 이력 형식 오류: {type(history).__name__}")
            latest = page.get("historyId") or latest
            page_token = page.get("nextPageToken")
            if not page_token:
                break

        return HistoryPage(history=entries, history_id=latest)

    # =========================================================================
    # 캐시 무효화
    # =========================================================================

    async def invalidate_threads(self, identity: AccountIdentity, thread_ids: List[str]) -> int:
        """지정한 스레드의 캐시를 무효화합니다."""
        deleted = 0
        for thread_id in thread_ids:
            deleted += await self.cache_store.invalidate(identity, key=thread_cache_key(thread_id))
        return deleted

    async def invalidate(self, identity: AccountIdentity, scope: str = "all",
                         ids: Optional[List[str]] = None) -> int:
        """
        캐시를 무효화합니다.

        scope: threads (ids를 주면 해당 스레드만), labels, profile, all
        """
        if scope not in INVALIDATION_SCOPES:
            raise ValueError(f"지원하지 않는 무효화 범위입니다: {scope}. 지원: {', '.join(INVALIDATION_SCOPES)}")

        if scope == "threads":
            if ids:
                deleted = await self.invalidate_threads(identity, ids)
            else:
                deleted = await self.cache_store.invalidate(identity, prefix=f"{THREAD_PREFIX}:")
        elif scope == "labels":
            deleted = await self.cache_store.invalidate(identity, key=LABELS_KEY)
        elif scope == "profile":
            deleted = await self.cache_store.invalidate(identity, key=PROFILE_KEY)
        else:
            deleted = await self.cache_store.invalidate(identity)

        self.logger.info(f"캐시 무효화 완료: {identity.email} scope={scope}, {deleted}건")
        return deleted
