"""
변경 감시 유즈케이스

저장된 워터마크(historyId) 이후의 새 메시지를 주기적으로 폴링해 이벤트로 내보냅니다.

상태 전이:
    BOOT → (워터마크 없음) RESEEDING → SEEDED → POLLING
    POLLING → (워터마크 만료) EXPIRED → RESEEDING → POLLING (한 번만 재시도)
    cancel() / once / 오류 → STOPPED

호출자는 next()로 이벤트를 하나씩 당겨 갑니다. next()는 WatchEvent, WatchNotice,
WATCH_DONE, 또는 오류 값(SyncError)을 반환합니다. 오류를 반환한 뒤 감시기는 멈춥니다.

전달 보장은 최소 한 번(at-least-once)입니다. 워터마크는 틱의 하이드레이션이 끝난 뒤,
이벤트를 내보내기 전에 저장합니다.
"""

import asyncio
from collections import deque
from typing import Deque, List, Optional, Union

from core.domain.entities import (
    AccountIdentity,
    HistoryPage,
    ParsedMessage,
    WatcherState,
    WatchEvent,
    WatchNotice,
)
from core.domain.errors import AuthFailure, SyncError, TransientApiFailure, WatermarkExpired
from core.domain.ports import LoggerPort, WatermarkRepositoryPort
from core.domain.query_matcher import QueryMatcher
from core.execution.bounded_executor import BoundedExecutor
from core.usecases.thread_sync import ThreadSyncEngine

WATCH_FOLDER_LABELS = {
    "inbox": "INBOX",
    "sent": "SENT",
    "trash": "TRASH",
    "spam": "SPAM",
    "starred": "STARRED",
    "drafts": "DRAFT",
}

HISTORY_TYPES = ["messageAdded"]


class _WatchDone:
    """감시 종료 표식"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "WATCH_DONE"


WATCH_DONE = _WatchDone()

WatchItem = Union[WatchEvent, WatchNotice, SyncError, _WatchDone]


def collect_added_message_ids(history: HistoryPage, logger: Optional[LoggerPort] = None) -> List[str]:
    """messagesAdded 항목의 메시지 ID를 처음 등장한 순서대로 중복 없이 모읍니다.

    형식이 어긋난 항목은 건너뜁니다.
    """
    seen = set()
    message_ids: List[str] = []
    for entry in history.history:
        added_list = entry.get("messagesAdded") if isinstance(entry, dict) else None
        if added_list is None:
            if not isinstance(entry, dict) and logger:
                logger.warning(f"변경 이력 항목 형식 오류: {type(entry).__name__}")
            continue
        if not isinstance(added_list, list):
            if logger:
                logger.warning(f"messagesAdded 형식 오류: {type(added_list).__name__}")
            continue
        for added in added_list:
            message = added.get("message") if isinstance(added, dict) else None
            message_id = message.get("id") if isinstance(message, dict) else None
            if not isinstance(message_id, str) or not message_id:
                if logger:
                    logger.warning(f"messagesAdded 항목 형식 오류: {added!r}")
                continue
            if message_id not in seen:
                seen.add(message_id)
                message_ids.append(message_id)
    return message_ids



class ChangeWatcher:
    """변경 감시기"""

    def __init__(
        self,
        identity: AccountIdentity,
        engine: ThreadSyncEngine,
        watermark_repository: WatermarkRepositoryPort,
        executor: BoundedExecutor,
        logger: LoggerPort,
        folder: str = "inbox",
        interval_seconds: float = 15.0,
        query: Optional[str] = None,
        once: bool = False,
        matcher: Optional[QueryMatcher] = None,
    ):
        label_id = WATCH_FOLDER_LABELS.get(folder)
        if label_id is None:
            raise ValueError(
                f"감시할 수 없는 폴더입니다: {folder}. 지원: {', '.join(WATCH_FOLDER_LABELS)}"
            )

        self.identity = identity
        self.engine = engine
        self.watermark_repository = watermark_repository
        self.executor = executor
        self.logger = logger
        self.folder = folder
        self.label_id = label_id
        self.interval_seconds = interval_seconds
        self.query = query
        self.once = once
        self.matcher = matcher or QueryMatcher(logger)

        self.state = WatcherState.BOOT
        self.watermark: Optional[str] = None
        self.ticks = 0
        self._buffer: Deque[Union[WatchEvent, WatchNotice]] = deque()
        self._cancelled = asyncio.Event()

    # =========================================================================
    # 공개 API
    # =========================================================================

    def cancel(self) -> None:
        """감시를 멈춥니다. 이미 받아 둔 이벤트는 next()로 계속 꺼낼 수 있습니다."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def next(self) -> WatchItem:
        """다음 이벤트를 반환합니다. 필요하면 대기 후 폴링합니다."""
        while True:
            if self._buffer:
                return self._buffer.popleft()

            if self.state == WatcherState.STOPPED or self.cancelled:
                self.state = WatcherState.STOPPED
                return WATCH_DONE

            if self.ticks > 0:
                if self.once:
                    self.state = WatcherState.STOPPED
                    return WATCH_DONE
                await self._sleep()
                if self.cancelled:
                    self.state = WatcherState.STOPPED
                    return WATCH_DONE

            result = await self.tick()
            if isinstance(result, SyncError):
                self.state = WatcherState.STOPPED
                return result
            self._buffer.extend(result)

    def __aiter__(self) -> "ChangeWatcher":
        return self

    async def __anext__(self) -> Union[WatchEvent, WatchNotice, SyncError]:
        item = await self.next()
        if item is WATCH_DONE:
            raise StopAsyncIteration
        return item

    async def tick(self) -> Union[List[Union[WatchEvent, WatchNotice]], SyncError]:
        """한 번 폴링하고 이번 틱의 안내와 이벤트를 반환합니다."""
        self.ticks += 1
        notices: List[WatchNotice] = []

        if self.state == WatcherState.BOOT:
            seeded = await self._boot(notices)
            if isinstance(seeded, SyncError):
                return seeded

        self.state = WatcherState.POLLING
        page = await self._list_history()

        if isinstance(page, WatermarkExpired):
            self.state = WatcherState.EXPIRED
            self.logger.warning(f"워터마크 만료, 재시드합니다: {self.identity.email} ({self.watermark})")
            reseeded = await self._reseed()
            if isinstance(reseeded, SyncError):
                return reseeded
            notices.append(self._notice("reseeded", "워터마크가 만료되어 지금부터 다시 감시합니다"))

            self.state = WatcherState.POLLING
            page = await self._list_history()
            if isinstance(page, WatermarkExpired):
                return TransientApiFailure(
                    "재시드한 워터마크도 만료 응답을 받았습니다",
                    email=self.identity.email,
                    cause=page,
                )

        if isinstance(page, SyncError):
            return page

        messages = await self._hydrate(collect_added_message_ids(page, self.logger))
        if isinstance(messages, SyncError):
            # 하이드레이션이 치명적으로 실패하면 워터마크를 저장하지 않는다
            return messages

        await self._persist(page.history_id)

        events = [
            WatchEvent(
                account=self.identity.email,
                type="new_message",
                message=message,
                thread_id=message.thread_id,
            )
            for message in messages
        ]
        if events:
            self.logger.info(f"새 메시지 {len(events)}개: {self.identity.email}")
        return [*notices, *events]

    # =========================================================================
    # 내부 단계
    # =========================================================================

    def _notice(self, kind: str, text: str) -> WatchNotice:
        return WatchNotice(account=self.identity.email, type=kind, text=text)

    async def _boot(self, notices: List[WatchNotice]) -> Optional[SyncError]:
        stored = await self.watermark_repository.get(self.identity)
        if stored:
            self.watermark = stored
            notices.append(self._notice("resuming", f"저장된 워터마크 {stored} 부터 이어서 감시합니다"))
        else:
            reseeded = await self._reseed()
            if isinstance(reseeded, SyncError):
                return reseeded
            notices.append(self._notice("seeded", "지금부터 새 메시지를 감시합니다"))
        self.state = WatcherState.SEEDED
        return None

    async def _reseed(self) -> Optional[SyncError]:
        """현재 프로필의 historyId로 워터마크를 다시 정하고 저장합니다."""
        self.state = WatcherState.RESEEDING
        profile = await self.engine.get_profile(self.identity, fresh=True)
        if isinstance(profile, SyncError):
            return profile

        history_id = profile.get("historyId")
        if not history_id:
            return TransientApiFailure("프로필에 historyId가 없습니다", email=self.identity.email)

        self.watermark = str(history_id)
        await self.watermark_repository.set(self.identity, self.watermark)
        self.logger.info(f"워터마크 시드: {self.identity.email} = {self.watermark}")
        return None

    async def _list_history(self) -> Union[HistoryPage, SyncError]:
        return await self.engine.list_history(
            self.identity,
            self.watermark,
            label_id=self.label_id,
            history_types=HISTORY_TYPES,
        )

    async def _hydrate(self, message_ids: List[str]) -> Union[List[ParsedMessage], SyncError]:
        if not message_ids:
            return []

        async def fetch(message_id: str):
            message = await self.engine.get_message(self.identity, message_id, format="metadata")
            if isinstance(message, AuthFailure):
                return message
            if isinstance(message, SyncError):
                self.logger.warning(f"메시지 건너뜀: {message_id} - {message.message}")
                return None
            if not self.matcher.matches(message, self.query):
                return None
            return message

        hydrated = await self.executor.run(message_ids, fetch)
        if isinstance(hydrated, SyncError):
            return hydrated
        return [message for message in hydrated if message is not None]

    async def _persist(self, candidate: Optional[str]) -> None:
        # 변경이 없어도 매 틱 서버가 돌려준 값 그대로 저장한다
        self.watermark = candidate or self.watermark
        await self.watermark_repository.set(self.identity, self.watermark)

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass


async def merge_watchers(watchers: List[ChangeWatcher], queue_size: int = 0):
    """
    여러 계정의 감시기를 동시에 돌리며 항목을 하나의 스트림으로 합칩니다.

    각 감시기의 오류 값도 그대로 전달합니다. 모든 감시기가 끝나면 종료합니다.
    """
    queue: asyncio.Queue = asyncio.Queue(queue_size)

    async def pump(watcher: ChangeWatcher) -> None:
        while True:
            item = await watcher.next()
            if item is WATCH_DONE:
                return
            await queue.put(item)
            if isinstance(item, SyncError):
                return

    tasks = [asyncio.ensure_future(pump(w)) for w in watchers]
    waiter = asyncio.ensure_future(asyncio.gather(*tasks))
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield getter.result()
                continue
            getter.cancel()
            while not queue.empty():
                yield queue.get_nowait()
            waiter.result()
            return
    finally:
        for watcher in watchers:
            watcher.cancel()
        if not waiter.done():
            await asyncio.gather(*tasks, return_exceptions=True)
