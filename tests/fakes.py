"""테스트용 가짜 어댑터"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional

from core.domain.errors import RemoteApiError
from core.domain.ports import LoggerPort, MailApiClientPort, WatermarkRepositoryPort


class RecordingLogger(LoggerPort):
    """기록만 하는 로거"""

    def __init__(self):
        self.records: List[tuple] = []

    def _record(self, level: str, message: str) -> None:
        self.records.append((level, message))

    def info(self, message: str, **kwargs) -> None:
        self._record("info", message)

    def warning(self, message: str, **kwargs) -> None:
        self._record("warning", message)

    def error(self, message: str, **kwargs) -> None:
        self._record("error", message)

    def debug(self, message: str, **kwargs) -> None:
        self._record("debug", message)

    def messages(self, level: str) -> List[str]:
        return [message for lvl, message in self.records if lvl == level]


class FakeClock:
    """밀리초 시계"""

    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def rate_limit_error(status: int = 429, reason: str = "rateLimitExceeded") -> RemoteApiError:
    return RemoteApiError(status, "Rate Limit Exceeded", [reason])


def make_message(
    message_id: str,
    thread_id: Optional[str] = None,
    subject: str = "Hello",
    sender: str = "Alice <alice@example.com>",
    to: str = "me@example.com",
    labels: Optional[List[str]] = None,
    history_id: Optional[str] = None,
    mime_type: str = "text/plain",
) -> Dict[str, Any]:
    """Gmail API 형식의 메시지 페이로드를 만듭니다."""
    return {
        "id": message_id,
        "threadId": thread_id or message_id,
        "labelIds": labels if labels is not None else ["INBOX", "UNREAD"],
        "snippet": f"snippet of {subject}",
        "historyId": history_id,
        "payload": {
            "mimeType": mime_type,
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": sender},
                {"name": "To", "value": to},
                {"name": "Date", "value": "Mon, 6 May 2024 10:00:00 +0000"},
            ],
        },
    }


def make_thread(thread_id: str, history_id: str = "100", messages: Optional[List[Dict[str, Any]]] = None,
                subject: str = "Hello") -> Dict[str, Any]:
    return {
        "id": thread_id,
        "historyId": history_id,
        "messages": messages or [make_message(f"{thread_id}-m1", thread_id, subject=subject)],
    }


class FakeMailApiClient(MailApiClientPort):
    """
    메모리 기반 원격 API

    failures[(method, key)] 에 예외 목록을 넣으면 호출마다 하나씩 꺼내 발생시킵니다.
    """

    def __init__(self):
        self.threads: Dict[str, Dict[str, Any]] = {}
        self.thread_order: List[str] = []
        self.extra_references: List[Any] = []
        self.messages: Dict[str, Dict[str, Any]] = {}
        self.history_id = "1000"
        self.history: List[Dict[str, Any]] = []
        self.history_page_size: Optional[int] = None
        self.expired_watermarks: set = set()
        self.labels: List[Dict[str, Any]] = [{"id": "INBOX", "name": "INBOX", "type": "system"}]
        self.refresh_response: Dict[str, Any] = {"access_token": "new-access", "expires_in": 3600}
        self.failures: Dict[tuple, List[BaseException]] = defaultdict(list)
        self.calls: List[tuple] = []
        self.thread_delay: float = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def add_thread(self, raw: Dict[str, Any]) -> None:
        self.threads[raw["id"]] = raw
        self.thread_order.append(raw["id"])
        for message in raw.get("messages") or []:
            self.messages[message["id"]] = message

    def add_incoming(self, message: Dict[str, Any], history_id: str) -> None:
        """새 메시지 도착을 기록하고 현재 historyId를 올립니다."""
        self.messages[message["id"]] = message
        self.history.append({"id": history_id, "messagesAdded": [{"message": {"id": message["id"]}}]})
        self.history_id = history_id

    def fail(self, method: str, key: Optional[str], *errors: BaseException) -> None:
        self.failures[(method, key)].extend(errors)

    def _maybe_fail(self, method: str, key: Optional[str] = None) -> None:
        self.calls.append((method, key))
        queue = self.failures.get((method, key))
        if queue:
            raise queue.pop(0)

    async def list_threads(self, access_token, q=None, label_ids=None, max_results=25, page_token=None):
        self._maybe_fail("list_threads")
        refs = [{"id": tid, "historyId": self.threads[tid].get("historyId")} for tid in self.thread_order]
        refs.extend(self.extra_references)
        return {"threads": refs[:max_results], "resultSizeEstimate": len(refs), "nextPageToken": None}

    async def get_thread(self, access_token, thread_id, format="full"):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.thread_delay:
                await asyncio.sleep(self.thread_delay)
            self._maybe_fail("get_thread", thread_id)
            if thread_id not in self.threads:
                raise RemoteApiError(404, "Requested entity was not found.", ["notFound"])
            return self.threads[thread_id]
        finally:
            self.in_flight -= 1

    async def get_message(self, access_token, message_id, format="full"):
        self._maybe_fail("get_message", message_id)
        if message_id not in self.messages:
            raise RemoteApiError(404, "Requested entity was not found.", ["notFound"])
        return self.messages[message_id]

    async def list_history(self, access_token, start_history_id, label_id=None, history_types=None,
                           page_token=None):
        self._maybe_fail("list_history", start_history_id)
        if start_history_id in self.expired_watermarks:
            raise RemoteApiError(404, "Requested entity was not found.", ["notFound"])

        entries = [h for h in self.history if int(h["id"]) > int(start_history_id)]
        offset = int(page_token or 0)
        if self.history_page_size:
            page = entries[offset:offset + self.history_page_size]
            next_offset = offset + self.history_page_size
            next_token = str(next_offset) if next_offset < len(entries) else None
        else:
            page, next_token = entries, None

        result: Dict[str, Any] = {"historyId": self.history_id}
        if page:
            result["history"] = page
        if next_token:
            result["nextPageToken"] = next_token
        return result

    async def get_profile(self, access_token):
        self._maybe_fail("get_profile")
        return {
            "emailAddress": "me@example.com",
            "messagesTotal": len(self.messages),
            "threadsTotal": len(self.threads),
            "historyId": self.history_id,
        }

    async def list_labels(self, access_token):
        self._maybe_fail("list_labels")
        return self.labels

    async def refresh_credential(self, refresh_token):
        self._maybe_fail("refresh_credential")
        await asyncio.sleep(0)
        return dict(self.refresh_response)


class MemoryWatermarkRepository(WatermarkRepositoryPort):
    """저장 이력을 남기는 메모리 워터마크 저장소"""

    def __init__(self):
        self.values: Dict[Any, str] = {}
        self.writes: List[str] = []

    async def get(self, identity):
        return self.values.get(identity)

    async def set(self, identity, value):
        self.values[identity] = value
        self.writes.append(value)

    async def delete(self, identity):
        return self.values.pop(identity, None) is not None
