"""변경 감시기 테스트"""

import asyncio
from datetime import timedelta

import pytest

from core.domain.entities import (
    AccountIdentity,
    Credential,
    HistoryPage,
    WatcherState,
    WatchEvent,
    WatchNotice,
    utc_now,
)
from core.domain.errors import AuthFailure, RemoteApiError, TransientApiFailure
from core.execution.bounded_executor import BoundedExecutor
from core.usecases.change_watch import (
    WATCH_DONE,
    ChangeWatcher,
    collect_added_message_ids,
    merge_watchers,
)

from tests.fakes import MemoryWatermarkRepository, make_message


@pytest.fixture
def watermarks():
    return MemoryWatermarkRepository()


@pytest.fixture
def make_watcher(engine, watermarks, logger, identity):
    def factory(**kwargs):
        kwargs.setdefault("interval_seconds", 0.01)
        who = kwargs.pop("identity", identity)
        return ChangeWatcher(who, engine, watermarks, BoundedExecutor(concurrency=3), logger, **kwargs)
    return factory


async def drain(watcher):
    items = []
    while True:
        item = await watcher.next()
        if item is WATCH_DONE:
            return items
        items.append(item)


class TestSeeding:

    @pytest.mark.asyncio
    async def test_first_run_seeds_from_profile(self, make_watcher, watermarks, identity, api):
        watcher = make_watcher(once=True)

        items = await drain(watcher)

        assert [item.type for item in items] == ["seeded"]
        assert watermarks.values[identity] == "1000"
        assert watcher.state == WatcherState.STOPPED

    @pytest.mark.asyncio
    async def test_stored_watermark_is_resumed(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        api.add_incoming(make_message("m1", subject="First"), history_id="1001")
        api.add_incoming(make_message("m2", subject="Second"), history_id="1002")

        items = await drain(make_watcher(once=True))

        assert isinstance(items[0], WatchNotice)
        assert items[0].type == "resuming"
        events = [item for item in items if isinstance(item, WatchEvent)]
        assert [e.message.id for e in events] == ["m1", "m2"]
        assert all(e.account == identity.email for e in events)
        assert events[0].thread_id == "m1"
        assert watermarks.values[identity] == "1002"
        assert ("get_profile", None) not in api.calls

    @pytest.mark.asyncio
    async def test_unsupported_folder(self, make_watcher):
        with pytest.raises(ValueError):
            make_watcher(folder="archive")


class TestWatermark:

    @pytest.mark.asyncio
    async def test_watermark_follows_server_value_every_tick(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        watcher = make_watcher()

        for _ in range(3):
            assert await watcher.tick() is not None
        api.add_incoming(make_message("m1"), history_id="1005")
        await watcher.tick()
        api.history_id = "900"
        result = await watcher.tick()

        assert [item for item in result if isinstance(item, WatchEvent)] == []
        assert watermarks.writes == ["1000", "1000", "1000", "1005", "900"]
        assert watcher.watermark == "900"

    @pytest.mark.asyncio
    async def test_empty_ticks_store_each_returned_watermark(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        watcher = make_watcher()

        for n in range(1, 6):
            api.history_id = str(1000 + n)
            result = await watcher.tick()
            assert [item for item in result if isinstance(item, WatchEvent)] == []
            assert watermarks.values[identity] == api.history_id

        assert watermarks.writes == ["1001", "1002", "1003", "1004", "1005"]

    @pytest.mark.asyncio
    async def test_seed_then_deliver_new_messages(self, make_watcher, watermarks, identity, api):
        watcher = make_watcher()

        first = await watcher.tick()
        assert [item.type for item in first] == ["seeded"]
        assert watermarks.values[identity] == "1000"

        api.add_incoming(make_message("m1", subject="First"), history_id="1001")
        api.add_incoming(make_message("m2", subject="Second"), history_id="1002")
        second = await watcher.tick()

        assert [item.message.id for item in second] == ["m1", "m2"]
        assert all(isinstance(item, WatchEvent) for item in second)
        assert watermarks.values[identity] == "1002"

    @pytest.mark.asyncio
    async def test_expired_watermark_is_reseeded(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "500"
        api.expired_watermarks.add("500")

        result = await make_watcher().tick()

        assert [item.type for item in result] == ["resuming", "reseeded"]
        assert watermarks.values[identity] == "1000"
        assert api.calls.count(("list_history", "1000")) == 1

    @pytest.mark.asyncio
    async def test_second_expiry_in_same_tick_is_transient_failure(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "500"
        api.expired_watermarks.update({"500", "1000"})

        result = await make_watcher().tick()
        assert isinstance(result, TransientApiFailure)

    @pytest.mark.asyncio
    async def test_auth_failure_during_hydration_keeps_watermark(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        api.add_incoming(make_message("m1"), history_id="1001")
        api.fail("get_message", "m1", RemoteApiError(401, "Invalid Credentials"))

        watcher = make_watcher()
        items = await drain(watcher)

        assert len(items) == 1
        assert isinstance(items[0], AuthFailure)
        assert watermarks.writes == []
        assert watermarks.values[identity] == "1000"

    @pytest.mark.asyncio
    async def test_missing_message_is_skipped(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        api.history.append({"id": "1001", "messagesAdded": [{"message": {"id": "gone"}}]})
        api.add_incoming(make_message("m2"), history_id="1002")

        result = await make_watcher().tick()

        assert [e.message.id for e in result if isinstance(e, WatchEvent)] == ["m2"]
        assert watermarks.values[identity] == "1002"

    @pytest.mark.asyncio
    async def test_malformed_message_is_skipped(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        broken = make_message("m1")
        broken["payload"]["headers"] = "garbage"
        api.add_incoming(broken, history_id="1001")
        api.add_incoming(make_message("m2"), history_id="1002")

        result = await make_watcher().tick()

        assert [e.message.id for e in result if isinstance(e, WatchEvent)] == ["m2"]
        assert watermarks.values[identity] == "1002"

    @pytest.mark.asyncio
    async def test_malformed_history_entry_still_advances_watermark(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        api.history.append({"id": "1001", "messagesAdded": ["garbage"]})
        api.add_incoming(make_message("m2"), history_id="1002")

        result = await make_watcher().tick()

        assert [e.message.id for e in result if isinstance(e, WatchEvent)] == ["m2"]
        assert watermarks.values[identity] == "1002"


class TestFiltering:

    @pytest.mark.asyncio
    async def test_query_filters_events(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        api.add_incoming(make_message("m1", sender="Alice <alice@example.com>"), history_id="1001")
        api.add_incoming(make_message("m2", sender="Bob <bob@example.com>"), history_id="1002")

        result = await make_watcher(query="from:bob").tick()

        events = [e for e in result if isinstance(e, WatchEvent)]
        assert [e.message.id for e in events] == ["m2"]
        # 걸러진 메시지도 워터마크는 지나간다
        assert watermarks.values[identity] == "1002"


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_interrupts_interval_sleep(self, make_watcher, watermarks, identity):
        watermarks.values[identity] = "1000"
        watcher = make_watcher(interval_seconds=60)

        assert (await watcher.next()).type == "resuming"
        pending = asyncio.ensure_future(watcher.next())
        await asyncio.sleep(0.01)
        watcher.cancel()

        assert await asyncio.wait_for(pending, timeout=1) is WATCH_DONE
        assert watcher.state == WatcherState.STOPPED

    @pytest.mark.asyncio
    async def test_async_iteration_stops_on_done(self, make_watcher, watermarks, identity, api):
        watermarks.values[identity] = "1000"
        api.add_incoming(make_message("m1"), history_id="1001")

        items = [item async for item in make_watcher(once=True)]
        assert [item.type for item in items] == ["resuming", "new_message"]


class TestMergeWatchers:

    @pytest.mark.asyncio
    async def test_events_from_all_accounts(self, make_watcher, watermarks, credential_manager, identity, api):
        other = AccountIdentity(email="other@example.com", app_id="client-1")
        await credential_manager.store(
            other, Credential(access_token="o", refresh_token="r", expires_at=utc_now() + timedelta(hours=1))
        )
        watermarks.values[identity] = "1000"
        watermarks.values[other] = "1000"
        api.add_incoming(make_message("m1"), history_id="1001")

        items = [item async for item in merge_watchers([
            make_watcher(once=True),
            make_watcher(identity=other, once=True),
        ])]

        events = [item for item in items if isinstance(item, WatchEvent)]
        assert sorted(e.account for e in events) == ["me@example.com", "other@example.com"]


class TestHelpers:

    def test_collect_added_ids_deduplicates(self):
        page = HistoryPage(history=[
            {"id": "1", "messagesAdded": [{"message": {"id": "a"}}, {"message": {"id": "b"}}]},
            {"id": "2", "messagesAdded": [{"message": {"id": "a"}}]},
            {"id": "3", "labelsAdded": [{"message": {"id": "c"}}]},
        ])
        assert collect_added_message_ids(page) == ["a", "b"]

    def test_collect_added_ids_skips_malformed_entries(self):
        page = HistoryPage(history=[
            "garbage",
            {"id": "1", "messagesAdded": "garbage"},
            {"id": "2", "messagesAdded": ["garbage", {"message": None}, {"message": {"id": "a"}}]},
        ])
        assert collect_added_message_ids(page) == ["a"]
