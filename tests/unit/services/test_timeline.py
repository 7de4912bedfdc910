"""
Unit tests for services.timeline module.

Tests:
- load_initial() reverses the snapshot and never re-sorts
- Live events are deduplicated, filtered by room and appended
- subscribe_live() replaces, unsubscribe() is idempotent
- TimelineManager keeps at most one live listener
"""

import pytest

from myceliumchat.services.timeline import TimelineManager, TimelineSynchronizer


ROOM = "!room:matrix.org"


@pytest.fixture
def timeline(fake_handle) -> TimelineSynchronizer:
    return TimelineSynchronizer(fake_handle, ROOM)


def _ids(timeline: TimelineSynchronizer) -> list[str]:
    return [m.id for m in timeline.messages]


class TestInit:
    """Constructor validation."""

    def test_empty_room(self, fake_handle) -> None:
        with pytest.raises(ValueError):
            TimelineSynchronizer(fake_handle, "")

    def test_bad_limit(self, fake_handle) -> None:
        with pytest.raises(ValueError):
            TimelineSynchronizer(fake_handle, ROOM, limit=0)


class TestLoadInitial:
    """load_initial()."""

    async def test_snapshot_reversed(self, timeline, fake_handle, make_event) -> None:
        fake_handle.timeline = [make_event(3, 300), make_event(2, 200), make_event(1, 100)]

        messages = await timeline.load_initial()

        assert [m.id for m in messages] == ["$1", "$2", "$3"]
        assert [m.timestamp_ms for m in messages] == [100, 200, 300]

    async def test_not_resorted_by_timestamp(self, timeline, fake_handle, make_event) -> None:
        fake_handle.timeline = [make_event(2, 100), make_event(1, 900)]
        await timeline.load_initial()
        assert _ids(timeline) == ["$1", "$2"]

    async def test_skips_non_messages(self, timeline, fake_handle, make_event) -> None:
        fake_handle.timeline = [
            make_event(2, 200),
            make_event("m", 150, type="m.room.member"),
            make_event(1, 100),
        ]
        await timeline.load_initial()
        assert _ids(timeline) == ["$1", "$2"]

    async def test_duplicate_in_snapshot(self, timeline, fake_handle, make_event) -> None:
        fake_handle.timeline = [make_event(1, 100), make_event(1, 100)]
        await timeline.load_initial()
        assert _ids(timeline) == ["$1"]

    async def test_empty_room(self, timeline) -> None:
        assert await timeline.load_initial() == []

    async def test_keeps_earlier_live_messages(self, timeline, fake_handle, make_event) -> None:
        timeline.subscribe_live()
        fake_handle.emit(make_event(2, 200))
        fake_handle.emit(make_event(4, 400))
        fake_handle.timeline = [make_event(2, 200), make_event(1, 100)]

        await timeline.load_initial()

        assert _ids(timeline) == ["$1", "$2", "$4"]


class TestLive:
    """subscribe_live() and the live stream."""

    async def test_dedup_and_append(self, timeline, fake_handle, make_event) -> None:
        fake_handle.timeline = [make_event(3, 300), make_event(2, 200), make_event(1, 100)]
        await timeline.load_initial()
        received = []
        timeline.subscribe_live(received.append)

        fake_handle.emit(make_event(2, 200))
        assert _ids(timeline) == ["$1", "$2", "$3"]

        fake_handle.emit(make_event(4, 400))
        assert _ids(timeline) == ["$1", "$2", "$3", "$4"]
        assert [m.id for m in received] == ["$4"]

    async def test_other_rooms_filtered(self, timeline, fake_handle, make_event) -> None:
        timeline.subscribe_live()
        fake_handle.emit(make_event(9, 900, room_id="!other:matrix.org"))
        assert timeline.messages == ()

    async def test_non_message_events_filtered(self, timeline, fake_handle, make_event) -> None:
        timeline.subscribe_live()
        fake_handle.emit(make_event("t", 100, type="m.room.topic"))
        assert timeline.messages == ()

    async def test_resubscribe_replaces(self, timeline, fake_handle, make_event) -> None:
        first, second = [], []
        timeline.subscribe_live(first.append)
        timeline.subscribe_live(second.append)

        fake_handle.emit(make_event(1, 100))

        assert len(fake_handle.listeners) == 1
        assert first == []
        assert [m.id for m in second] == ["$1"]

    async def test_unsubscribe_idempotent(self, timeline, fake_handle, make_event) -> None:
        timeline.subscribe_live()
        timeline.unsubscribe()
        timeline.unsubscribe()

        fake_handle.emit(make_event(1, 100))

        assert not timeline.is_subscribed
        assert fake_handle.listeners == {}
        assert timeline.messages == ()

    async def test_context_manager_unsubscribes(self, fake_handle) -> None:
        async with TimelineSynchronizer(fake_handle, ROOM) as timeline:
            timeline.subscribe_live()
            assert timeline.is_subscribed
        assert fake_handle.listeners == {}

    async def test_send(self, timeline, fake_handle) -> None:
        event_id = await timeline.send("hello")
        assert event_id == "$sent1"
        assert fake_handle.sent == [(ROOM, "hello", "m.text")]

    async def test_send_custom_msgtype(self, timeline, fake_handle) -> None:
        await timeline.send("waves", msgtype="m.emote")
        assert fake_handle.sent == [(ROOM, "waves", "m.emote")]


class TestTimelineManager:
    """TimelineManager."""

    def test_select_replaces_listener(self, fake_handle) -> None:
        manager = TimelineManager(fake_handle)
        first = manager.select("!a:x")
        first.subscribe_live()
        second = manager.select("!b:x")
        second.subscribe_live()

        assert not first.is_subscribed
        assert len(fake_handle.listeners) == 1
        assert manager.current is second

    def test_reselect_same_room(self, fake_handle) -> None:
        manager = TimelineManager(fake_handle)
        manager.select("!a:x").subscribe_live()
        manager.select("!a:x").subscribe_live()
        assert len(fake_handle.listeners) == 1

    def test_close(self, fake_handle) -> None:
        manager = TimelineManager(fake_handle, limit=10)
        manager.select("!a:x").subscribe_live()
        manager.close()
        manager.close()
        assert manager.current is None
        assert fake_handle.listeners == {}
