"""Tests for progress tracking and relay."""

import pytest

from dive_inspector.progress import (
    Event,
    InspectionStatus,
    ProgressRelay,
    ProgressTracker,
)
from tests.helpers import BrokenChannel, RecordingChannel


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestProgressTracker:
    """Test the in-memory progress map."""

    def test_start_creates_record(self):
        tracker = ProgressTracker()
        record = tracker.start("nginx")

        assert record.status == InspectionStatus.STARTING
        assert record.progress == 0.0
        assert tracker.get("nginx") is record
        assert len(tracker) == 1

    def test_update_merges_fields(self):
        tracker = ProgressTracker()
        tracker.start("nginx")

        tracker.update("nginx", status=InspectionStatus.CHECKING, progress=10, message="Checking")
        record = tracker.update("nginx", progress=15)

        assert record.status == InspectionStatus.CHECKING
        assert record.progress == 15
        assert record.message == "Checking"

    def test_update_accepts_status_strings_and_clamps(self):
        tracker = ProgressTracker()

        record = tracker.update("nginx", status="pulling", progress=150)

        assert record.status == InspectionStatus.PULLING
        assert record.progress == 100.0
        assert tracker.update("nginx", progress=-5).progress == 0.0

    def test_start_replaces_previous_record(self):
        tracker = ProgressTracker()
        tracker.update("nginx", status=InspectionStatus.ERROR, error="boom")

        record = tracker.start("nginx")

        assert record.error is None
        assert tracker.get("nginx").status == InspectionStatus.STARTING

    def test_finished_records_expire(self):
        clock = FakeClock()
        tracker = ProgressTracker(retention=300, clock=clock)
        tracker.start("nginx")
        tracker.update("nginx", status=InspectionStatus.COMPLETE, progress=100)

        clock.now += 299
        assert tracker.get("nginx") is not None

        clock.now += 2
        assert tracker.get("nginx") is None
        assert len(tracker) == 0

    def test_errors_expire(self):
        clock = FakeClock()
        tracker = ProgressTracker(retention=10, clock=clock)
        tracker.update("nginx", status=InspectionStatus.ERROR, error="boom")

        clock.now += 11

        assert tracker.active() == []

    def test_running_records_do_not_expire(self):
        clock = FakeClock()
        tracker = ProgressTracker(retention=10, clock=clock)
        tracker.update("nginx", status=InspectionStatus.ANALYZING, progress=70)

        clock.now += 10000

        assert tracker.get("nginx").progress == 70

    def test_restart_clears_expiry(self):
        clock = FakeClock()
        tracker = ProgressTracker(retention=10, clock=clock)
        tracker.update("nginx", status=InspectionStatus.COMPLETE)
        tracker.update("nginx", status=InspectionStatus.CHECKING)

        clock.now += 100

        assert tracker.get("nginx") is not None

    def test_remove(self):
        tracker = ProgressTracker()
        tracker.start("nginx")

        assert tracker.remove("nginx").image_name == "nginx"
        assert tracker.remove("nginx") is None
        assert tracker.get("nginx") is None

    def test_to_dict(self):
        tracker = ProgressTracker()
        data = tracker.update("nginx", status="analyzing", progress=61.234, message="Analyzing").to_dict()

        assert data["image_name"] == "nginx"
        assert data["status"] == "analyzing"
        assert data["progress"] == 61.2
        assert data["error"] is None
        assert "expires_at" not in data


class TestProgressRelay:
    """Test subscriptions and event delivery."""

    @pytest.mark.asyncio
    async def test_publish_without_subscriber(self, relay):
        assert await relay.publish("nginx", Event.UPDATE, {"progress": 10}) is False

    @pytest.mark.asyncio
    async def test_update_records_and_publishes(self, relay):
        channel = RecordingChannel()
        relay.subscribe("nginx", channel)

        await relay.update("nginx", status=InspectionStatus.CHECKING, progress=10, message="Checking")

        assert relay.tracker.get("nginx").status == InspectionStatus.CHECKING
        assert channel.messages == [
            {
                "event": "inspection-update",
                "data": {"image_name": "nginx", "status": "checking", "progress": 10.0, "message": "Checking"},
            }
        ]

    @pytest.mark.asyncio
    async def test_later_subscriber_replaces_earlier(self, relay):
        first, second = RecordingChannel(), RecordingChannel()
        relay.subscribe("nginx", first)
        relay.subscribe("nginx", second)

        await relay.publish("nginx", Event.COMPLETE, {})

        assert first.messages == []
        assert second.events == ["inspection-complete"]

    @pytest.mark.asyncio
    async def test_subscriptions_are_per_image(self, relay):
        channel = RecordingChannel()
        relay.subscribe("nginx", channel)

        await relay.publish("redis", Event.UPDATE, {})

        assert channel.messages == []

    def test_unsubscribe_removes_all_for_channel(self, relay):
        channel, other = RecordingChannel(), RecordingChannel()
        relay.subscribe("nginx", channel)
        relay.subscribe("redis", channel)
        relay.subscribe("alpine", other)

        removed = relay.unsubscribe(channel)

        assert sorted(removed) == ["nginx", "redis"]
        assert relay.subscriber("nginx") is None
        assert relay.subscriber("alpine") is other

    @pytest.mark.asyncio
    async def test_broken_channel_is_dropped(self, relay):
        relay.subscribe("nginx", BrokenChannel())

        record = await relay.update("nginx", status=InspectionStatus.ANALYZING, progress=60)

        assert record.progress == 60
        assert relay.subscriber("nginx") is None
