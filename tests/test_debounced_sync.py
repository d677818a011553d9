"""Tests for DebouncedSync and InteractionTracker.

Covers:
- Burst coalescing (ten changes → one write of the final state)
- Hydration gate, unchanged-payload suppression, write retry
- Pointer interaction deferral and the release flush
- Event-filter edge detection
"""

import sys

import pytest
from PyQt6.QtCore import QCoreApplication, QEvent, QObject
from PyQt6.QtTest import QTest

from app.core.debounced_sync import DebouncedSync
from app.core.interaction import InteractionTracker

_app = QCoreApplication.instance() or QCoreApplication(sys.argv)

DELAY_MS = 40


# ── Helpers ──────────────────────────────────────────────────────────

class _Channel:
    """Watched state plus a recording sink."""

    def __init__(self, fail_times: int = 0):
        self.state = {"value": 0}
        self.writes: list[dict] = []
        self.fail_times = fail_times

    def payload(self) -> dict:
        return dict(self.state)

    def write(self, payload: dict) -> None:
        if self.fail_times:
            self.fail_times -= 1
            raise OSError("disk full")
        self.writes.append(payload)


def _make(channel: _Channel, **kwargs) -> DebouncedSync:
    return DebouncedSync(
        channel.payload, channel.write, delay_ms=DELAY_MS, pointer_up_delay_ms=5, **kwargs,
    )


def _hydrated(channel: _Channel, **kwargs) -> DebouncedSync:
    sync = _make(channel, **kwargs)
    sync.set_hydrated()
    sync.flush(force=True)
    channel.writes.clear()
    return sync


# ===================================================================
# DebouncedSync
# ===================================================================

class TestCoalescing:

    def test_ten_changes_one_write(self):
        channel = _Channel()
        sync = _hydrated(channel)
        for i in range(1, 11):
            channel.state["value"] = i
            sync.mark_dirty()
        assert channel.writes == []
        QTest.qWait(DELAY_MS * 5)
        assert channel.writes == [{"value": 10}]
        assert not sync.is_dirty

    def test_single_timer_pending(self):
        channel = _Channel()
        sync = _hydrated(channel)
        sync.mark_dirty()
        assert sync.is_scheduled
        sync.mark_dirty()
        assert sync.is_scheduled

    def test_write_count(self):
        channel = _Channel()
        sync = _make(channel)
        sync.set_hydrated()
        assert sync.flush(force=True)
        assert sync.write_count == 1
        assert sync.last_fingerprint is not None


class TestHydrationGate:

    def test_mark_dirty_before_hydration_ignored(self):
        channel = _Channel()
        sync = _make(channel)
        sync.mark_dirty()
        assert not sync.is_dirty
        assert not sync.is_scheduled
        assert not sync.flush(force=True)

    def test_set_hydrated_schedules_baseline(self):
        channel = _Channel()
        sync = _make(channel)
        sync.set_hydrated()
        assert sync.is_scheduled
        QTest.qWait(DELAY_MS * 4)
        assert channel.writes == [{"value": 0}]

    def test_primed_payload_not_rewritten(self):
        channel = _Channel()
        sync = _make(channel)
        sync.prime({"value": 0})
        sync.set_hydrated()
        QTest.qWait(DELAY_MS * 4)
        assert channel.writes == []
        assert not sync.is_dirty


class TestWrites:

    def test_unchanged_payload_skipped(self):
        channel = _Channel()
        sync = _hydrated(channel)
        sync.mark_dirty()
        assert not sync.flush()
        assert channel.writes == []
        assert not sync.is_dirty

    def test_failed_write_stays_dirty_and_retries(self):
        channel = _Channel(fail_times=1)
        sync = _make(channel)
        sync.set_hydrated()
        assert not sync.flush(force=True)
        assert sync.is_dirty
        assert sync.write_count == 0
        QTest.qWait(DELAY_MS * 4)
        assert channel.writes == [{"value": 0}]
        assert not sync.is_dirty

    def test_before_flush_runs_first(self):
        channel = _Channel()
        calls = []

        def bump():
            calls.append(1)
            channel.state["value"] = 99

        sync = _make(channel, before_flush=bump)
        sync.set_hydrated()
        sync.flush(force=True)
        assert calls == [1]
        assert channel.writes == [{"value": 99}]

    def test_flushed_signal(self):
        channel = _Channel()
        sync = _make(channel)
        seen = []
        sync.flushed.connect(seen.append)
        sync.set_hydrated()
        sync.flush(force=True)
        assert seen == [sync.last_fingerprint]

    def test_teardown_flushes_now(self):
        channel = _Channel()
        sync = _hydrated(channel)
        channel.state["value"] = 5
        sync.mark_dirty()
        sync.teardown()
        assert channel.writes == [{"value": 5}]
        assert not sync.is_scheduled

    def test_stopped_channel_writes_nothing(self):
        channel = _Channel()
        sync = _hydrated(channel)
        sync.mark_dirty()
        sync.stop()
        assert sync.is_stopped
        assert not sync.is_dirty
        assert not sync.is_scheduled
        channel.state["value"] = 3
        sync.mark_dirty()
        assert not sync.flush(force=True)
        sync.teardown()
        assert channel.writes == []

    def test_writer_stopping_channel_is_not_a_write(self):
        channel = _Channel()

        def give_up(payload):
            sync.stop()
            raise OSError("read-only")

        sync = DebouncedSync(channel.payload, give_up, delay_ms=DELAY_MS)
        seen = []
        sync.flushed.connect(seen.append)
        sync.set_hydrated()
        assert not sync.flush(force=True)
        assert sync.write_count == 0
        assert sync.last_fingerprint is None
        assert seen == []
        assert not sync.is_dirty


class TestInteraction:

    def test_flush_deferred_while_interacting(self):
        channel = _Channel()
        sync = _hydrated(channel)
        sync.pointer_down()
        channel.state["value"] = 3
        sync.mark_dirty()
        QTest.qWait(DELAY_MS * 4)
        assert channel.writes == []
        assert sync.is_dirty
        assert sync.is_scheduled

    def test_pointer_up_flushes(self):
        channel = _Channel()
        sync = _hydrated(channel)
        sync.pointer_down()
        channel.state["value"] = 3
        sync.mark_dirty()
        sync.pointer_up()
        assert channel.writes == [{"value": 3}]
        assert not sync.is_interacting

    def test_pointer_up_without_changes(self):
        channel = _Channel()
        sync = _hydrated(channel)
        sync.pointer_down()
        sync.pointer_up()
        assert channel.writes == []


# ===================================================================
# InteractionTracker
# ===================================================================

class TestInteractionTracker:

    def test_press_release_edges(self):
        channel = _Channel()
        sync = _hydrated(channel)
        tracker = InteractionTracker([sync])
        target = QObject()

        tracker.eventFilter(target, QEvent(QEvent.Type.MouseButtonPress))
        assert tracker.is_pressed
        assert sync.is_interacting

        channel.state["value"] = 7
        sync.mark_dirty()
        tracker.eventFilter(target, QEvent(QEvent.Type.MouseButtonRelease))
        assert not tracker.is_pressed
        assert channel.writes == [{"value": 7}]

    @pytest.mark.parametrize("press, release", [
        (QEvent.Type.TouchBegin, QEvent.Type.TouchEnd),
        (QEvent.Type.TouchBegin, QEvent.Type.TouchCancel),
        (QEvent.Type.TabletPress, QEvent.Type.TabletRelease),
    ])
    def test_other_pointer_kinds(self, press, release):
        tracker = InteractionTracker()
        target = QObject()
        tracker.eventFilter(target, QEvent(press))
        assert tracker.is_pressed
        tracker.eventFilter(target, QEvent(release))
        assert not tracker.is_pressed

    def test_repeated_press_forwarded_once(self):
        channel = _Channel()
        sync = _hydrated(channel)
        tracker = InteractionTracker([sync])
        calls = []
        sync.pointer_down = lambda: calls.append("down")
        target = QObject()
        tracker.eventFilter(target, QEvent(QEvent.Type.MouseButtonPress))
        tracker.eventFilter(target, QEvent(QEvent.Type.MouseButtonPress))
        assert calls == ["down"]

    def test_other_events_pass_through(self):
        tracker = InteractionTracker()
        assert tracker.eventFilter(QObject(), QEvent(QEvent.Type.Timer)) is False
        assert not tracker.is_pressed

    def test_register_and_teardown(self):
        channel = _Channel()
        sync = _hydrated(channel)
        tracker = InteractionTracker()
        tracker.register(sync)
        tracker.register(sync)
        channel.state["value"] = 1
        sync.mark_dirty()
        tracker.teardown()
        assert channel.writes == [{"value": 1}]
