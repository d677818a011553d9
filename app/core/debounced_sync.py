"""Debounced, interaction-aware persistence scheduler.

Coalesces bursts of state changes into a single write. One single-shot
QTimer is live at a time; a flush that comes due while a pointer gesture
is in progress is postponed (rescheduled), never dropped. Writes whose
payload fingerprint matches the last successful write are skipped.

Typical wiring::

    sync = DebouncedSync(payload_fn, write_fn, delay_ms=1200)
    controller.scene_changed.connect(sync.mark_dirty)
    sync.set_hydrated()
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from app.constants import POINTER_UP_FLUSH_DELAY_MS
from app.core.serializers import snapshot_fingerprint

logger = logging.getLogger(__name__)


class DebouncedSync(QObject):
    """Flush scheduler for one persistence channel.

    Args:
        payload_fn: Returns the JSON-safe value to persist.
        write_fn: Persists a payload. Exceptions keep the channel dirty
            unless the writer stopped the channel first.
        delay_ms: Quiet period before a scheduled flush.
        pointer_up_delay_ms: Delay of the flush scheduled on pointer release.
        before_flush: Optional hook run before the payload is built
            (the history channel commits pending edits here).
        name: Channel name used in log messages.

    Signals:
        flushed(str): Fingerprint of a payload that was written.
    """

    flushed = pyqtSignal(str)

    def __init__(
        self,
        payload_fn: Callable[[], Any],
        write_fn: Callable[[Any], None],
        delay_ms: int,
        pointer_up_delay_ms: int = POINTER_UP_FLUSH_DELAY_MS,
        before_flush: Callable[[], Any] | None = None,
        name: str = "sync",
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._payload_fn = payload_fn
        self._write_fn = write_fn
        self._delay_ms = delay_ms
        self._pointer_up_delay_ms = pointer_up_delay_ms
        self._before_flush = before_flush
        self._name = name

        self._hydrated = False
        self._stopped = False
        self._dirty = False
        self._interacting = False
        self._last_fingerprint: str | None = None
        self._write_count = 0

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_timeout)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_interacting(self) -> bool:
        return self._interacting

    @property
    def is_scheduled(self) -> bool:
        return self._timer.isActive()

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def write_count(self) -> int:
        return self._write_count

    @property
    def last_fingerprint(self) -> str | None:
        return self._last_fingerprint

    def set_hydrated(self) -> None:
        """Enable syncing; the first flush establishes the baseline."""
        if self._stopped:
            return
        self._hydrated = True
        self._dirty = True
        self.schedule()

    def stop(self) -> None:
        """Retire the channel: its backend is gone and nothing more is written."""
        self._stopped = True
        self._dirty = False
        self._timer.stop()

    def prime(self, payload: Any) -> None:
        """Treat ``payload`` as already persisted (e.g. loaded from disk)."""
        self._last_fingerprint = snapshot_fingerprint(payload)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def mark_dirty(self) -> None:
        """Watched state changed."""
        if not self._hydrated or self._stopped:
            return
        self._dirty = True
        self.schedule()

    def pointer_down(self) -> None:
        self._interacting = True

    def pointer_up(self) -> None:
        """Gesture ended: flush soon, then attempt an immediate flush."""
        self._interacting = False
        if self._dirty:
            self._timer.stop()
            self.schedule(self._pointer_up_delay_ms)
        self.flush(force=True)

    def teardown(self) -> None:
        """Last-chance flush on shutdown."""
        self._timer.stop()
        self._interacting = False
        self.flush(force=True)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, delay_ms: int | None = None) -> None:
        """Start the timer unless a flush is already pending."""
        if self._timer.isActive():
            return
        self._timer.start(self._delay_ms if delay_ms is None else delay_ms)

    def _on_timeout(self) -> None:
        if self._interacting:
            self.schedule()
            return
        self.flush()
        if self._dirty:
            self.schedule()

    def flush(self, force: bool = False) -> bool:
        """Write the payload if it differs from the last write.

        Args:
            force: Attempt even when not marked dirty or mid-gesture.

        Returns:
            True if ``write_fn`` was called successfully.
        """
        if not self._hydrated or self._stopped:
            return False
        if not force and (not self._dirty or self._interacting):
            return False

        if self._before_flush is not None:
            self._before_flush()

        payload = self._payload_fn()
        fingerprint = snapshot_fingerprint(payload)
        if fingerprint == self._last_fingerprint:
            logger.debug("%s: payload unchanged, write skipped", self._name)
            self._dirty = False
            return False

        try:
            self._write_fn(payload)
        except Exception:
            if self._stopped:
                return False
            logger.warning("%s: write failed, will retry", self._name, exc_info=True)
            self._dirty = True
            return False

        self._last_fingerprint = fingerprint
        self._dirty = False
        self._write_count += 1
        self.flushed.emit(fingerprint)
        return True
