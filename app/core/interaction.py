"""Pointer-interaction tracking for debounced persistence.

An application-wide event filter forwards pointer press/release edges to
every registered DebouncedSync, and flushes them all on shutdown.
"""

from __future__ import annotations

from PyQt6.QtCore import QCoreApplication, QEvent, QObject

from app.core.debounced_sync import DebouncedSync

_PRESS_EVENTS = {
    QEvent.Type.MouseButtonPress,
    QEvent.Type.TouchBegin,
    QEvent.Type.TabletPress,
}
_RELEASE_EVENTS = {
    QEvent.Type.MouseButtonRelease,
    QEvent.Type.TouchEnd,
    QEvent.Type.TouchCancel,
    QEvent.Type.TabletRelease,
}


class InteractionTracker(QObject):
    """Event filter mapping pointer edges onto sync channels."""

    def __init__(self, syncs: list[DebouncedSync] | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._syncs: list[DebouncedSync] = list(syncs or [])
        self._pressed = False

    @property
    def is_pressed(self) -> bool:
        return self._pressed

    def register(self, sync: DebouncedSync) -> None:
        if sync not in self._syncs:
            self._syncs.append(sync)

    def install(self, app: QCoreApplication) -> None:
        """Filter all application events and flush on ``aboutToQuit``."""
        app.installEventFilter(self)
        app.aboutToQuit.connect(self.teardown)

    def pointer_down(self) -> None:
        self._pressed = True
        for sync in self._syncs:
            sync.pointer_down()

    def pointer_up(self) -> None:
        self._pressed = False
        for sync in self._syncs:
            sync.pointer_up()

    def teardown(self) -> None:
        for sync in self._syncs:
            sync.teardown()

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:
        kind = event.type()
        # Press/release events reach every widget on the propagation path;
        # only edges change the interaction state.
        if kind in _PRESS_EVENTS and not self._pressed:
            self.pointer_down()
        elif kind in _RELEASE_EVENTS and self._pressed:
            self.pointer_up()
        return False
