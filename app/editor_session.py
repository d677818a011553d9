"""Editor session — wires the scene controller to its persistence channels.

Owns the SceneController, the durable history store, the shareable URL
state, both DebouncedSync channels, the pointer tracker and the export
boundary. User-visible problems are reported through ``notification``;
nothing here raises into the UI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from PyQt6.QtCore import QCoreApplication, QObject, QUrl, pyqtSignal

from app.constants import (
    HISTORY_COMMIT_DELAY_MS,
    POINTER_UP_FLUSH_DELAY_MS,
    SCENE_HISTORY_KEY,
    URL_FLUSH_DELAY_MS,
)
from app.core.debounced_sync import DebouncedSync
from app.core.interaction import InteractionTracker
from app.core.scene_controller import SceneController
from app.core.serializers import camera_to_dict, mode_to_dict, strip_light_for_url
from app.core.url_codec import UrlState
from app.database.db_manager import DatabaseManager
from app.database.kv_store import DurableStore, StorageUnavailableError
from app.export.env_export import EnvMapExporter
from app.export.settings_json import InvalidSettingsError, SettingsJsonExporter
from app.models.scene import ModeState

logger = logging.getLogger(__name__)


class EditorSession(QObject):
    """Scene state plus its history, URL and export plumbing.

    Signals:
        notification(str, str): (level, message); level is "info" or "error".
    """

    notification = pyqtSignal(str, str)

    def __init__(
        self,
        db_path: Path | str | None = None,
        url: QUrl | str | None = None,
        controller: SceneController | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._controller = controller or SceneController(parent=self)
        self._mode = ModeState()
        self._store: DurableStore | None = DurableStore(DatabaseManager(db_path))
        self._url_state = UrlState(url, parent=self)
        self._settings = SettingsJsonExporter()

        self._history_sync = DebouncedSync(
            payload_fn=lambda: self._controller.history.to_payload(),
            write_fn=self._write_history,
            delay_ms=HISTORY_COMMIT_DELAY_MS,
            pointer_up_delay_ms=POINTER_UP_FLUSH_DELAY_MS,
            before_flush=self._controller.commit,
            name="history",
            parent=self,
        )
        self._url_sync = DebouncedSync(
            payload_fn=self.shared_payload,
            write_fn=self._url_state.write_shared_state,
            delay_ms=URL_FLUSH_DELAY_MS,
            pointer_up_delay_ms=POINTER_UP_FLUSH_DELAY_MS,
            name="url",
            parent=self,
        )
        self._interaction = InteractionTracker(
            [self._history_sync, self._url_sync], parent=self,
        )

        self._exporter = EnvMapExporter(parent=self)
        self._exporter.export_succeeded.connect(
            lambda path: self.notification.emit("info", f"Exported {Path(path).name}")
        )
        self._exporter.export_failed.connect(
            lambda message: self.notification.emit("error", message)
        )

        self._controller.scene_changed.connect(self._history_sync.mark_dirty)
        self._controller.scene_changed.connect(self._url_sync.mark_dirty)
        self._controller.history_changed.connect(self._history_sync.mark_dirty)
        self._started = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def controller(self) -> SceneController:
        return self._controller

    @property
    def mode(self) -> ModeState:
        return self._mode

    @property
    def url_state(self) -> UrlState:
        return self._url_state

    @property
    def history_sync(self) -> DebouncedSync:
        return self._history_sync

    @property
    def url_sync(self) -> DebouncedSync:
        return self._url_sync

    @property
    def interaction(self) -> InteractionTracker:
        return self._interaction

    @property
    def exporter(self) -> EnvMapExporter:
        return self._exporter

    @property
    def is_persistent(self) -> bool:
        """False once the durable store has failed; history is then in-memory."""
        return self._store is not None

    def shared_payload(self) -> dict[str, Any]:
        """Value mirrored into the address: mode, lights without ts, cameras."""
        return {
            "mode": mode_to_dict(self._mode),
            "lights": [strip_light_for_url(l) for l in self._controller.lights],
            "cameras": [camera_to_dict(c) for c in self._controller.cameras],
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, app: QCoreApplication | None = None) -> None:
        """Hydrate history, apply URL state on top, then enable syncing.

        Args:
            app: When given, pointer events of the whole application are
                tracked and both channels flush on ``aboutToQuit``.
        """
        if self._started:
            return
        self._started = True

        persisted = self._load_history()
        self._controller.hydrate(persisted)
        if persisted is not None:
            self._history_sync.prime(self._controller.history.to_payload())

        self._apply_shared_state()

        self._history_sync.set_hydrated()
        self._url_sync.set_hydrated()
        if app is not None:
            self._interaction.install(app)

    def shutdown(self) -> None:
        """Final flush of both channels and close the store."""
        self._interaction.teardown()
        if self._store is not None:
            self._store.close()

    def _load_history(self) -> Any:
        if self._store is None:
            return None
        try:
            self._store.initialize()
            return self._store.get(SCENE_HISTORY_KEY)
        except StorageUnavailableError as exc:
            logger.warning("Scene history storage unavailable, using memory only: %s", exc)
            self._store = None
            self._history_sync.stop()
            return None

    def _write_history(self, payload: dict) -> None:
        try:
            self._store.set(SCENE_HISTORY_KEY, payload)
        except StorageUnavailableError as exc:
            logger.warning("Scene history storage failed, using memory only: %s", exc)
            self._store.close()
            self._store = None
            self._history_sync.stop()
            raise

    def _apply_shared_state(self) -> None:
        shared = self._url_state.read_shared_state()
        mode = shared.get("mode")
        if mode:
            self.set_mode(**mode)
        if "lights" in shared:
            self._controller.set_lights(shared["lights"])
        if "cameras" in shared:
            self._controller.set_cameras(shared["cameras"])

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def set_mode(self, **flags: bool) -> None:
        """Update UI mode flags (scene / hdri / code)."""
        for name, value in flags.items():
            if not hasattr(self._mode, name):
                raise AttributeError(f"Unknown mode flag: {name}")
            setattr(self._mode, name, bool(value))
        self._url_sync.mark_dirty()

    def import_settings(self, path: str | Path) -> bool:
        """Load a settings .json as a new history entry.

        Returns:
            True on success; on failure the scene is left untouched and an
            error notification is emitted.
        """
        try:
            snapshot = self._settings.import_snapshot(path)
        except InvalidSettingsError as exc:
            self.notification.emit("error", str(exc))
            return False
        self._controller.apply_snapshot(snapshot)
        self.notification.emit("info", f"Loaded {Path(path).name}")
        return True

    def export_envmap(self, source, resolution: str, fmt: str, directory: str | Path) -> Path | None:
        return self._exporter.export_envmap(
            source, resolution, fmt, self._controller.snapshot(), directory,
        )

    def export_matcap(self, source, resolution: str, fmt: str, directory: str | Path) -> Path | None:
        return self._exporter.export_matcap(
            source, resolution, fmt, self._controller.snapshot(), directory,
        )
