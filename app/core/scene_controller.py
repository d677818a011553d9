"""Scene controller — history engine over the live, editable scene.

Owns the single SceneState instance and its SceneHistory. All mutations
go through this controller, which marks the scene dirty and emits Qt
signals so persistence and views can follow.

Edits are not recorded one by one: a mutation only sets the dirty flag,
and ``commit()`` (driven by the debounced history channel) appends one
snapshot for the whole burst of edits.
"""

from __future__ import annotations

import copy
import functools
import logging
import uuid
from typing import Any

from PyQt6.QtCore import QObject, pyqtSignal

from app.core.scene_history import SceneHistory, normalize_history
from app.core.serializers import (
    normalize_snapshot,
    scene_to_snapshot,
    snapshot_to_scene,
)
from app.models.scene import AnyLight, Camera, SceneState, default_scene

logger = logging.getLogger(__name__)


def _mutation(method):
    """Decorator: mark the scene dirty and notify after a live-state edit."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        result = method(self, *args, **kwargs)
        self._set_dirty(True)
        self.scene_changed.emit()
        return result
    return wrapper


class SceneController(QObject):
    """History engine and mutation helpers for the live scene.

    The ``_applying`` flag is the re-entrancy guard: while a stored
    snapshot is being restored into the live state, ``push`` is ignored.
    """

    # Live scene changed (lights, cameras or IBL rotation)
    scene_changed = pyqtSignal()
    # Entries or index changed
    history_changed = pyqtSignal()
    dirty_changed = pyqtSignal(bool)

    def __init__(self, scene: SceneState | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._scene = scene if scene is not None else default_scene()
        self._history = SceneHistory([scene_to_snapshot(self._scene)])
        self._dirty = False
        self._applying = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def scene(self) -> SceneState:
        """Live scene (read-only reference)."""
        return self._scene

    @property
    def lights(self) -> list[AnyLight]:
        return self._scene.lights

    @property
    def cameras(self) -> list[Camera]:
        return self._scene.cameras

    @property
    def ibl_rotation(self) -> float:
        return self._scene.ibl_rotation

    @property
    def history(self) -> SceneHistory:
        return self._history

    @property
    def hydrated(self) -> bool:
        return self._history.hydrated

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def snapshot(self) -> dict:
        """Current live state as a snapshot."""
        return scene_to_snapshot(self._scene)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def push(self, snapshot: dict | None = None) -> bool:
        """Append a snapshot (or the live state) to the history.

        Args:
            snapshot: Explicit snapshot; normalized and deep-copied.

        Returns:
            True if a new entry was appended.
        """
        if self._applying:
            return False
        candidate = normalize_snapshot(snapshot) if snapshot is not None else self.snapshot()
        if not self._history.append(candidate):
            return False
        self.history_changed.emit()
        return True

    def commit(self) -> bool:
        """Record pending live edits as one history entry."""
        if not self._dirty:
            return False
        self._set_dirty(False)
        return self.push()

    def undo(self) -> None:
        """Restore the previous history entry."""
        snapshot = self._history.step(-1)
        if snapshot is None:
            return
        self._restore(snapshot)
        self.history_changed.emit()

    def redo(self) -> None:
        """Restore the next history entry."""
        snapshot = self._history.step(+1)
        if snapshot is None:
            return
        self._restore(snapshot)
        self.history_changed.emit()

    def hydrate(self, persisted: Any) -> None:
        """Load a persisted ``{"entries", "index"}`` payload.

        Malformed or missing payloads fall back to a single entry built
        from the live scene. Never raises. Sets ``hydrated`` last.
        """
        payload = persisted if isinstance(persisted, dict) else {}
        fallback = self.snapshot()
        entries, index = normalize_history(
            payload.get("entries"), payload.get("index"), fallback, self._history.limit,
        )
        if not payload.get("entries"):
            logger.debug("No persisted scene history; starting from live scene")
        self._history.replace(entries, index)
        self._restore(self._history.current)
        self.history_changed.emit()
        self._history.hydrated = True

    def apply_snapshot(self, snapshot: dict) -> None:
        """Load an external snapshot (imported settings) as a new entry."""
        normalized = normalize_snapshot(snapshot)
        self._restore(normalized)
        self.push(normalized)

    def _restore(self, snapshot: dict) -> None:
        self._applying = True
        try:
            self._scene = snapshot_to_scene(snapshot)
            self.scene_changed.emit()
        finally:
            self._applying = False
        self._set_dirty(False)

    def _set_dirty(self, dirty: bool) -> None:
        if self._dirty != dirty:
            self._dirty = dirty
            self.dirty_changed.emit(dirty)

    # ------------------------------------------------------------------
    # Lights
    # ------------------------------------------------------------------

    @property
    def is_solo(self) -> bool:
        return any(l.solo for l in self._scene.lights)

    @property
    def selected_light(self) -> AnyLight | None:
        return next((l for l in self._scene.lights if l.selected), None)

    def find_light(self, light_id: str) -> AnyLight | None:
        return next((l for l in self._scene.lights if l.id == light_id), None)

    @_mutation
    def set_lights(self, lights: list[AnyLight]) -> None:
        self._scene.lights = list(lights)

    @_mutation
    def add_light(self, light: AnyLight) -> None:
        self._scene.lights.append(light)

    @_mutation
    def update_light(self, light_id: str, **changes: Any) -> None:
        """Set attributes on one light (unknown ids are ignored)."""
        light = self.find_light(light_id)
        if light is None:
            return
        for name, value in changes.items():
            if not hasattr(light, name):
                raise AttributeError(f"{type(light).__name__} has no field {name!r}")
            setattr(light, name, value)

    @_mutation
    def select_light(self, light_id: str) -> None:
        for l in self._scene.lights:
            l.selected = l.id == light_id

    @_mutation
    def deselect_lights(self) -> None:
        for l in self._scene.lights:
            l.selected = False

    @_mutation
    def toggle_light_selection(self, light_id: str) -> None:
        for l in self._scene.lights:
            l.selected = (not l.selected) if l.id == light_id else False

    @_mutation
    def toggle_solo(self, light_id: str) -> None:
        """Solo a light, or leave solo mode if it is the soloed one."""
        light = self.find_light(light_id)
        if light is None:
            return
        if self.is_solo and light.solo:
            for l in self._scene.lights:
                l.solo = False
                l.visible = True
        else:
            for l in self._scene.lights:
                is_target = l.id == light_id
                l.solo = is_target
                l.visible = is_target
                l.selected = is_target

    @_mutation
    def duplicate_light(self, light_id: str) -> AnyLight | None:
        """Append a copy; hidden if solo mode is active."""
        light = self.find_light(light_id)
        if light is None:
            return None
        clone = copy.deepcopy(light)
        clone.id = str(uuid.uuid4())
        clone.name = f"{light.name} (copy)"
        clone.visible = False if self.is_solo else light.visible
        clone.solo = False
        clone.selected = False
        self._scene.lights.append(clone)
        return clone

    @_mutation
    def delete_light(self, light_id: str) -> None:
        """Remove a light; deleting the soloed light leaves solo mode."""
        light = self.find_light(light_id)
        if light is None:
            return
        leaving_solo = self.is_solo and light.solo
        self._scene.lights = [l for l in self._scene.lights if l.id != light_id]
        if leaving_solo:
            for l in self._scene.lights:
                l.solo = False
                l.visible = True

    # ------------------------------------------------------------------
    # Cameras
    # ------------------------------------------------------------------

    @property
    def selected_camera(self) -> Camera | None:
        return next((c for c in self._scene.cameras if c.selected), None)

    @_mutation
    def set_cameras(self, cameras: list[Camera]) -> None:
        """Replace the camera list, keeping exactly one camera selected."""
        self._scene.cameras = list(cameras)
        if self._scene.cameras:
            chosen = self.selected_camera or self._scene.cameras[0]
            for c in self._scene.cameras:
                c.selected = c is chosen

    @_mutation
    def add_camera(self, camera: Camera) -> None:
        """Append a camera and make it the selected one."""
        for c in self._scene.cameras:
            c.selected = False
        camera.selected = True
        self._scene.cameras.append(camera)

    @_mutation
    def select_camera(self, camera_id: str) -> None:
        for c in self._scene.cameras:
            c.selected = c.id == camera_id

    @_mutation
    def update_selected_camera(self, **changes: Any) -> None:
        camera = self.selected_camera
        if camera is None:
            return
        for name, value in changes.items():
            if not hasattr(camera, name):
                raise AttributeError(f"Camera has no field {name!r}")
            setattr(camera, name, list(value) if name in ("position", "rotation") else value)

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    @_mutation
    def set_ibl_rotation(self, value: float) -> None:
        self._scene.ibl_rotation = float(value)
