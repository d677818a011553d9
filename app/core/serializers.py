"""Serialization utilities — scene dataclasses ↔ JSON-safe snapshot dicts.

Handles Enum fields, camelCase interchange keys, the light sum type and
tolerant normalization of untrusted payloads (persisted history, shared
URLs, imported settings files). Used by the history engine, persistence
adapters and export modules.

Snapshots are plain dicts::

    {"version": 1, "lights": [...], "cameras": [...], "iblRotation": 0.0}
"""

from __future__ import annotations

import copy
import dataclasses
import hashlib
import json
import math
import uuid
from enum import Enum
from typing import Any, Optional

import numpy as np

from app.constants import DEFAULT_TEXTURE_MAP, SNAPSHOT_VERSION
from app.models.scene import (
    AnyLight,
    Camera,
    LightBase,
    LightShape,
    LightType,
    ModeState,
    ProceduralScrimLight,
    ProceduralUmbrellaLight,
    SceneState,
    SkyGradientLight,
    TextureLight,
    Vec2,
    Vec3,
)


# =====================================================================
# Generic helpers
# =====================================================================


def _json_name(f: dataclasses.Field) -> str:
    return f.metadata.get("json", f.name)


def _serialize_value(val: Any) -> Any:
    """Convert a value to a JSON-safe type."""
    if val is None:
        return None
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, np.ndarray):
        return val.tolist()
    if dataclasses.is_dataclass(val) and not isinstance(val, type):
        return _dataclass_to_dict(val)
    if isinstance(val, dict):
        return {str(k): _serialize_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [_serialize_value(v) for v in val]
    if isinstance(val, (int, float, str, bool)):
        return val
    return str(val)


def _dataclass_to_dict(obj: Any) -> dict:
    """Recursively convert a dataclass to a JSON-safe dict.

    ``None`` fields are omitted so optional attributes round-trip to the
    same dict whether they were absent or unset.
    """
    result = {}
    for f in dataclasses.fields(obj):
        val = getattr(obj, f.name)
        if val is None:
            continue
        result[_json_name(f)] = _serialize_value(val)
    return result


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def _to_number(value: Any, fallback: float) -> float:
    return float(value) if _is_number(value) else fallback


def _to_optional_number(value: Any) -> Optional[float]:
    return float(value) if _is_number(value) else None


def _to_bool(value: Any, fallback: bool) -> bool:
    return value if isinstance(value, bool) else fallback


def _to_str(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) else fallback


def _to_vec2(value: Any, fallback: Vec2) -> Vec2:
    if not isinstance(value, dict):
        return fallback
    return Vec2(x=_to_number(value.get("x"), fallback.x), y=_to_number(value.get("y"), fallback.y))


def _to_vec3(value: Any, fallback: Vec3) -> Vec3:
    if not isinstance(value, dict):
        return fallback
    return Vec3(
        x=_to_number(value.get("x"), fallback.x),
        y=_to_number(value.get("y"), fallback.y),
        z=_to_number(value.get("z"), fallback.z),
    )


def _to_triple(value: Any, fallback: list[float]) -> list[float]:
    raw = value if isinstance(value, list) else fallback
    return [_to_number(raw[i] if i < len(raw) else None, fallback[i]) for i in range(3)]


def _letter(index: int) -> str:
    return chr(65 + index)


def _derived_id(kind: str, index: int, data: dict) -> str:
    """Stable UUID for an id-less item, from its position and content.

    The same payload always normalizes to the same id.
    """
    key = f"{kind}:{index}:{stable_dumps(data)}"
    return str(uuid.uuid5(uuid.NAMESPACE_URL, key))


def stable_dumps(value: Any) -> str:
    """Deterministic JSON text (sorted keys, compact separators)."""
    return json.dumps(
        _serialize_value(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def snapshot_fingerprint(value: Any) -> str:
    """SHA-1 of the stable serialization; equal values give equal prints."""
    return hashlib.sha1(stable_dumps(value).encode("utf-8")).hexdigest()


# =====================================================================
# Lights
# =====================================================================


def light_to_dict(light: AnyLight) -> dict:
    """Serialize a light variant to its interchange dict."""
    return _dataclass_to_dict(light)


def dict_to_light(data: Any, index: int = 0) -> AnyLight | None:
    """Build a light from an untrusted dict.

    Unknown ``type`` falls back to a texture light, unknown ``shape`` to
    rect, invalid numbers to their defaults. Returns None for non-dicts.

    Args:
        data: Parsed JSON value.
        index: Position in the source list; drives the default name and
            the fallback timestamp.
    """
    if not isinstance(data, dict):
        return None

    type_value = _to_str(data.get("type"), LightType.TEXTURE.value)
    try:
        light_type = LightType(type_value)
    except ValueError:
        light_type = LightType.TEXTURE

    shape_value = _to_str(data.get("shape"), LightShape.RECT.value)
    try:
        shape = LightShape(shape_value)
    except ValueError:
        shape = LightShape.RECT

    raw_ts = data.get("ts")
    ts = int(raw_ts) if _is_number(raw_ts) else index

    floating_range = data.get("animationFloatingRange")
    if isinstance(floating_range, list):
        floating_range = [
            _to_number(floating_range[0] if len(floating_range) > 0 else None, 0.0),
            _to_number(floating_range[1] if len(floating_range) > 1 else None, 1.0),
        ]
    else:
        floating_range = None

    common = dict(
        id=_to_str(data.get("id"), "") or _derived_id("light", index, data),
        ts=ts,
        name=_to_str(data.get("name"), f"Light {_letter(index)}"),
        shape=shape,
        intensity=_to_number(data.get("intensity"), 1.0),
        opacity=_to_number(data.get("opacity"), 1.0),
        scale=_to_number(data.get("scale"), 1.0),
        scale_x=_to_number(data.get("scaleX"), 1.0),
        scale_y=_to_number(data.get("scaleY"), 1.0),
        rotation=_to_number(data.get("rotation"), 0.0),
        latlon=_to_vec2(data.get("latlon"), Vec2()),
        target=_to_vec3(data.get("target"), Vec3()),
        selected=_to_bool(data.get("selected"), False),
        visible=_to_bool(data.get("visible"), True),
        solo=_to_bool(data.get("solo"), False),
        animate=_to_bool(data.get("animate"), False),
        animation_speed=_to_optional_number(data.get("animationSpeed")),
        animation_rotation_intensity=_to_optional_number(
            data.get("animationRotationIntensity"),
        ),
        animation_float_intensity=_to_optional_number(data.get("animationFloatIntensity")),
        animation_floating_range=floating_range,
    )

    if light_type == LightType.PROCEDURAL_SCRIM:
        return ProceduralScrimLight(
            **common,
            color=_to_str(data.get("color"), "#ffffff"),
            light_position=_to_vec2(data.get("lightPosition"), Vec2()),
            light_distance=_to_number(data.get("lightDistance"), 0.3),
        )
    if light_type == LightType.PROCEDURAL_UMBRELLA:
        return ProceduralUmbrellaLight(
            **common,
            color=_to_str(data.get("color"), "#ffffff"),
            light_sides=_to_number(data.get("lightSides"), 3.0),
        )
    if light_type == LightType.SKY_GRADIENT:
        return SkyGradientLight(
            **common,
            color=_to_str(data.get("color"), "#ff0000"),
            color2=_to_str(data.get("color2"), "#0000ff"),
        )
    return TextureLight(
        **common,
        color=_to_str(data.get("color"), "#ffffff"),
        map=_to_str(data.get("map"), DEFAULT_TEXTURE_MAP),
    )


def normalize_lights(value: Any) -> list[AnyLight] | None:
    """Normalize a light list; None when the value is not a list."""
    if not isinstance(value, list):
        return None
    lights = (dict_to_light(item, i) for i, item in enumerate(value))
    return [light for light in lights if light is not None]


def strip_light_for_url(light: AnyLight | dict) -> dict:
    """Light dict without the ``ts`` cache-busting key."""
    data = light_to_dict(light) if isinstance(light, LightBase) else dict(light)
    data.pop("ts", None)
    return data


# =====================================================================
# Cameras / mode
# =====================================================================


def camera_to_dict(camera: Camera) -> dict:
    return _dataclass_to_dict(camera)


def dict_to_camera(data: Any, index: int = 0) -> Camera | None:
    """Build a camera from an untrusted dict. None for non-dicts."""
    if not isinstance(data, dict):
        return None
    return Camera(
        id=_to_str(data.get("id"), "") or _derived_id("camera", index, data),
        name=_to_str(data.get("name"), f"Camera {_letter(index)}"),
        selected=_to_bool(data.get("selected"), index == 0),
        position=_to_triple(data.get("position"), [0.0, 0.0, 5.0]),
        rotation=_to_triple(data.get("rotation"), [0.0, 0.0, 0.0]),
    )


def normalize_cameras(value: Any) -> list[Camera] | None:
    """Normalize a camera list so exactly one camera is selected.

    The first selected camera wins; with none selected the first camera is.
    Returns None for non-lists and for lists with no usable camera.
    """
    if not isinstance(value, list):
        return None
    cameras = [c for c in (dict_to_camera(item, i) for i, item in enumerate(value)) if c]
    if not cameras:
        return None
    selected = next((i for i, c in enumerate(cameras) if c.selected), 0)
    for i, camera in enumerate(cameras):
        camera.selected = i == selected
    return cameras


def mode_to_dict(mode: ModeState) -> dict:
    return _dataclass_to_dict(mode)


def normalize_mode(value: Any) -> dict[str, bool]:
    """Keep only boolean ``scene``/``hdri``/``code`` entries."""
    if not isinstance(value, dict):
        return {}
    return {
        key: value[key]
        for key in ("scene", "hdri", "code")
        if isinstance(value.get(key), bool)
    }


# =====================================================================
# Snapshots
# =====================================================================


def create_snapshot(lights: list, cameras: list, ibl_rotation: float) -> dict:
    """Build a versioned snapshot. Lights/cameras may be dataclasses or dicts.

    The result shares no structure with its inputs.
    """
    return {
        "version": SNAPSHOT_VERSION,
        "lights": [
            light_to_dict(l) if isinstance(l, LightBase) else copy.deepcopy(l)
            for l in lights
        ],
        "cameras": [
            camera_to_dict(c) if isinstance(c, Camera) else copy.deepcopy(c)
            for c in cameras
        ],
        "iblRotation": ibl_rotation,
    }


def scene_to_snapshot(state: SceneState) -> dict:
    """Capture the live scene as a snapshot."""
    return create_snapshot(state.lights, state.cameras, state.ibl_rotation)


def snapshot_to_scene(snapshot: dict) -> SceneState:
    """Materialize live scene objects from a stored snapshot."""
    lights = normalize_lights(snapshot.get("lights")) or []
    cameras = [
        c for c in (
            dict_to_camera(item, i) for i, item in enumerate(snapshot.get("cameras") or [])
        ) if c
    ]
    return SceneState(
        lights=lights,
        cameras=cameras,
        ibl_rotation=_to_number(snapshot.get("iblRotation"), 0.0),
    )


def clone_snapshot(snapshot: dict) -> dict:
    return copy.deepcopy(snapshot)


def snapshots_equal(a: dict | None, b: dict | None) -> bool:
    """Deep value equality via fingerprints."""
    if a is None or b is None:
        return a is b
    return snapshot_fingerprint(a) == snapshot_fingerprint(b)


def is_valid_snapshot(value: Any) -> bool:
    """Version 1 with list-shaped ``lights`` and ``cameras``."""
    return (
        isinstance(value, dict)
        and value.get("version") == SNAPSHOT_VERSION
        and not isinstance(value.get("version"), bool)
        and isinstance(value.get("lights"), list)
        and isinstance(value.get("cameras"), list)
    )


def normalize_snapshot(value: dict) -> dict:
    """Re-normalize a snapshot into canonical form.

    Lights and cameras pass through their dataclass normalizers;
    ``iblRotation`` becomes 0.0 when absent or non-numeric.
    """
    return scene_to_snapshot(snapshot_to_scene(value))
