"""Scene data models for the environment map editor.

Lights form a sum type: ``LightBase`` holds the fields shared by every
variant and each subclass adds its variant-specific fields. The ``type``
discriminator selects the variant when (de)serializing.

Field metadata ``json`` gives the interchange key where it differs from the
Python attribute name (settings files use camelCase).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
import time
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


def _now_ms() -> int:
    return int(time.time() * 1000)


class LightType(Enum):
    TEXTURE = "texture"
    PROCEDURAL_SCRIM = "procedural_scrim"
    PROCEDURAL_UMBRELLA = "procedural_umbrella"
    SKY_GRADIENT = "sky_gradient"


class LightShape(Enum):
    RECT = "rect"
    CIRCLE = "circle"
    RING = "ring"


@dataclass
class Vec2:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Vec3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class LightBase:
    """Fields common to all light variants.

    Attributes:
        id: Unique light identifier.
        ts: Live-edit timestamp [ms]; cache-busting key, not semantic state.
        name: User-visible name.
        shape: Outline of the emitter.
        latlon: Spherical placement (x = longitude, y = latitude), normalized.
        target: Point the light faces.
        selected / visible / solo: Independent flags. The controller keeps
            them consistent; the model does not.
    """
    id: str = field(default_factory=_new_id)
    ts: int = field(default_factory=_now_ms)
    name: str = "Light A"
    type: LightType = LightType.TEXTURE
    shape: LightShape = LightShape.RECT
    intensity: float = 1.0
    opacity: float = 1.0
    scale: float = 1.0
    scale_x: float = field(default=1.0, metadata={"json": "scaleX"})
    scale_y: float = field(default=1.0, metadata={"json": "scaleY"})
    rotation: float = 0.0
    latlon: Vec2 = field(default_factory=Vec2)
    target: Vec3 = field(default_factory=Vec3)
    selected: bool = False
    visible: bool = True
    solo: bool = False
    animate: bool = False
    animation_speed: Optional[float] = field(
        default=None, metadata={"json": "animationSpeed"},
    )
    animation_rotation_intensity: Optional[float] = field(
        default=None, metadata={"json": "animationRotationIntensity"},
    )
    animation_float_intensity: Optional[float] = field(
        default=None, metadata={"json": "animationFloatIntensity"},
    )
    animation_floating_range: Optional[list[float]] = field(
        default=None, metadata={"json": "animationFloatingRange"},
    )


@dataclass
class TextureLight(LightBase):
    """Light whose emitter is an image texture."""
    type: LightType = LightType.TEXTURE
    color: str = "#ffffff"
    map: str = ""


@dataclass
class ProceduralScrimLight(LightBase):
    """Diffusion scrim with a movable hot spot."""
    type: LightType = LightType.PROCEDURAL_SCRIM
    color: str = "#ffffff"
    light_position: Vec2 = field(
        default_factory=Vec2, metadata={"json": "lightPosition"},
    )
    light_distance: float = field(default=0.3, metadata={"json": "lightDistance"})


@dataclass
class ProceduralUmbrellaLight(LightBase):
    type: LightType = LightType.PROCEDURAL_UMBRELLA
    color: str = "#ffffff"
    light_sides: float = field(default=3.0, metadata={"json": "lightSides"})


@dataclass
class SkyGradientLight(LightBase):
    """Two-colour gradient dome."""
    type: LightType = LightType.SKY_GRADIENT
    color: str = "#ff0000"
    color2: str = "#0000ff"


AnyLight = Union[TextureLight, ProceduralScrimLight, ProceduralUmbrellaLight, SkyGradientLight]


@dataclass
class Camera:
    """Saved viewpoint. Position and rotation are 3-vectors."""
    id: str = field(default_factory=_new_id)
    name: str = "Default"
    selected: bool = False
    position: list[float] = field(default_factory=lambda: [0.0, 0.0, 5.0])
    rotation: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])


@dataclass
class ModeState:
    """Toolbar mode toggles shared through the URL."""
    scene: bool = True
    hdri: bool = True
    code: bool = False


@dataclass
class SceneState:
    """Live, editable scene (lights, cameras, IBL rotation)."""
    lights: list[AnyLight] = field(default_factory=list)
    cameras: list[Camera] = field(default_factory=list)
    ibl_rotation: float = 0.0


def default_lights() -> list[AnyLight]:
    return [
        ProceduralScrimLight(
            name="Light A",
            shape=LightShape.RECT,
            color="#fff",
            scale=2.0,
            light_distance=0.3,
        ),
    ]


def default_cameras() -> list[Camera]:
    return [
        Camera(id="default", name="Default", selected=True),
    ]


def default_scene() -> SceneState:
    return SceneState(lights=default_lights(), cameras=default_cameras(), ibl_rotation=0.0)
