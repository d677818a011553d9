"""Equirectangular → hemisphere ("matcap") resampler.

Each output pixel inside the centred disc is treated as the orthographic
view of a unit sphere's front hemisphere: the reconstructed normal is
converted to longitude/latitude and the panorama is sampled bilinearly
(longitude wraps, latitude clamps). Pixels on or outside the rim get a
fixed background colour.

8-bit sources give 8-bit RGBA output; float sources give float32 RGB.
Both go through the same vectorized sampling path.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

from app.constants import MATCAP_BACKGROUND_FLOAT, MATCAP_BACKGROUND_RGBA8

_INV_TWO_PI = 1.0 / (2.0 * math.pi)
_INV_PI = 1.0 / math.pi


def as_pixel_grid(pixels, width: int, height: int) -> NDArray:
    """View a flat or shaped buffer as ``(height, width, channels)``.

    Raises:
        ValueError: Size does not match 3 or 4 samples per pixel.
    """
    arr = np.asarray(pixels)
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid source size: {width}x{height}")
    if arr.ndim == 3 and arr.shape[:2] == (height, width) and arr.shape[2] in (3, 4):
        return arr
    if arr.ndim == 1 and arr.size in (width * height * 3, width * height * 4):
        return arr.reshape(height, width, arr.size // (width * height))
    raise ValueError(
        f"Pixel buffer of shape {arr.shape} does not match {width}x{height} RGB/RGBA"
    )


def _normal_to_uv(nx: NDArray, ny: NDArray) -> tuple[NDArray, NDArray]:
    """Spherical texture coordinates of the front-facing normal at (nx, ny)."""
    nz = np.sqrt(np.clip(1.0 - (nx * nx + ny * ny), 0.0, None))
    normal_x = nx
    normal_y = -ny
    normal_z = nz
    longitude = np.arctan2(-normal_x, -normal_z)
    latitude = np.arccos(np.clip(normal_y, -1.0, 1.0))
    # Quarter-turn offset matches the panorama seam.
    u = np.mod((longitude + math.pi * 0.5) * _INV_TWO_PI + 1.0, 1.0)
    v = np.clip(latitude * _INV_PI, 0.0, 1.0)
    return u, v


def hemisphere_uv(nx: float, ny: float) -> tuple[float, float] | None:
    """Texture coordinates for one normalized disc position.

    Returns:
        (u, v) in [0, 1), or None on or outside the unit circle.
    """
    if nx * nx + ny * ny >= 1.0:
        return None
    u, v = _normal_to_uv(np.float64(nx), np.float64(ny))
    return float(u), float(v)


def sample_bilinear(grid: NDArray, u: NDArray, v: NDArray) -> NDArray:
    """Bilinear RGB lookup with horizontal wrap and vertical clamp.

    Args:
        grid: ``(H, W, C)`` source pixels, C >= 3.
        u, v: Texture coordinates of equal shape.

    Returns:
        float64 array of shape ``u.shape + (3,)``.
    """
    height, width = grid.shape[:2]
    max_y = height - 1
    src = grid[..., :3].astype(np.float64)

    x = u * width
    y = v * max_y
    x_floor = np.floor(x)
    x0 = x_floor.astype(np.int64) % width
    x1 = (x0 + 1) % width
    y0 = np.floor(y).astype(np.int64)
    y1 = np.minimum(y0 + 1, max_y)
    tx = (x - x_floor)[..., np.newaxis]
    ty = (y - y0)[..., np.newaxis]

    top = src[y0, x0] * (1.0 - tx) + src[y0, x1] * tx
    bottom = src[y1, x0] * (1.0 - tx) + src[y1, x1] * tx
    return top * (1.0 - ty) + bottom * ty


def build_matcap(pixels, width: int, height: int, output_size: int) -> NDArray:
    """Reproject an equirectangular panorama onto a hemisphere image.

    Args:
        pixels: Source buffer, flat or ``(height, width, 3|4)``; uint8 or float.
        width, height: Source dimensions.
        output_size: Edge length of the square output (>= 2).

    Returns:
        ``(output_size, output_size, 4)`` uint8 RGBA for uint8 input,
        ``(output_size, output_size, 3)`` float32 RGB otherwise.
    """
    if output_size < 2:
        raise ValueError(f"output_size must be >= 2, got {output_size}")
    grid = as_pixel_grid(pixels, width, height)
    is_byte = grid.dtype == np.uint8

    radius = (output_size - 1) * 0.5
    centre = output_size * 0.5
    coords = (np.arange(output_size, dtype=np.float64) + 0.5 - centre) / radius
    ny, nx = np.meshgrid(coords, coords, indexing="ij")
    inside = nx * nx + ny * ny < 1.0

    u, v = _normal_to_uv(nx, ny)
    rgb = sample_bilinear(grid, u, v)

    if is_byte:
        out = np.empty((output_size, output_size, 4), dtype=np.uint8)
        out[...] = MATCAP_BACKGROUND_RGBA8
        rounded = np.clip(np.floor(rgb + 0.5), 0, 255).astype(np.uint8)
        out[inside, :3] = rounded[inside]
        out[inside, 3] = 255
        return out

    out = np.empty((output_size, output_size, 3), dtype=np.float32)
    out[...] = MATCAP_BACKGROUND_FLOAT
    out[inside] = rgb[inside].astype(np.float32)
    return out
