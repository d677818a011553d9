"""Radiance RGBE (.hdr) encoding and decoding.

Writes the standard three-line header followed by new-style run-length
encoded scanlines: each scanline starts with ``2 2 hi(w) lo(w)`` and holds
the R, G, B and E planes, each run-length encoded independently.

The run/literal decision is greedy: a run of at least 4 equal bytes
(capped at 127) is written as ``(128 + n, value)``; anything else goes
into a literal packet ``(n, bytes...)`` of at most 128 bytes that ends as
soon as a qualifying run starts.
"""

from __future__ import annotations

import math
import re
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

MIN_RUN = 4
MAX_RUN = 127
MAX_LITERAL = 128

_RESOLUTION_RE = re.compile(rb"-Y (\d+) \+X (\d+)")


def rgba_to_rgb(rgba, width: int, height: int) -> NDArray:
    """Drop the alpha plane of an RGBA float buffer → ``(h, w, 3)`` float32."""
    arr = np.asarray(rgba, dtype=np.float32).reshape(height, width, 4)
    return np.ascontiguousarray(arr[..., :3])


def _as_rgb(rgb, width: int, height: int) -> NDArray:
    arr = np.asarray(rgb, dtype=np.float64)
    if arr.size != width * height * 3:
        raise ValueError(
            f"RGB buffer has {arr.size} samples, expected {width * height * 3}"
        )
    return arr.reshape(height, width, 3)


def float_rgb_to_rgbe(r: float, g: float, b: float) -> tuple[int, int, int, int]:
    """Convert one linear RGB triple to RGBE bytes.

    Zero, tiny or non-finite maxima encode as ``(0, 0, 0, 0)``.
    """
    if any(math.isnan(c) for c in (r, g, b)):
        return (0, 0, 0, 0)
    max_component = max(r, g, b)
    if not math.isfinite(max_component) or max_component <= 1e-32:
        return (0, 0, 0, 0)
    exponent = math.ceil(math.log2(max_component))
    scale = 256.0 / math.pow(2.0, exponent)

    def clamp_byte(value: float) -> int:
        return min(255, max(0, int(value)))

    return (
        clamp_byte(math.floor(r * scale + 0.5)),
        clamp_byte(math.floor(g * scale + 0.5)),
        clamp_byte(math.floor(b * scale + 0.5)),
        clamp_byte(exponent + 128),
    )


def rgb_to_rgbe(rgb: NDArray) -> NDArray:
    """Vectorized :func:`float_rgb_to_rgbe` over an ``(..., 3)`` array.

    Returns:
        uint8 array of shape ``(..., 4)``.
    """
    rgb = np.asarray(rgb, dtype=np.float64)
    max_component = rgb.max(axis=-1)
    valid = np.isfinite(max_component) & (max_component > 1e-32)
    safe_max = np.where(valid, max_component, 1.0)
    exponent = np.ceil(np.log2(safe_max))
    scale = 256.0 / np.exp2(exponent)

    out = np.zeros(rgb.shape[:-1] + (4,), dtype=np.uint8)
    with np.errstate(invalid="ignore"):
        mantissa = np.floor(rgb * scale[..., np.newaxis] + 0.5)
    mantissa = np.nan_to_num(mantissa, nan=0.0, posinf=255.0, neginf=0.0)
    out[..., :3] = np.clip(mantissa, 0, 255).astype(np.uint8)
    out[..., 3] = np.clip(exponent + 128, 0, 255).astype(np.uint8)
    out[~valid] = 0
    return out


def _run_length(scanline: bytes, start: int) -> int:
    width = len(scanline)
    value = scanline[start]
    run = 1
    while start + run < width and run < MAX_RUN and scanline[start + run] == value:
        run += 1
    return run


def encode_rle_channel(scanline: bytes, out: bytearray) -> None:
    """Run-length encode one channel plane of a scanline into ``out``."""
    width = len(scanline)
    cursor = 0
    while cursor < width:
        run = _run_length(scanline, cursor)
        if run >= MIN_RUN:
            out.append(128 + run)
            out.append(scanline[cursor])
            cursor += run
            continue

        literal = 0
        while cursor + literal < width and literal < MAX_LITERAL:
            if _run_length(scanline, cursor + literal) >= MIN_RUN:
                break
            literal += 1

        out.append(literal)
        out.extend(scanline[cursor:cursor + literal])
        cursor += literal


def encode_radiance_hdr(rgb, width: int, height: int) -> bytes:
    """Encode a linear float RGB image as a Radiance ``.hdr`` file.

    Args:
        rgb: ``(height, width, 3)`` or flat float buffer, top row first.
        width: Image width (scanline length, < 32768).
        height: Image height.

    Returns:
        Complete file contents.
    """
    pixels = _as_rgb(rgb, width, height)
    header = f"#?RADIANCE\nFORMAT=32-bit_rle_rgbe\n\n-Y {height} +X {width}\n"
    out = bytearray(header.encode("ascii"))

    rgbe = rgb_to_rgbe(pixels)
    for y in range(height):
        out.extend((2, 2, (width >> 8) & 0xFF, width & 0xFF))
        row = rgbe[y]
        for channel in range(4):
            encode_rle_channel(row[:, channel].tobytes(), out)
    return bytes(out)


# =====================================================================
# Decoding
# =====================================================================


def _decode_scanline(data: bytes, pos: int, width: int) -> tuple[NDArray, int]:
    # New-style scanlines are recognised by their marker for any width.
    if (
        width < 32768
        and data[pos] == 2 and data[pos + 1] == 2
        and ((data[pos + 2] << 8) | data[pos + 3]) == width
    ):
        pos += 4
        planes = np.empty((4, width), dtype=np.uint8)
        for channel in range(4):
            x = 0
            while x < width:
                count = data[pos]
                pos += 1
                if count > 128:
                    count -= 128
                    planes[channel, x:x + count] = data[pos]
                    pos += 1
                else:
                    if count == 0:
                        raise ValueError("Zero-length literal in RLE scanline")
                    planes[channel, x:x + count] = np.frombuffer(
                        data, dtype=np.uint8, count=count, offset=pos,
                    )
                    pos += count
                x += count
            if x != width:
                raise ValueError("RLE packet overruns scanline")
        return planes.T, pos
    flat = np.frombuffer(data, dtype=np.uint8, count=width * 4, offset=pos)
    return flat.reshape(width, 4), pos + width * 4


def decode_radiance_hdr(data: bytes) -> NDArray:
    """Decode a ``-Y h +X w`` Radiance file (RLE or flat scanlines).

    Returns:
        float32 array of shape ``(height, width, 3)``.

    Raises:
        ValueError: Not a supported Radiance file.
    """
    if not (data.startswith(b"#?RADIANCE") or data.startswith(b"#?RGBE")):
        raise ValueError("Missing Radiance signature")
    header_end = data.find(b"\n\n")
    if header_end < 0:
        raise ValueError("Unterminated Radiance header")
    line_end = data.find(b"\n", header_end + 2)
    match = _RESOLUTION_RE.fullmatch(data[header_end + 2:line_end])
    if match is None:
        raise ValueError("Unsupported resolution line")
    height, width = int(match.group(1)), int(match.group(2))

    rgbe = np.empty((height, width, 4), dtype=np.uint8)
    pos = line_end + 1
    try:
        for y in range(height):
            rgbe[y], pos = _decode_scanline(data, pos, width)
    except IndexError as exc:
        raise ValueError("Truncated Radiance pixel data") from exc

    exponent = rgbe[..., 3].astype(np.int32)
    scale = np.where(exponent > 0, np.ldexp(1.0, exponent - (128 + 8)), 0.0)
    return (rgbe[..., :3].astype(np.float64) * scale[..., np.newaxis]).astype(np.float32)


def read_radiance_hdr(path: str | Path) -> NDArray:
    return decode_radiance_hdr(Path(path).read_bytes())


class HdrExporter:
    """Radiance file output."""

    def export(self, rgb, width: int, height: int, output_path: str | Path) -> None:
        """Encode fully in memory, then write the file in one go."""
        data = encode_radiance_hdr(rgb, width, height)
        Path(output_path).write_bytes(data)
