"""OpenEXR (.exr) encoding — scanline file, half-float A/B/G/R channels.

Layout::

    magic 20000630 | version 2 | header attributes | 0x00
    offset table (u64 per block, top to bottom)
    blocks: y (i32) | byte count (u32) | payload

Under ZIP compression each 16-line block is byte-deinterleaved and
delta-filtered before deflate; uncompressed files use one line per block.
Alpha is written as constant 1.0.
"""

from __future__ import annotations

import struct
import zlib
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

EXR_MAGIC = 20000630
EXR_VERSION = 2

COMPRESSION_CODES = {"none": 0, "zip": 3}
LINES_PER_BLOCK = {"none": 1, "zip": 16}

CHANNEL_NAMES = ("A", "B", "G", "R")
PIXEL_TYPE_HALF = 1
HALF_MAX = 65504.0


def _build_half_tables() -> tuple[NDArray, NDArray]:
    base = np.zeros(512, dtype=np.uint32)
    shift = np.zeros(512, dtype=np.uint32)
    for i in range(256):
        e = i - 127
        if e < -27:
            base[i], shift[i] = 0x0000, 24
        elif e < -14:
            base[i], shift[i] = 0x0400 >> (-e - 14), -e - 1
        elif e <= 15:
            base[i], shift[i] = (e + 15) << 10, 13
        elif e < 128:
            base[i], shift[i] = 0x7C00, 24
        else:
            base[i], shift[i] = 0x7C00, 13
        base[i | 0x100] = base[i] | 0x8000
        shift[i | 0x100] = shift[i]
    return base, shift


_HALF_BASE, _HALF_SHIFT = _build_half_tables()


def float_to_half_bits(values) -> NDArray:
    """float32 → IEEE half bit patterns, truncating the mantissa.

    Values are clamped to ±65504 first; NaN stays NaN.
    """
    arr = np.asarray(np.clip(np.asarray(values, dtype=np.float32), -HALF_MAX, HALF_MAX), dtype=np.float32)
    bits = arr.view(np.uint32)
    e = (bits >> 23) & 0x1FF
    half = _HALF_BASE[e] + ((bits & 0x007FFFFF) >> _HALF_SHIFT[e])
    return half.astype(np.uint16)


def zip_preprocess(raw: bytes | NDArray) -> NDArray:
    """Split even/odd bytes into two halves, then delta-encode (+128 mod 256)."""
    data = np.frombuffer(bytes(raw), dtype=np.uint8)
    if data.size == 0:
        return data.copy()
    tmp = np.concatenate((data[0::2], data[1::2]))
    out = tmp.copy()
    out[1:] = ((tmp[1:].astype(np.int16) - tmp[:-1].astype(np.int16) + 384) & 0xFF).astype(np.uint8)
    return out


def zip_postprocess(data: bytes | NDArray) -> NDArray:
    """Inverse of :func:`zip_preprocess`."""
    tmp = np.frombuffer(bytes(data), dtype=np.uint8).astype(np.int64)
    if tmp.size == 0:
        return tmp.astype(np.uint8)
    restored = np.empty_like(tmp)
    restored[0] = tmp[0]
    restored[1:] = tmp[1:] - 128
    restored = (np.cumsum(restored) & 0xFF).astype(np.uint8)
    half = (restored.size + 1) // 2
    out = np.empty_like(restored)
    out[0::2] = restored[:half]
    out[1::2] = restored[half:]
    return out


def _cstr(text: str) -> bytes:
    return text.encode("ascii") + b"\x00"


def _attribute(name: str, type_name: str, payload: bytes) -> bytes:
    return _cstr(name) + _cstr(type_name) + struct.pack("<I", len(payload)) + payload


def build_header(width: int, height: int, compression: str = "zip") -> bytes:
    """Magic, version and the attribute list (terminated by a null byte)."""
    if compression not in COMPRESSION_CODES:
        raise ValueError(f"Unsupported EXR compression: {compression!r}")

    channels = b"".join(
        _cstr(name) + struct.pack("<iBxxxii", PIXEL_TYPE_HALF, 1, 1, 1)
        for name in CHANNEL_NAMES
    ) + b"\x00"
    window = struct.pack("<iiii", 0, 0, width - 1, height - 1)

    parts = [
        struct.pack("<II", EXR_MAGIC, EXR_VERSION),
        _attribute("compression", "compression", bytes([COMPRESSION_CODES[compression]])),
        _attribute("screenWindowCenter", "v2f", struct.pack("<ff", 0.0, 0.0)),
        _attribute("screenWindowWidth", "float", struct.pack("<f", 1.0)),
        _attribute("pixelAspectRatio", "float", struct.pack("<f", 1.0)),
        _attribute("lineOrder", "lineOrder", bytes([0])),  # INCREASING_Y
        _attribute("dataWindow", "box2i", window),
        _attribute("displayWindow", "box2i", window),
        _attribute("channels", "chlist", channels),
        b"\x00",
    ]
    return b"".join(parts)


def _scanline_halves(rgb: NDArray) -> NDArray:
    """Per-line A, B, G, R half planes → uint16 array ``(h, 4, w)``."""
    height, width = rgb.shape[:2]
    planes = np.empty((height, 4, width), dtype=np.uint16)
    planes[:, 0, :] = float_to_half_bits(np.ones((height, width), dtype=np.float32))
    clamped = np.maximum(rgb, 0.0)
    for slot, channel in ((1, 2), (2, 1), (3, 0)):
        planes[:, slot, :] = float_to_half_bits(clamped[..., channel])
    return planes


def encode_openexr(rgb, width: int, height: int, compression: str = "zip") -> bytes:
    """Encode a linear float RGB image as an OpenEXR file.

    Args:
        rgb: ``(height, width, 3)`` or flat float buffer, top row first.
        width, height: Image size.
        compression: ``"zip"`` (16-line deflate blocks) or ``"none"``.

    Returns:
        Complete file contents.
    """
    header = build_header(width, height, compression)
    arr = np.asarray(rgb, dtype=np.float32)
    if arr.size != width * height * 3:
        raise ValueError(f"RGB buffer has {arr.size} samples, expected {width * height * 3}")
    planes = _scanline_halves(arr.reshape(height, width, 3))

    lines_per_block = LINES_PER_BLOCK[compression]
    blocks: list[tuple[int, bytes]] = []
    for start_y in range(0, height, lines_per_block):
        raw = planes[start_y:start_y + lines_per_block].astype("<u2").tobytes()
        if compression == "zip":
            packed = zlib.compress(zip_preprocess(raw).tobytes())
            # Readers treat a block that is not smaller than its raw size as stored.
            payload = packed if len(packed) < len(raw) else raw
        else:
            payload = raw
        blocks.append((start_y, payload))

    table_size = 8 * len(blocks)
    offsets = []
    offset = len(header) + table_size
    for _, payload in blocks:
        offsets.append(offset)
        offset += 8 + len(payload)

    out = bytearray(header)
    out.extend(struct.pack(f"<{len(offsets)}Q", *offsets))
    for y, payload in blocks:
        out.extend(struct.pack("<iI", y, len(payload)))
        out.extend(payload)
    return bytes(out)


class ExrExporter:
    """OpenEXR file output."""

    def export(
        self, rgb, width: int, height: int, output_path: str | Path, compression: str = "zip",
    ) -> None:
        """Encode fully in memory, then write the file in one go."""
        data = encode_openexr(rgb, width, height, compression)
        Path(output_path).write_bytes(data)
