"""Environment map / matcap export boundary.

Pulls a float RGBA equirectangular buffer from an external pixel source,
encodes it (optionally via the hemisphere resampler) and writes the image
together with a companion settings .json under one generated basename.

Every outcome is reported through signals; nothing here raises to the
caller. All bytes are produced before the first file is touched.
"""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Callable, Optional

import numpy as np
from PyQt6.QtCore import QObject, pyqtSignal

from app.constants import (
    ENVMAP_PREFIX,
    MATCAP_PREFIX,
    MATCAP_PREVIEW_SIZE,
    MATCAP_SUPERSAMPLE,
    RESOLUTION_SIZES,
)
from app.core.equirect_resampler import build_matcap
from app.export.openexr import encode_openexr
from app.export.radiance_hdr import encode_radiance_hdr, rgba_to_rgb
from app.export.settings_json import SettingsJsonExporter, unique_basename

logger = logging.getLogger(__name__)

# (width, height) -> flat or (h, w, 4) float RGBA, or None when not ready
PixelSource = Callable[[int, int], Optional[np.ndarray]]

EXPORT_FORMATS = ("hdr", "exr")
NOT_READY_MESSAGE = "Environment map is not ready yet."


class ExportPreconditionError(RuntimeError):
    """Export cannot start; the message is shown to the user as is."""


def resolution_size(tier: str) -> tuple[int, int]:
    """Panorama (width, height) of an export tier.

    Raises:
        ValueError: Unknown tier.
    """
    try:
        return RESOLUTION_SIZES[tier]
    except KeyError:
        raise ValueError(f"Unknown resolution tier: {tier!r}") from None


def matcap_render_sizes(tier: str) -> tuple[int, int, int]:
    """(output_size, sample_width, sample_height) for a matcap export.

    The panorama is supersampled for the lower tiers; the sample width is
    rounded to an even number so the height is exactly half of it.
    """
    output_size = resolution_size(tier)[0]
    scale = MATCAP_SUPERSAMPLE.get(tier, 1.0)
    sample_width = max(output_size, math.floor(output_size * scale / 2 + 0.5) * 2)
    return output_size, sample_width, sample_width // 2


def matcap_preview(pixels, width: int, height: int, size: int = MATCAP_PREVIEW_SIZE) -> np.ndarray:
    """8-bit RGBA preview of a byte panorama."""
    return build_matcap(np.asarray(pixels, dtype=np.uint8), width, height, size)


def _encode(rgb: np.ndarray, width: int, height: int, fmt: str, compression: str) -> bytes:
    if fmt == "hdr":
        return encode_radiance_hdr(rgb, width, height)
    return encode_openexr(rgb, width, height, compression)


def _write_files(files: dict[Path, bytes]) -> None:
    """Write every file or none: stage to temporaries, then rename."""
    staged: list[tuple[Path, Path]] = []
    try:
        for path, data in files.items():
            tmp = path.with_name(path.name + ".part")
            tmp.write_bytes(data)
            staged.append((tmp, path))
    except OSError:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise
    for tmp, path in staged:
        os.replace(tmp, path)


class EnvMapExporter(QObject):
    """Export actions for the current environment.

    Signals:
        export_succeeded(str): Path of the written image.
        export_failed(str): User-facing error message.
    """

    export_succeeded = pyqtSignal(str)
    export_failed = pyqtSignal(str)

    def __init__(self, compression: str = "zip", parent: QObject | None = None):
        super().__init__(parent)
        self._compression = compression
        self._settings = SettingsJsonExporter()

    def export_envmap(
        self,
        source: PixelSource | None,
        resolution: str,
        fmt: str,
        snapshot: dict,
        directory: str | Path,
        basename: str | None = None,
    ) -> Path | None:
        """Export the panorama itself at a resolution tier.

        Returns:
            Path of the written image, or None on failure.
        """
        return self._run(fmt, lambda: self._envmap_files(
            source, resolution, fmt, snapshot, Path(directory), basename,
        ))

    def export_matcap(
        self,
        source: PixelSource | None,
        resolution: str,
        fmt: str,
        snapshot: dict,
        directory: str | Path,
        basename: str | None = None,
    ) -> Path | None:
        """Export the hemisphere reprojection at a resolution tier."""
        return self._run(fmt, lambda: self._matcap_files(
            source, resolution, fmt, snapshot, Path(directory), basename,
        ))

    # ------------------------------------------------------------------

    def _run(self, fmt: str, build: Callable[[], dict[Path, bytes]]) -> Path | None:
        try:
            if fmt not in EXPORT_FORMATS:
                raise ExportPreconditionError(f"Unsupported export format: {fmt}")
            files = build()
            _write_files(files)
        except ExportPreconditionError as exc:
            logger.warning("Export aborted: %s", exc)
            self.export_failed.emit(str(exc))
            return None
        except Exception:
            logger.exception("%s export failed", fmt.upper())
            self.export_failed.emit(f"Failed to export {fmt.upper()}.")
            return None

        image_path = next(iter(files))
        logger.info("Exported %s", image_path)
        self.export_succeeded.emit(str(image_path))
        return image_path

    @staticmethod
    def _capture(source: PixelSource | None, width: int, height: int) -> np.ndarray:
        if source is None:
            raise ExportPreconditionError(NOT_READY_MESSAGE)
        pixels = source(width, height)
        if pixels is None or np.asarray(pixels).size == 0:
            raise ExportPreconditionError(NOT_READY_MESSAGE)
        return rgba_to_rgb(pixels, width, height)

    def _outputs(
        self, image: bytes, fmt: str, snapshot: dict, directory: Path, basename: str,
    ) -> dict[Path, bytes]:
        return {
            directory / f"{basename}.{fmt}": image,
            directory / f"{basename}.json": self._settings.dumps(snapshot).encode("utf-8"),
        }

    def _envmap_files(self, source, resolution, fmt, snapshot, directory, basename):
        width, height = resolution_size(resolution)
        rgb = self._capture(source, width, height)
        image = _encode(rgb, width, height, fmt, self._compression)
        return self._outputs(
            image, fmt, snapshot, directory, basename or unique_basename(ENVMAP_PREFIX),
        )

    def _matcap_files(self, source, resolution, fmt, snapshot, directory, basename):
        size, sample_width, sample_height = matcap_render_sizes(resolution)
        rgb = self._capture(source, sample_width, sample_height)
        matcap = build_matcap(rgb, sample_width, sample_height, size)
        image = _encode(matcap, size, size, fmt, self._compression)
        return self._outputs(
            image, fmt, snapshot, directory, basename or unique_basename(MATCAP_PREFIX),
        )
