"""Settings file export/import and export basenames.

Exports a scene snapshot as formatted JSON (the same shape stored in
history). Imports validate the version and list shapes before the
snapshot is normalized.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from app.constants import ENVMAP_PREFIX
from app.core.serializers import is_valid_snapshot, normalize_snapshot

logger = logging.getLogger(__name__)


class InvalidSettingsError(ValueError):
    """Settings file is unreadable or not a version-1 snapshot."""


def unique_basename(prefix: str = ENVMAP_PREFIX, now: datetime | None = None) -> str:
    """``<prefix>_YYYYMMDD_HHMMSS`` from local time."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{stamp}"


class SettingsJsonExporter:
    """JSON settings file operations."""

    def dumps(self, snapshot: dict) -> str:
        return json.dumps(snapshot, indent=2, ensure_ascii=False)

    def export_snapshot(self, snapshot: dict, output_path: str | Path) -> None:
        """Write snapshot as formatted JSON file.

        Args:
            snapshot: The snapshot to export.
            output_path: Destination file path (.json).
        """
        Path(output_path).write_text(self.dumps(snapshot), encoding="utf-8")

    def import_snapshot(self, input_path: str | Path) -> dict:
        """Read and normalize a snapshot from a JSON file.

        Raises:
            InvalidSettingsError: Unreadable file, invalid JSON or wrong shape.
        """
        try:
            text = Path(input_path).read_text(encoding="utf-8")
            data = json.loads(text)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Rejected settings file %s: %s", input_path, exc)
            raise InvalidSettingsError("Invalid JSON file.") from exc
        if not is_valid_snapshot(data):
            logger.warning("Rejected settings file %s: not a version 1 snapshot", input_path)
            raise InvalidSettingsError("Unsupported settings file.")
        return normalize_snapshot(data)
