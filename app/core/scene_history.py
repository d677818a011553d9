"""Scene history — bounded, linear snapshot timeline.

Stores serialized scene snapshots (dicts) oldest → newest with a cursor
pointing at the entry that matches the live scene. Max 100 entries.
Pure Python class (no Qt dependency).

Usage::

    history = SceneHistory([initial_snapshot])
    history.append(snapshot)        # After an edit is committed
    previous = history.step(-1)     # Undo
    next_ = history.step(+1)        # Redo
"""

from __future__ import annotations

import math
from typing import Any

from app.constants import HISTORY_LIMIT
from app.core.serializers import (
    clone_snapshot,
    is_valid_snapshot,
    normalize_snapshot,
    snapshot_fingerprint,
)


def normalize_history(
    entries: Any,
    index: Any,
    fallback: dict,
    limit: int = HISTORY_LIMIT,
) -> tuple[list[dict], int]:
    """Validate a persisted history payload.

    Keeps version-1 entries with list-shaped lights/cameras, re-normalizes
    them, keeps the newest ``limit`` and clamps ``index`` into range
    (a missing index selects the newest entry). Falls back to
    ``[fallback]`` at index 0 when nothing survives.

    Args:
        entries: Persisted entry list (any JSON value).
        index: Persisted cursor (any JSON value).
        fallback: Snapshot used when no entry is valid.
        limit: Maximum number of entries kept.

    Returns:
        (entries, index) tuple.
    """
    if not isinstance(entries, list) or not entries:
        return [clone_snapshot(fallback)], 0

    valid = [normalize_snapshot(e) for e in entries if is_valid_snapshot(e)][-limit:]
    if not valid:
        return [clone_snapshot(fallback)], 0

    if isinstance(index, (int, float)) and not isinstance(index, bool) and math.isfinite(index):
        raw_index = int(index)
    else:
        raw_index = len(valid) - 1
    return valid, min(max(raw_index, 0), len(valid) - 1)


class SceneHistory:
    """Linear undo/redo timeline over scene snapshots.

    Each entry keeps its fingerprint so duplicate detection does not
    re-serialize the stored snapshot on every append.
    """

    def __init__(self, entries: list[dict] | None = None, limit: int = HISTORY_LIMIT) -> None:
        self._limit = limit
        self._entries: list[dict] = []
        self._prints: list[str] = []
        self._index = -1
        self.hydrated = False
        if entries:
            self.replace(entries, len(entries) - 1)

    @property
    def entries(self) -> list[dict]:
        return list(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def current(self) -> dict | None:
        if 0 <= self._index < len(self._entries):
            return self._entries[self._index]
        return None

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, snapshot: dict) -> bool:
        """Add a snapshot after the cursor. Discards the redo branch.

        Args:
            snapshot: Normalized scene snapshot.

        Returns:
            False if the snapshot equals the current entry (no change).
        """
        fingerprint = snapshot_fingerprint(snapshot)
        if self.current is not None and self._prints[self._index] == fingerprint:
            return False

        del self._entries[self._index + 1:]
        del self._prints[self._index + 1:]
        self._entries.append(clone_snapshot(snapshot))
        self._prints.append(fingerprint)

        overflow = len(self._entries) - self._limit
        if overflow > 0:
            del self._entries[:overflow]  # Drop oldest
            del self._prints[:overflow]
        self._index = len(self._entries) - 1
        return True

    def step(self, delta: int) -> dict | None:
        """Move the cursor by ``delta``.

        Returns:
            The new current snapshot, or None if the move leaves the range.
        """
        target = self._index + delta
        if not self._entries or target < 0 or target >= len(self._entries):
            return None
        self._index = target
        return self._entries[target]

    def replace(self, entries: list[dict], index: int) -> None:
        """Swap in a whole timeline (e.g. after hydration)."""
        kept = entries[-self._limit:]
        self._entries = [clone_snapshot(e) for e in kept]
        self._prints = [snapshot_fingerprint(e) for e in self._entries]
        self._index = min(max(index, 0), len(self._entries) - 1)

    def to_payload(self) -> dict[str, Any]:
        """Persistable ``{"entries", "index"}`` blob."""
        return {
            "entries": [clone_snapshot(e) for e in self._entries],
            "index": self._index,
        }
