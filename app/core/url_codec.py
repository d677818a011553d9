"""Shareable URL state — compact, URL-safe JSON parameters.

Values are encoded as JSON → UTF-8 → base64 with the URL-safe alphabet and
no padding. Three independent query parameters carry the UI mode (``m``),
the light list (``l``) and the camera list (``c``), so a scene can be
shared by address alone.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from PyQt6.QtCore import QObject, QUrl, QUrlQuery, pyqtSignal

from app.constants import URL_KEY_CAMERAS, URL_KEY_LIGHTS, URL_KEY_MODE
from app.core.serializers import normalize_cameras, normalize_lights, normalize_mode

logger = logging.getLogger(__name__)


def encode_param(value: Any) -> str:
    """Encode a JSON-serializable value as a base64url token (no padding)."""
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    token = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return token.replace("+", "-").replace("/", "_").rstrip("=")


def decode_param(raw: str) -> Any:
    """Decode a base64url token produced by :func:`encode_param`.

    Missing padding is tolerated.

    Raises:
        ValueError: The token is not valid base64url JSON.
    """
    padded = raw + "=" * ((4 - len(raw) % 4) % 4)
    standard = padded.replace("-", "+").replace("_", "/")
    try:
        data = base64.b64decode(standard, validate=True)
        return json.loads(data.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid URL parameter: {raw[:32]!r}") from exc


def parse_param(query: QUrlQuery, key: str) -> Any | None:
    """Read one parameter; None when absent or undecodable.

    Falls back to reading the raw value as plain JSON (older share links).
    """
    if not query.hasQueryItem(key):
        return None
    raw = query.queryItemValue(key, QUrl.ComponentFormattingOption.FullyDecoded)
    if not raw:
        return None
    try:
        return decode_param(raw)
    except ValueError:
        pass
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.info("Ignoring unreadable URL parameter %r", key)
        return None


class UrlState(QObject):
    """The editor's shareable address.

    ``write_shared_state`` replaces the three scene parameters in place,
    keeping any other query items, and emits ``url_changed`` only when the
    resulting address differs.
    """

    url_changed = pyqtSignal(QUrl)

    def __init__(self, url: QUrl | str | None = None, parent: QObject | None = None):
        super().__init__(parent)
        self._url = QUrl(url) if url is not None else QUrl()
        self._replace_count = 0

    @property
    def url(self) -> QUrl:
        return QUrl(self._url)

    @property
    def replace_count(self) -> int:
        return self._replace_count

    def read_shared_state(self) -> dict[str, Any]:
        """Decode and normalize the shared parameters.

        Returns:
            Dict with any of ``mode`` (partial mode flags), ``lights`` and
            ``cameras`` (normalized dataclass lists). Absent or unusable
            parameters are left out.
        """
        query = QUrlQuery(self._url)
        state: dict[str, Any] = {}

        mode = parse_param(query, URL_KEY_MODE)
        if mode is not None:
            state["mode"] = normalize_mode(mode)

        lights = normalize_lights(parse_param(query, URL_KEY_LIGHTS))
        if lights is not None:
            state["lights"] = lights

        cameras = normalize_cameras(parse_param(query, URL_KEY_CAMERAS))
        if cameras is not None:
            state["cameras"] = cameras
        return state

    def write_shared_state(self, payload: dict[str, Any]) -> bool:
        """Set ``m``/``l``/``c`` from ``payload`` (keys mode, lights, cameras).

        Returns:
            True if the address changed.
        """
        query = QUrlQuery(self._url)
        for key, field in (
            (URL_KEY_MODE, "mode"),
            (URL_KEY_LIGHTS, "lights"),
            (URL_KEY_CAMERAS, "cameras"),
        ):
            query.removeAllQueryItems(key)
            query.addQueryItem(key, encode_param(payload.get(field)))

        next_url = QUrl(self._url)
        next_url.setQuery(query)
        if next_url == self._url:
            return False
        self._url = next_url
        self._replace_count += 1
        self.url_changed.emit(QUrl(next_url))
        return True
