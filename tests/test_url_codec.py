"""Tests for the shareable URL codec and UrlState."""

import json
import re
import sys

import pytest
from PyQt6.QtCore import QCoreApplication, QUrl, QUrlQuery

from app.core.url_codec import UrlState, decode_param, encode_param, parse_param
from app.models.scene import SkyGradientLight

_app = QCoreApplication.instance() or QCoreApplication(sys.argv)


class TestParamCodec:

    @pytest.mark.parametrize("value", [
        [],
        {},
        "Lumière 光源 ✨",
        [{"name": "Ключ", "latlon": {"x": -0.25, "y": 1e-9}, "range": [0, 2.5]}],
        {"scene": True, "hdri": False, "code": False},
        0,
        None,
    ])
    def test_round_trip(self, value):
        assert decode_param(encode_param(value)) == value

    def test_token_is_url_safe(self):
        token = encode_param({"text": "???>>>~~~" * 10, "n": [1, 2, 3]})
        assert re.fullmatch(r"[A-Za-z0-9_-]+", token)

    def test_missing_padding_tolerated(self):
        token = encode_param("ab")
        assert not token.endswith("=")
        assert decode_param(token) == "ab"

    @pytest.mark.parametrize("raw", ["!!!", "bm90IGpzb24"])
    def test_invalid_token_raises(self, raw):
        with pytest.raises(ValueError):
            decode_param(raw)


class TestParseParam:

    def _query(self, **items) -> QUrlQuery:
        query = QUrlQuery()
        for key, value in items.items():
            query.addQueryItem(key, value)
        return query

    def test_absent_key(self):
        assert parse_param(self._query(), "l") is None

    def test_base64_value(self):
        query = self._query(l=encode_param([{"name": "A"}]))
        assert parse_param(query, "l") == [{"name": "A"}]

    def test_legacy_raw_json(self):
        query = self._query(l='[{"name":"Old"}]')
        assert parse_param(query, "l") == [{"name": "Old"}]

    def test_garbage_is_absent(self):
        query = self._query(l="{broken")
        assert parse_param(query, "l") is None


class TestUrlState:

    def _payload(self) -> dict:
        return {
            "mode": {"scene": True, "hdri": False, "code": True},
            "lights": [{"type": "sky_gradient", "name": "Dôme", "color2": "#00ff00"}],
            "cameras": [{"id": "c1", "name": "Front", "selected": True,
                         "position": [0, 1, 4], "rotation": [0, 0, 0]}],
        }

    def test_write_then_read(self):
        state = UrlState("https://example.com/editor")
        state.write_shared_state(self._payload())
        shared = state.read_shared_state()
        assert shared["mode"] == {"scene": True, "hdri": False, "code": True}
        light = shared["lights"][0]
        assert isinstance(light, SkyGradientLight)
        assert light.name == "Dôme"
        assert light.color2 == "#00ff00"
        assert shared["cameras"][0].position == [0.0, 1.0, 4.0]

    def test_emits_only_on_change(self):
        state = UrlState("https://example.com/editor")
        seen = []
        state.url_changed.connect(seen.append)
        assert state.write_shared_state(self._payload())
        assert not state.write_shared_state(self._payload())
        assert len(seen) == 1
        assert state.replace_count == 1

    def test_keeps_unrelated_query_items(self):
        state = UrlState("https://example.com/editor?session=42&l=old")
        state.write_shared_state(self._payload())
        query = QUrlQuery(state.url)
        assert query.queryItemValue("session") == "42"
        assert len(query.allQueryItemValues("l")) == 1

    def test_empty_url_reads_nothing(self):
        assert UrlState().read_shared_state() == {}

    def test_unusable_params_ignored(self):
        query = QUrlQuery()
        query.addQueryItem("l", encode_param({"not": "a list"}))
        query.addQueryItem("c", encode_param([]))
        query.addQueryItem("m", "{{")
        url = QUrl("https://example.com/editor")
        url.setQuery(query)
        assert UrlState(url).read_shared_state() == {}

    def test_legacy_json_link(self):
        url = QUrl("https://example.com/editor")
        query = QUrlQuery()
        query.addQueryItem("l", json.dumps([{"name": "Legacy"}], separators=(",", ":")))
        url.setQuery(query)
        shared = UrlState(url).read_shared_state()
        assert shared["lights"][0].name == "Legacy"
