"""Tests for the Radiance RGBE encoder and reader."""

import math

import numpy as np
import pytest

from app.export.radiance_hdr import (
    HdrExporter,
    decode_radiance_hdr,
    encode_radiance_hdr,
    encode_rle_channel,
    float_rgb_to_rgbe,
    rgb_to_rgbe,
    rgba_to_rgb,
)


# ── Helpers ──────────────────────────────────────────────────────────

def _rle(values) -> list[int]:
    out = bytearray()
    encode_rle_channel(bytes(values), out)
    return list(out)


class TestRgbe:

    def test_unit_white(self):
        assert float_rgb_to_rgbe(1.0, 1.0, 1.0) == (255, 255, 255, 128)

    def test_black_and_tiny(self):
        assert float_rgb_to_rgbe(0.0, 0.0, 0.0) == (0, 0, 0, 0)
        assert float_rgb_to_rgbe(1e-40, 0.0, 0.0) == (0, 0, 0, 0)

    def test_non_finite(self):
        assert float_rgb_to_rgbe(float("inf"), 0.0, 0.0) == (0, 0, 0, 0)

    @pytest.mark.parametrize("rgb", [
        (math.nan, 1.0, 1.0),
        (1.0, math.nan, 1.0),
        (1.0, 1.0, math.nan),
    ])
    def test_nan_anywhere_is_black(self, rgb):
        assert float_rgb_to_rgbe(*rgb) == (0, 0, 0, 0)
        assert rgb_to_rgbe(np.array(rgb)).tolist() == [0, 0, 0, 0]

    def test_mixed_components(self):
        r, g, b, e = float_rgb_to_rgbe(3.0, 1.5, 0.0)
        assert e == 130
        assert (r, g, b) == (192, 96, 0)

    def test_vectorized_matches_scalar(self):
        rng = np.random.default_rng(7)
        rgb = rng.uniform(0.0, 50.0, size=(5, 7, 3))
        rgb[0, 0] = 0.0
        rgb[1, 1] = [1.0, 0.5, 0.25]
        vec = rgb_to_rgbe(rgb)
        for y in range(5):
            for x in range(7):
                assert tuple(vec[y, x]) == float_rgb_to_rgbe(*rgb[y, x])

    def test_negative_components_clamped(self):
        assert tuple(rgb_to_rgbe(np.array([[1.0, -1.0, 0.5]]))[0]) == (255, 0, 128, 128)


class TestRunLength:

    def test_long_run(self):
        assert _rle([5] * 10) == [138, 5]

    def test_short_literal(self):
        assert _rle([1, 2, 3]) == [3, 1, 2, 3]

    def test_three_equal_bytes_stay_literal(self):
        assert _rle([9, 9, 9]) == [3, 9, 9, 9]

    def test_literal_stops_before_run(self):
        assert _rle([1, 2, 7, 7, 7, 7, 7]) == [2, 1, 2, 133, 7]

    def test_run_capped_at_127(self):
        assert _rle([4] * 200) == [255, 4, 201, 4]

    def test_literal_capped_at_128(self):
        data = list(range(200))
        out = _rle(data)
        assert out[0] == 128
        assert out[1:129] == data[:128]
        assert out[129] == 72
        assert out[130:] == data[128:]

    def test_run_after_cap_remainder(self):
        # 130 equal bytes: 127-run then a 3-byte literal
        assert _rle([1] * 130) == [255, 1, 3, 1, 1, 1]


class TestEncodeFile:

    def test_header(self):
        data = encode_radiance_hdr(np.ones((4, 4, 3)), 4, 4)
        header = b"#?RADIANCE\nFORMAT=32-bit_rle_rgbe\n\n-Y 4 +X 4\n"
        assert data.startswith(header)
        assert data[len(header):len(header) + 4] == bytes([2, 2, 0, 4])

    def test_flat_colour_round_trip(self):
        src = np.ones((4, 4, 3), dtype=np.float32)
        decoded = decode_radiance_hdr(encode_radiance_hdr(src.ravel(), 4, 4))
        assert decoded.shape == (4, 4, 3)
        np.testing.assert_allclose(decoded, src, atol=1.0 / 128)

    def test_random_image_round_trip(self):
        rng = np.random.default_rng(3)
        src = rng.uniform(0.01, 100.0, size=(6, 40, 3)).astype(np.float32)
        decoded = decode_radiance_hdr(encode_radiance_hdr(src, 40, 6))
        tolerance = src.max(axis=-1, keepdims=True) / 128
        assert np.all(np.abs(decoded - src) <= tolerance)

    def test_wide_scanline_width_bytes(self):
        data = encode_radiance_hdr(np.zeros((1, 300, 3)), 300, 1)
        start = data.index(b"+X 300\n") + len(b"+X 300\n")
        assert data[start:start + 4] == bytes([2, 2, 1, 44])

    def test_size_mismatch(self):
        with pytest.raises(ValueError):
            encode_radiance_hdr(np.zeros(10), 4, 4)

    def test_rgba_to_rgb(self):
        rgba = np.arange(2 * 3 * 4, dtype=np.float32)
        rgb = rgba_to_rgb(rgba, 3, 2)
        assert rgb.shape == (2, 3, 3)
        assert rgb[0, 1].tolist() == [4.0, 5.0, 6.0]

    def test_exporter_writes_file(self, tmp_path):
        path = tmp_path / "out.hdr"
        HdrExporter().export(np.full((2, 8, 3), 0.5), 8, 2, path)
        decoded = decode_radiance_hdr(path.read_bytes())
        np.testing.assert_allclose(decoded, 0.5, atol=0.5 / 128)


class TestDecode:

    def test_flat_scanlines(self):
        header = b"#?RADIANCE\nFORMAT=32-bit_rle_rgbe\n\n-Y 1 +X 2\n"
        pixels = bytes([128, 64, 0, 129, 0, 0, 0, 0])
        decoded = decode_radiance_hdr(header + pixels)
        np.testing.assert_allclose(decoded[0, 0], [1.0, 0.5, 0.0])
        np.testing.assert_allclose(decoded[0, 1], [0.0, 0.0, 0.0])

    def test_bad_signature(self):
        with pytest.raises(ValueError):
            decode_radiance_hdr(b"P6\n2 2\n255\n")

    def test_truncated(self):
        data = encode_radiance_hdr(np.ones((4, 4, 3)), 4, 4)
        with pytest.raises(ValueError):
            decode_radiance_hdr(data[:-3])
