"""
Tests for bitmap loading and region preprocessing.
"""

import io
import os
import tempfile

import pytest
import numpy as np
from PIL import Image

from conftest import FRAME_W, FRAME_H, encode


class TestRawImage:
    """Tests for the RGBA bitmap type."""

    def test_pixels_are_read_only(self):
        """RawImage should freeze its pixel buffer."""
        from imaging.loader import RawImage

        image = RawImage.from_rgba(np.zeros((4, 6, 4), dtype=np.uint8))
        assert image.width == 6
        assert image.height == 4
        with pytest.raises(ValueError):
            image.pixels[0, 0, 0] = 1

    def test_shape_mismatch_rejected(self):
        """RawImage should reject buffers that do not match its size."""
        from imaging.loader import RawImage

        with pytest.raises(ValueError):
            RawImage(width=5, height=5, pixels=np.zeros((4, 4, 4), dtype=np.uint8))

    def test_bytes_roundtrip_keeps_pixels(self):
        """from_bytes should rebuild the same bitmap from tobytes output."""
        from imaging.loader import RawImage

        rgba = np.arange(3 * 2 * 4, dtype=np.uint8).reshape(2, 3, 4)
        image = RawImage.from_rgba(rgba)
        rebuilt = RawImage.from_bytes(3, 2, image.tobytes())
        assert np.array_equal(rebuilt.pixels, rgba)

    def test_region_is_clipped(self):
        """region should clip the rectangle to the image."""
        from imaging.loader import RawImage

        image = RawImage.from_rgba(np.zeros((10, 10, 4), dtype=np.uint8))
        part = image.region(8, 8, 10, 10)
        assert (part.width, part.height) == (2, 2)


class TestLoadBitmap:
    """Tests for load_bitmap decode paths."""

    def test_decodes_png(self, screen_png):
        """PNG bytes should decode to an RGBA bitmap of the same size."""
        from imaging.loader import load_bitmap

        image = load_bitmap(screen_png)
        assert (image.width, image.height) == (FRAME_W, FRAME_H)
        assert image.pixels.shape == (FRAME_H, FRAME_W, 4)

    def test_channel_order_is_rgba(self):
        """A BGR red pixel should come back as RGBA red."""
        from imaging.loader import load_bitmap

        frame = np.zeros((2, 2, 3), dtype=np.uint8)
        frame[:, :] = (0, 0, 255)
        image = load_bitmap(encode(frame))
        assert tuple(image.pixels[0, 0]) == (255, 0, 0, 255)

    def test_empty_bytes_raise_decode_error(self):
        """Empty payloads should raise DecodeError."""
        from imaging.loader import load_bitmap
        from recognition.errors import DecodeError

        with pytest.raises(DecodeError):
            load_bitmap(b"")

    def test_garbage_raises_decode_error(self):
        """Bytes neither decoder understands should raise DecodeError."""
        from imaging.loader import load_bitmap
        from recognition.errors import DecodeError

        with pytest.raises(DecodeError):
            load_bitmap(b"definitely not an image")

    def test_pillow_fallback_used_when_native_fails(self, monkeypatch):
        """load_bitmap should fall back to Pillow when OpenCV cannot decode."""
        import imaging.loader as loader

        def refuse(_bytes):
            raise loader.DecodeError("refused")

        monkeypatch.setattr(loader, "_decode_native", refuse)

        buffer = io.BytesIO()
        Image.new("RGB", (7, 5), (10, 20, 30)).save(buffer, format="PNG")
        image = loader.load_bitmap(buffer.getvalue())
        assert (image.width, image.height) == (7, 5)
        assert tuple(image.pixels[0, 0]) == (10, 20, 30, 255)

    def test_fallback_removes_temp_file(self, monkeypatch):
        """The temporary decode file should be deleted even when decode fails."""
        import imaging.loader as loader

        created = []
        real_mkstemp = tempfile.mkstemp

        def tracking_mkstemp(*args, **kwargs):
            fd, path = real_mkstemp(*args, **kwargs)
            created.append(path)
            return fd, path

        monkeypatch.setattr(loader.tempfile, "mkstemp", tracking_mkstemp)
        with pytest.raises(loader.DecodeError):
            loader.load_bitmap(b"not an image either")

        assert len(created) == 1
        assert not os.path.exists(created[0])


class TestDownscale:
    """Tests for the upload size cap."""

    def test_large_image_capped(self):
        """Longest side should be reduced to max_side."""
        from imaging.loader import RawImage, downscale_for_upload

        image = RawImage.from_rgba(np.zeros((1000, 2560, 4), dtype=np.uint8))
        small = downscale_for_upload(image, max_side=1280)
        assert max(small.width, small.height) == 1280
        assert small.height == 500

    def test_small_image_untouched(self, screen_image):
        """Images within the cap should pass through unchanged."""
        from imaging.loader import downscale_for_upload

        assert downscale_for_upload(screen_image) is screen_image


class TestCropRegion:
    """Tests for fractional crop regions."""

    def test_to_pixels_floors(self):
        """Offsets and sizes should be floored."""
        from imaging.preprocess import CropRegion

        region = CropRegion(0.25, 0.0, 0.5, 0.18)
        assert region.to_pixels(801, 601) == (200, 0, 400, 108)

    def test_to_pixels_at_least_one_pixel(self):
        """Tiny regions should still be one pixel wide and high."""
        from imaging.preprocess import CropRegion

        assert CropRegion(0.0, 0.0, 0.001, 0.001).to_pixels(10, 10) == (0, 0, 1, 1)


class TestPreprocess:
    """Tests for crop/upscale/binarize."""

    @pytest.mark.parametrize("scale", [2.0, 2.4])
    def test_output_dimensions(self, screen_image, scale):
        """Output size should be round(crop size * scale) for every configured crop."""
        from config import OCRConfig
        from imaging.preprocess import CropRegion, preprocess, scaled_size

        for values in OCRConfig.RESULT_REGIONS:
            region = CropRegion.from_tuple(values)
            _, _, w, h = region.to_pixels(screen_image.width, screen_image.height)
            for threshold in OCRConfig.RESULT_THRESHOLDS:
                out = preprocess(screen_image, region, threshold, scale=scale)
                assert out.shape == (scaled_size(h, scale), scaled_size(w, scale))

    def test_scaled_size_rounds_half_up(self):
        """scaled_size should round half away from zero."""
        from imaging.preprocess import scaled_size

        assert scaled_size(5, 2.5) == 13
        assert scaled_size(91, 2.4) == 218
        assert scaled_size(0, 2.0) == 1

    def test_output_is_pure_black_and_white(self, screen_image):
        """Every output pixel should be 0 or 255."""
        from imaging.preprocess import FULL_FRAME, preprocess

        out = preprocess(screen_image, FULL_FRAME, 135)
        assert out.dtype == np.uint8
        assert set(np.unique(out)) <= {0, 255}

    def test_luminance_weights(self):
        """Luminance should be 0.3R + 0.59G + 0.11B."""
        from imaging.preprocess import luminance

        pixel = np.array([[[100, 200, 50, 255]]], dtype=np.uint8)
        assert luminance(pixel)[0, 0] == pytest.approx(0.3 * 100 + 0.59 * 200 + 0.11 * 50, abs=1e-3)

    def test_threshold_is_strict(self):
        """Pixels equal to the threshold should turn black."""
        from imaging.preprocess import binarize

        gray = np.array([[134.0, 135.0, 136.0]], dtype=np.float32)
        assert binarize(gray, 135).tolist() == [[0, 0, 255]]

    def test_invalid_threshold_rejected(self, screen_image):
        """Thresholds outside 0-255 should raise ValueError."""
        from imaging.preprocess import FULL_FRAME, preprocess

        with pytest.raises(ValueError):
            preprocess(screen_image, FULL_FRAME, 300)

    def test_deterministic(self, screen_image):
        """Same input should give identical output."""
        from imaging.preprocess import CropRegion, preprocess

        region = CropRegion(0.2, 0.0, 0.6, 0.22)
        first = preprocess(screen_image, region, 120)
        second = preprocess(screen_image, region, 120)
        assert np.array_equal(first, second)

    def test_match_id_pass_geometry(self, screen_image):
        """Match id pass should cover the top band at 2.4x."""
        from imaging.preprocess import preprocess_for_match_id, scaled_size

        out = preprocess_for_match_id(screen_image)
        band_h = int(FRAME_H * 0.45)
        assert out.shape == (scaled_size(band_h, 2.4), scaled_size(FRAME_W, 2.4))
