"""
Tests for upload validation and I/O helpers.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def png_bytes():
    """A small encoded PNG."""
    import cv2

    img = np.full((20, 40, 3), 255, dtype=np.uint8)
    ok, encoded = cv2.imencode(".png", img)
    assert ok
    return encoded.tobytes()


class TestValidateUpload:
    """Test upload checks."""

    def test_empty_rejected(self):
        from mathvariant.utils.io import validate_upload
        from mathvariant.utils.outcomes import InvalidUploadError

        with pytest.raises(InvalidUploadError):
            validate_upload(b"", "a.png")

    def test_non_image_rejected(self):
        """Non-image content types are refused."""
        from mathvariant.utils.io import validate_upload
        from mathvariant.utils.outcomes import FailureKind, InvalidUploadError

        with pytest.raises(InvalidUploadError) as excinfo:
            validate_upload(b"hello", "notes.txt")

        assert excinfo.value.kind == FailureKind.INVALID_UPLOAD

    def test_reported_type_wins(self):
        """A browser-reported image type is trusted over the file name."""
        from mathvariant.utils.io import validate_upload

        validate_upload(b"data", "upload", content_type="image/jpeg")

    def test_webp_by_extension(self):
        """WebP is accepted even when mimetypes does not know it."""
        from mathvariant.utils.io import validate_upload

        validate_upload(b"data", "photo.webp")

    def test_too_large(self):
        """Uploads over the limit are refused with the limit in MB."""
        from mathvariant.utils.io import validate_upload
        from mathvariant.utils.outcomes import InvalidUploadError

        with pytest.raises(InvalidUploadError, match="10MB"):
            validate_upload(b"x" * (10 * 1024 * 1024 + 1), "big.png")


class TestImageLoading:
    """Test decoding uploads into RawImage."""

    def test_read_upload(self, png_bytes):
        """Valid uploads are decoded with their dimensions."""
        from mathvariant.utils.io import read_upload

        raw = read_upload(png_bytes, "page.png")

        assert raw.is_decoded
        assert (raw.width, raw.height, raw.channels) == (40, 20, 3)
        assert raw.name == "page.png"

    def test_load_raw_image(self, png_bytes, tmp_path):
        """Files on disk go through the same checks."""
        from mathvariant.utils.io import load_raw_image

        path = tmp_path / "problem.png"
        path.write_bytes(png_bytes)

        raw = load_raw_image(path)

        assert raw.data == png_bytes

    def test_missing_file(self, tmp_path):
        from mathvariant.utils.io import load_raw_image

        with pytest.raises(FileNotFoundError):
            load_raw_image(tmp_path / "missing.png")


class TestJson:
    """Test JSON helpers."""

    def test_round_trip_numpy(self, tmp_path):
        """Numpy values are serialized as plain numbers."""
        from mathvariant.utils.io import load_json, save_json

        path = save_json({"confidence": np.float32(0.5), "ids": np.arange(3)}, tmp_path / "a" / "b.json")

        assert load_json(path) == {"confidence": 0.5, "ids": [0, 1, 2]}
