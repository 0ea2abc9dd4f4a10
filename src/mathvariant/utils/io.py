"""
I/O utilities for the math problem variation pipeline.

Handles:
- Upload validation (content type, size)
- Image loading into RawImage
- JSON serialization
- Directory management
"""

import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional, Union
from dataclasses import asdict

import numpy as np

from .images import RawImage
from .outcomes import InvalidUploadError

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif', '.webp', '.bmp', '.tif', '.tiff')


# ============================================================================
# Uploads
# ============================================================================

def validate_upload(
    data: bytes,
    filename: str = "",
    content_type: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> None:
    """
    Reject uploads that are not images or are too large.

    Args:
        data: File contents
        filename: Original file name (used to guess the type)
        content_type: MIME type reported by the browser, if any
        max_bytes: Size limit

    Raises:
        InvalidUploadError: If the upload is empty, not an image, or too large
    """
    if not data:
        raise InvalidUploadError("The uploaded file is empty.")

    if content_type is None and filename:
        content_type, _ = mimetypes.guess_type(filename)
        if content_type is None and is_image_path(filename):
            content_type = "image/" + Path(filename).suffix.lower().lstrip(".")

    if not content_type or not content_type.startswith("image/"):
        raise InvalidUploadError(
            "Only image files can be uploaded.\n"
            "Supported formats: JPG, PNG, GIF, WebP"
        )

    if len(data) > max_bytes:
        raise InvalidUploadError(
            f"The file is too large. Please use an image of "
            f"{max_bytes // (1024 * 1024)}MB or less."
        )


def read_upload(
    data: bytes,
    filename: str = "",
    content_type: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> RawImage:
    """Validate and decode an uploaded image."""
    validate_upload(data, filename, content_type, max_bytes)
    logger.info(f"Image upload: {filename or '<unnamed>'} ({len(data)} bytes)")
    return RawImage.from_bytes(data, name=filename)


# ============================================================================
# Image Loading
# ============================================================================

def load_raw_image(
    image_path: Union[str, Path],
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> RawImage:
    """
    Load an image file as a RawImage.

    Raises:
        FileNotFoundError: If the image file doesn't exist
        InvalidUploadError: If it is not an image or exceeds ``max_bytes``
    """
    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    data = image_path.read_bytes()
    raw = read_upload(data, filename=image_path.name, max_bytes=max_bytes)

    logger.debug(f"Loaded image: {image_path}, size: {raw.width}x{raw.height}")
    return raw


def is_image_path(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types, dataclasses and paths."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        if hasattr(obj, '__dataclass_fields__'):
            return asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False
) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dict, list, dataclass, etc.)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing
        ensure_ascii: If True, escape non-ASCII characters

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """Load data from a JSON file."""
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, 'r', encoding='utf-8') as f:
        return json.load(f)


# ============================================================================
# Directory Management
# ============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """Create a directory if it doesn't exist and return it."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
