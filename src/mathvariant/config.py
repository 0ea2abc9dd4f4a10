"""
Configuration and constants for the math problem variation pipeline.

This module provides:
- Global logging configuration
- Image normalization parameters
- OCR profile selection thresholds
- Variation generation (Gemini) settings
- Export settings
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging

# ============================================================================
# Logging Configuration
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("mathvariant")


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class ImageConfig:
    """Image normalization configuration."""
    max_canvas_size: int = 3000  # Longest side after rescaling
    max_upscale: float = 3.0
    max_source_size: int = 5000  # Larger sources are passed through untouched
    band_upper: float = 1.1  # gray > band_upper * t -> white
    band_lower: float = 0.9  # gray < band_lower * t -> black
    contrast: float = 1.2
    brightness: float = 1.1
    timeout_seconds: float = 10.0


@dataclass
class OCRConfig:
    """OCR configuration."""
    tesseract_cmd: Optional[str] = None
    tesseract_oem: int = 3
    # Result selection thresholds (confidence is 0-100)
    accept_length_confidence: float = 50.0
    early_exit_confidence: float = 80.0
    early_exit_min_length: int = 5


@dataclass
class VariationConfig:
    """Numeric variation configuration."""
    use_ai: bool = True
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    temperature: float = 0.7
    default_count: int = 5
    min_count: int = 1
    max_count: int = 10
    max_changes: int = 3
    factor_range: Tuple[float, float] = (0.7, 1.3)
    max_integer: int = 99999
    max_decimal: float = 9999.9


@dataclass
class ExportConfig:
    """Export configuration."""
    title: str = "Math Problem Variations"
    filename_prefix: str = "generated_problems"
    max_upload_bytes: int = 10 * 1024 * 1024
    image_extensions: Tuple[str, ...] = ('.png', '.jpg', '.jpeg', '.gif', '.webp', '.bmp', '.tif', '.tiff')


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    image: ImageConfig = field(default_factory=ImageConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    variation: VariationConfig = field(default_factory=VariationConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    # Global settings
    debug_mode: bool = False


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    if os.environ.get("MATHVARIANT_DEBUG", "").lower() == "true":
        config.debug_mode = True

    # Gemini credentials from environment
    config.variation.gemini_api_key = (
        os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
    )

    model = os.environ.get("MATHVARIANT_GEMINI_MODEL")
    if model:
        config.variation.gemini_model = model

    config.ocr.tesseract_cmd = os.environ.get("TESSERACT_CMD")

    return config
