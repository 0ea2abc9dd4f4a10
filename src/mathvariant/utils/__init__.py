"""
Utility modules for the math problem variation pipeline.
"""

from .io import read_upload, load_raw_image, save_json, ensure_dir
from .images import RawImage, NormalizedImage, normalize, otsu_threshold, binarize
from .ocr_text import RecognitionProfile, RecognitionRunner, TesseractEngine, DEFAULT_CATALOG
from .canonicalize import canonicalize
from .selection import SelectionPolicy, BestResult, select_best
from .variation import NumberVariation, VariationGenerator, fallback_number_variation
from .assembler import ProblemAssembler, SingleProblem, VariationSet
from .export import TextExporter, MarkdownExporter, DocxExporter
from .outcomes import FailureKind, MathVariantError, NoUsableTextError

__all__ = [
    # IO
    "read_upload", "load_raw_image", "save_json", "ensure_dir",
    # Images
    "RawImage", "NormalizedImage", "normalize", "otsu_threshold", "binarize",
    # OCR
    "RecognitionProfile", "RecognitionRunner", "TesseractEngine", "DEFAULT_CATALOG",
    "canonicalize", "SelectionPolicy", "BestResult", "select_best",
    # Variation
    "NumberVariation", "VariationGenerator", "fallback_number_variation",
    # Assembly
    "ProblemAssembler", "SingleProblem", "VariationSet",
    # Export
    "TextExporter", "MarkdownExporter", "DocxExporter",
    # Outcomes
    "FailureKind", "MathVariantError", "NoUsableTextError",
]
