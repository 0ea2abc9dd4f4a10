"""
Outcome types and the failure taxonomy shared by the pipeline stages.

Every stage degrades instead of aborting; the kind of degradation is carried
explicitly so callers can decide what to show the user.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Classified reasons a stage did not produce its normal result."""
    NORMALIZATION_DEGRADED = "normalization_degraded"
    PROFILE_FAILED = "profile_failed"
    NO_USABLE_TEXT = "no_usable_text"
    VARIATION_FALLBACK = "variation_fallback"
    INVALID_UPLOAD = "invalid_upload"


MANUAL_ENTRY_MESSAGE = (
    "Text recognition failed. Please type the text manually "
    "or try a clearer image."
)


class MathVariantError(Exception):
    """Base class for pipeline errors."""
    kind: FailureKind = None


class NoUsableTextError(MathVariantError):
    """Every recognition profile failed or returned empty text."""
    kind = FailureKind.NO_USABLE_TEXT

    def __init__(self, message: str = MANUAL_ENTRY_MESSAGE):
        super().__init__(message)


class InvalidUploadError(MathVariantError):
    """The uploaded file is not an acceptable image."""
    kind = FailureKind.INVALID_UPLOAD


class VariationError(MathVariantError):
    """The external variation service failed or answered malformed data."""
    kind = FailureKind.VARIATION_FALLBACK
