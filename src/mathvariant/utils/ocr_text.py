"""
Text OCR module for math problems.

Provides:
- An ordered catalog of recognition profiles (language, page segmentation,
  character whitelist)
- Tesseract engine with per-word confidence averaging
- A runner that tries profiles in order, keeps the best canonical result and
  stops early once a result is good enough
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Dict, Any
import numpy as np

from ..config import OCRConfig
from .canonicalize import canonicalize
from .images import NormalizedImage
from .outcomes import FailureKind, MANUAL_ENTRY_MESSAGE, NoUsableTextError
from .selection import BestResult, BestResultAccumulator, SelectionPolicy

logger = logging.getLogger(__name__)

# (profile_name, status, progress in [0, 1])
ProgressCallback = Callable[[str, str, float], None]


# ============================================================================
# Recognition Profiles
# ============================================================================

LATIN_MATH_WHITELIST = (
    "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
    "()[]{}+-×÷=.,?!:;/$%^&*<>≤≥±∞π√∑∫αβγδθλμσφχψω"
)

KOREAN_MATH_WHITELIST = (
    "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz가-힣"
    "()[]{}+-×÷=.,?!:;/$%^&*<>≤≥±∞π√∑∫αβγδθλμσφχψω"
)


@dataclass(frozen=True)
class RecognitionProfile:
    """One OCR configuration to try."""
    name: str
    language: str
    page_segmentation_mode: Optional[int] = None
    char_whitelist: Optional[str] = None
    preserve_interword_spaces: bool = True

    def tesseract_config(self, oem: Optional[int] = 3) -> str:
        """Build the Tesseract command-line config string."""
        parts = []
        if oem is not None:
            parts.append(f"--oem {oem}")
        if self.page_segmentation_mode is not None:
            parts.append(f"--psm {self.page_segmentation_mode}")
        if self.char_whitelist:
            parts.append(f"-c tessedit_char_whitelist={self.char_whitelist}")
        if self.preserve_interword_spaces:
            parts.append("-c preserve_interword_spaces=1")
        return " ".join(parts)


# Ordered by preference; the order decides ties during selection.
DEFAULT_CATALOG: Tuple[RecognitionProfile, ...] = (
    RecognitionProfile(
        name="math+kor+eng (PSM 6)",
        language="kor+eng",
        page_segmentation_mode=6,  # single uniform block
        char_whitelist=KOREAN_MATH_WHITELIST,
    ),
    RecognitionProfile(
        name="math+kor+eng (PSM 8)",
        language="kor+eng",
        page_segmentation_mode=8,  # single word
        char_whitelist=KOREAN_MATH_WHITELIST,
    ),
    RecognitionProfile(
        name="math+eng (PSM 6)",
        language="eng",
        page_segmentation_mode=6,
        char_whitelist=LATIN_MATH_WHITELIST,
    ),
    RecognitionProfile(
        name="kor (PSM 3)",
        language="kor",
        page_segmentation_mode=3,  # fully automatic page segmentation
    ),
    RecognitionProfile(
        name="default",
        language="kor+eng",
    ),
)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class RecognitionAttempt:
    """Result of running one profile against one normalized image."""
    profile_name: str
    raw_text: str
    text: str  # canonical
    confidence: float  # 0-100
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile": self.profile_name,
            "text": self.text,
            "raw_text": self.raw_text,
            "confidence": self.confidence,
            "error": self.error,
        }


@dataclass
class RecognitionOutcome:
    """Best result for one image, or the reason there is none."""
    best: Optional[BestResult]
    attempts: List[RecognitionAttempt] = field(default_factory=list)
    failure: Optional[FailureKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.best is not None

    def unwrap(self) -> BestResult:
        if self.best is None:
            raise NoUsableTextError(self.message or MANUAL_ENTRY_MESSAGE)
        return self.best

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best": self.best.to_dict() if self.best else None,
            "attempts": [a.to_dict() for a in self.attempts],
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
        }


# ============================================================================
# Engines
# ============================================================================

class RecognitionEngine:
    """
    Engine interface.

    ``recognize`` returns ``(text, confidence)`` with confidence in [0, 100]
    and may raise on failure; the runner treats any exception as a failed
    profile.
    """

    def recognize(
        self,
        image: NormalizedImage,
        profile: RecognitionProfile,
        progress: Optional[ProgressCallback] = None
    ) -> Tuple[str, float]:
        raise NotImplementedError


class TesseractEngine(RecognitionEngine):
    """OCR using Tesseract."""

    def __init__(
        self,
        oem: Optional[int] = 3,
        tesseract_cmd: Optional[str] = None
    ):
        try:
            import pytesseract
            self.pytesseract = pytesseract

            if tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

            # Test that tesseract is installed
            pytesseract.get_tesseract_version()

        except Exception as e:
            raise ImportError(
                f"Tesseract not available: {e}\n"
                "Install with: pip install pytesseract\n"
                "Also install Tesseract with the 'kor' and 'eng' language data: "
                "https://github.com/tesseract-ocr/tesseract"
            )

        self.oem = oem

    @classmethod
    def from_config(cls, config: OCRConfig) -> "TesseractEngine":
        return cls(oem=config.tesseract_oem, tesseract_cmd=config.tesseract_cmd)

    def recognize(
        self,
        image: NormalizedImage,
        profile: RecognitionProfile,
        progress: Optional[ProgressCallback] = None
    ) -> Tuple[str, float]:
        """Recognize text using Tesseract with the profile's settings."""
        if progress:
            progress(profile.name, "recognizing text", 0.0)

        data = self.pytesseract.image_to_data(
            image.to_ocr_input(),
            lang=profile.language,
            config=profile.tesseract_config(self.oem),
            output_type=self.pytesseract.Output.DICT
        )
        text, confidence = parse_tesseract_data(data)

        if progress:
            progress(profile.name, "recognizing text", 1.0)

        return text, confidence


def parse_tesseract_data(data: Dict[str, List[Any]]) -> Tuple[str, float]:
    """
    Rebuild text from ``image_to_data`` output.

    Words are joined by spaces within a line and lines by newlines; the
    confidence is the mean of word confidences (Tesseract reports -1 for
    non-word boxes).
    """
    words = data.get('text', [])
    n = len(words)
    blocks = data.get('block_num') or [0] * n
    paragraphs = data.get('par_num') or [0] * n
    line_numbers = data.get('line_num') or [0] * n

    lines: List[List[str]] = []
    current_key = None
    confidences = []

    for i in range(n):
        word = str(words[i]).strip()
        conf = float(data['conf'][i])

        if conf < 0 or not word:
            continue

        key = (blocks[i], paragraphs[i], line_numbers[i])
        if key != current_key:
            lines.append([])
            current_key = key

        lines[-1].append(word)
        confidences.append(conf)

    text = '\n'.join(' '.join(words) for words in lines)
    confidence = float(np.mean(confidences)) if confidences else 0.0
    return text, confidence


# ============================================================================
# Recognition Runner
# ============================================================================

class RecognitionRunner:
    """
    Tries each profile of a catalog in order against one normalized image.

    Attempts run sequentially; the running best and the early exit depend on
    seeing them in catalog order.
    """

    def __init__(
        self,
        engine: RecognitionEngine,
        catalog: Sequence[RecognitionProfile] = DEFAULT_CATALOG,
        policy: Optional[SelectionPolicy] = None,
        canonicalizer: Callable[[str], str] = canonicalize
    ):
        self.engine = engine
        self.catalog = tuple(catalog)
        self.policy = policy or SelectionPolicy()
        self.canonicalizer = canonicalizer

    def _attempt(
        self,
        image: NormalizedImage,
        profile: RecognitionProfile,
        progress: Optional[ProgressCallback]
    ) -> RecognitionAttempt:
        try:
            raw_text, confidence = self.engine.recognize(image, profile, progress=progress)
        except Exception as e:
            logger.warning(f"OCR profile {profile.name} failed: {e}")
            return RecognitionAttempt(
                profile_name=profile.name,
                raw_text="",
                text="",
                confidence=0.0,
                error=f"{FailureKind.PROFILE_FAILED.value}: {e}"
            )

        raw_text = (raw_text or "").strip()
        confidence = min(100.0, max(0.0, float(confidence or 0.0)))
        return RecognitionAttempt(
            profile_name=profile.name,
            raw_text=raw_text,
            text=self.canonicalizer(raw_text),
            confidence=confidence
        )

    def recognize(
        self,
        image: NormalizedImage,
        progress: Optional[ProgressCallback] = None
    ) -> RecognitionOutcome:
        """
        Run the catalog against ``image``.

        Args:
            image: Normalized image, shared read-only by every attempt
            progress: Optional observer for per-profile progress events

        Returns:
            RecognitionOutcome; ``failure`` is NO_USABLE_TEXT when no profile
            produced any text
        """
        accumulator = BestResultAccumulator(self.policy)
        attempts: List[RecognitionAttempt] = []

        for profile in self.catalog:
            logger.info(f"OCR attempt: {profile.name}")
            attempt = self._attempt(image, profile, progress)
            attempts.append(attempt)

            if attempt.failed:
                continue

            logger.info(
                f"OCR result ({profile.name}): length={len(attempt.text)}, "
                f"confidence={attempt.confidence:.1f}, preview={attempt.text[:30]!r}"
            )

            if accumulator.offer(attempt):
                logger.info(f"New best result: {profile.name} (confidence {attempt.confidence:.1f})")

            if self.policy.is_good_enough(attempt):
                logger.info("Result is good enough, skipping remaining profiles")
                break

        if accumulator.best is None:
            logger.error(f"No usable text after {len(attempts)} OCR attempt(s)")
            return RecognitionOutcome(
                best=None,
                attempts=attempts,
                failure=FailureKind.NO_USABLE_TEXT,
                message=MANUAL_ENTRY_MESSAGE
            )

        return RecognitionOutcome(best=accumulator.best, attempts=attempts)
