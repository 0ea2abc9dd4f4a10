"""
Best-result selection across recognition attempts.

Selection is a left fold in catalog order: an attempt replaces the running
best when it is more confident, or when it is at least moderately confident
and recovered more text. Because the fold is pairwise, the first profile to
reach a given confidence keeps it.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config import OCRConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionPolicy:
    """Thresholds for accepting attempts and stopping early (confidence 0-100)."""
    accept_length_confidence: float = 50.0
    early_exit_confidence: float = 80.0
    early_exit_min_length: int = 5

    @classmethod
    def from_config(cls, config: OCRConfig) -> "SelectionPolicy":
        return cls(
            accept_length_confidence=config.accept_length_confidence,
            early_exit_confidence=config.early_exit_confidence,
            early_exit_min_length=config.early_exit_min_length,
        )

    def is_better(self, candidate, best: Optional["BestResult"]) -> bool:
        """True if ``candidate`` should replace the running ``best``."""
        if not candidate.text:
            return False
        if best is None:
            return True
        if candidate.confidence > best.confidence:
            return True
        return (
            candidate.confidence > self.accept_length_confidence
            and len(candidate.text) > len(best.text)
        )

    def is_good_enough(self, attempt) -> bool:
        """Stop trying further profiles once this holds."""
        return (
            attempt.confidence > self.early_exit_confidence
            and len(attempt.text) > self.early_exit_min_length
        )


@dataclass(frozen=True)
class BestResult:
    """Final canonical text chosen for one image."""
    text: str
    confidence: float
    profile_name: str = ""

    def to_dict(self):
        return {
            "text": self.text,
            "confidence": self.confidence,
            "profile": self.profile_name,
        }


class BestResultAccumulator:
    """Running best over attempts offered in catalog order."""

    def __init__(self, policy: Optional[SelectionPolicy] = None):
        self.policy = policy or SelectionPolicy()
        self.best: Optional[BestResult] = None

    def offer(self, attempt) -> bool:
        """
        Fold one attempt into the running best.

        Args:
            attempt: Any object with ``text``, ``confidence`` and optionally
                ``profile_name`` attributes

        Returns:
            True if the attempt became the new best
        """
        if not self.policy.is_better(attempt, self.best):
            return False

        self.best = BestResult(
            text=attempt.text,
            confidence=attempt.confidence,
            profile_name=getattr(attempt, "profile_name", ""),
        )
        logger.debug(
            f"New best result: {self.best.profile_name or '<unnamed>'} "
            f"(confidence {self.best.confidence:.1f})"
        )
        return True


def select_best(attempts: Iterable, policy: Optional[SelectionPolicy] = None) -> Optional[BestResult]:
    """Pick the best attempt; None when every attempt has empty text."""
    accumulator = BestResultAccumulator(policy)
    for attempt in attempts:
        accumulator.offer(attempt)
    return accumulator.best
