"""
Problem assembler for the math problem variation pipeline.

Provides:
- Problem data model (SingleProblem, ExtractionResult, GeneratedProblem)
- Image -> text orchestration (normalize, recognize, select)
- Concurrent extraction of the problem and solution images
- Variation set generation
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any, Sequence
import random

from ..config import PipelineConfig
from .images import RawImage, normalize
from .ocr_text import (
    DEFAULT_CATALOG,
    ProgressCallback,
    RecognitionEngine,
    RecognitionOutcome,
    RecognitionProfile,
    RecognitionRunner,
    TesseractEngine,
)
from .selection import SelectionPolicy
from .variation import NumberVariation, VariationGenerator

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class SingleProblem:
    """A problem and its solution, as text and/or images."""
    problem_text: str = ""
    solution_text: str = ""
    problem_image: Optional[RawImage] = None
    solution_image: Optional[RawImage] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.problem_text.strip() and self.solution_text.strip())


@dataclass
class ExtractionResult:
    """OCR result for one uploaded image."""
    label: str
    text: str
    confidence: float
    status: str  # "completed" or "error"
    message: str = ""
    degraded_reason: Optional[str] = None
    outcome: Optional[RecognitionOutcome] = None
    processing_time_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "text": self.text,
            "confidence": self.confidence,
            "status": self.status,
            "message": self.message,
            "degraded_reason": self.degraded_reason,
            "attempts": [a.to_dict() for a in self.outcome.attempts] if self.outcome else [],
            "processing_time_seconds": round(self.processing_time_seconds, 2)
        }


@dataclass
class GeneratedProblem:
    """The original problem or one of its variants."""
    sequence: str
    problem_text: Optional[str] = None
    solution_text: Optional[str] = None
    problem_image: Optional[RawImage] = None
    solution_image: Optional[RawImage] = None
    is_generated: bool = False
    problem_variation: Optional[NumberVariation] = None
    solution_variation: Optional[NumberVariation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "problem_text": self.problem_text,
            "solution_text": self.solution_text,
            "has_problem_image": self.problem_image is not None,
            "has_solution_image": self.solution_image is not None,
            "is_generated": self.is_generated,
            "problem_variation": self.problem_variation.to_dict() if self.problem_variation else None,
            "solution_variation": self.solution_variation.to_dict() if self.solution_variation else None,
        }


@dataclass
class VariationSet:
    """The original problem followed by its generated variants."""
    problems: List[GeneratedProblem] = field(default_factory=list)
    task_id: str = ""
    created_at: str = ""

    def __post_init__(self):
        if not self.task_id:
            self.task_id = str(uuid.uuid4())
        if not self.created_at:
            self.created_at = datetime.now().isoformat()

    @property
    def generated(self) -> List[GeneratedProblem]:
        return [p for p in self.problems if p.is_generated]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "created_at": self.created_at,
            "problems": [p.to_dict() for p in self.problems]
        }


# ============================================================================
# Problem Assembler
# ============================================================================

class ProblemAssembler:
    """
    Orchestrates the variation pipeline.

    Coordinates:
    - Image normalization
    - Multi-profile OCR
    - Numeric variation (Gemini or local fallback)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        engine: Optional[RecognitionEngine] = None,
        catalog: Sequence[RecognitionProfile] = DEFAULT_CATALOG,
        generator: Optional[VariationGenerator] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config or PipelineConfig()
        self.catalog = tuple(catalog)
        self.rng = rng

        # Initialize components lazily
        self._engine = engine
        self._runner = None
        self._generator = generator

    @property
    def engine(self) -> RecognitionEngine:
        if self._engine is None:
            self._engine = TesseractEngine.from_config(self.config.ocr)
        return self._engine

    @property
    def runner(self) -> RecognitionRunner:
        if self._runner is None:
            self._runner = RecognitionRunner(
                self.engine,
                catalog=self.catalog,
                policy=SelectionPolicy.from_config(self.config.ocr)
            )
        return self._runner

    @property
    def generator(self) -> VariationGenerator:
        if self._generator is None:
            self._generator = VariationGenerator.from_config(self.config.variation, rng=self.rng)
        return self._generator

    def extract_text(
        self,
        image: RawImage,
        label: str = "problem",
        progress: Optional[ProgressCallback] = None
    ) -> ExtractionResult:
        """
        Extract canonical text from one image.

        Args:
            image: Raw uploaded image
            label: "problem" or "solution" (used in logs and results)
            progress: Optional per-profile progress observer

        Returns:
            ExtractionResult; status "error" carries a message asking for
            manual text entry
        """
        start_time = time.time()
        logger.info(f"OCR {label} started")

        normalized = normalize(image, self.config.image)
        outcome = self.runner.recognize(normalized, progress=progress)
        elapsed = time.time() - start_time

        if not outcome.ok:
            logger.error(f"OCR {label} failed: {outcome.message}")
            return ExtractionResult(
                label=label,
                text="",
                confidence=0.0,
                status="error",
                message=outcome.message,
                degraded_reason=normalized.degraded_reason,
                outcome=outcome,
                processing_time_seconds=elapsed
            )

        best = outcome.best
        logger.info(
            f"OCR {label} completed: confidence={best.confidence:.1f}, "
            f"length={len(best.text)}, profile={best.profile_name}"
        )
        return ExtractionResult(
            label=label,
            text=best.text,
            confidence=best.confidence,
            status="completed",
            degraded_reason=normalized.degraded_reason,
            outcome=outcome,
            processing_time_seconds=elapsed
        )

    def extract_pair(
        self,
        problem_image: Optional[RawImage],
        solution_image: Optional[RawImage],
        progress: Optional[ProgressCallback] = None
    ) -> Dict[str, ExtractionResult]:
        """Extract the problem and solution images concurrently."""
        jobs = [
            (label, image)
            for label, image in (("problem", problem_image), ("solution", solution_image))
            if image is not None
        ]
        if not jobs:
            return {}

        # Build the shared runner before the threads start
        runner = self.runner
        logger.debug(f"Extracting {len(jobs)} image(s) with {len(runner.catalog)} profiles")

        with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="ocr") as pool:
            futures = {
                label: pool.submit(self.extract_text, image, label, progress)
                for label, image in jobs
            }
            return {label: future.result() for label, future in futures.items()}

    def fill_from_images(
        self,
        problem: SingleProblem,
        progress: Optional[ProgressCallback] = None
    ) -> Dict[str, ExtractionResult]:
        """
        OCR whichever images lack text and copy successful results into
        ``problem``.
        """
        results = self.extract_pair(
            problem.problem_image if not problem.problem_text.strip() else None,
            problem.solution_image if not problem.solution_text.strip() else None,
            progress
        )
        if "problem" in results and results["problem"].ok:
            problem.problem_text = results["problem"].text
        if "solution" in results and results["solution"].ok:
            problem.solution_text = results["solution"].text
        return results

    def generate(self, problem: SingleProblem, count: Optional[int] = None) -> VariationSet:
        """
        Generate the original plus ``count`` numeric variants.

        Problem and solution texts are varied independently, each with the
        other as context.
        """
        variation_config = self.config.variation
        if count is None:
            count = variation_config.default_count
        count = max(variation_config.min_count, min(variation_config.max_count, count))

        problems = [GeneratedProblem(
            sequence="original",
            problem_text=problem.problem_text,
            solution_text=problem.solution_text,
            problem_image=problem.problem_image,
            solution_image=problem.solution_image,
            is_generated=False
        )]

        for i in range(1, count + 1):
            problem_variation = None
            solution_variation = None

            if problem.problem_text:
                problem_variation = self.generator.vary(problem.problem_text, problem.solution_text or None)
            if problem.solution_text:
                solution_variation = self.generator.vary(problem.solution_text, problem.problem_text or None)

            problems.append(GeneratedProblem(
                sequence=f"variant-{i}",
                problem_text=problem_variation.modified_text if problem_variation else None,
                solution_text=solution_variation.modified_text if solution_variation else None,
                problem_image=problem.problem_image,
                solution_image=problem.solution_image,
                is_generated=True,
                problem_variation=problem_variation,
                solution_variation=solution_variation
            ))

        logger.info(f"Generated {count} variant(s)")
        return VariationSet(problems=problems)
