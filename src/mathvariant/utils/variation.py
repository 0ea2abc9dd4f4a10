"""
Numeric variation of math problems.

Provides:
- Gemini-backed variation (1-3 numbers changed, structure preserved)
- A local fallback with the same substitution contract
- A generator that uses Gemini when configured and falls back otherwise
"""

import json
import logging
import math
import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..config import VariationConfig
from .outcomes import FailureKind, VariationError

logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r'[0-9]+(?:\.[0-9]+)?')
# "(단, x는 자연수이다.)" style condition clauses keep their numbers.
CONDITION_CLAUSE_PATTERN = re.compile(r'\(\s*단\s*[,，][^)]*\)')
JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class NumberVariation:
    """One variant of a text with some numbers substituted."""
    original_numbers: List[str] = field(default_factory=list)
    modified_numbers: List[str] = field(default_factory=list)
    positions: List[int] = field(default_factory=list)
    modified_text: str = ""
    source: str = "gemini"

    @property
    def changed(self) -> bool:
        return bool(self.modified_numbers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalNumbers": self.original_numbers,
            "modifiedNumbers": self.modified_numbers,
            "positions": self.positions,
            "modifiedText": self.modified_text,
            "source": self.source,
        }


# ============================================================================
# Local Fallback
# ============================================================================

def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def protected_spans(text: str) -> List[Tuple[int, int]]:
    """Character spans of condition clauses whose numbers must not change."""
    return [m.span() for m in CONDITION_CLAUSE_PATTERN.finditer(text)]


def find_numbers(text: str) -> List["re.Match"]:
    """Numeric tokens outside condition clauses, in reading order."""
    spans = protected_spans(text)
    return [
        m for m in NUMBER_PATTERN.finditer(text)
        if not any(start <= m.start() < end for start, end in spans)
    ]


def perturb_number(
    token: str,
    rng: random.Random,
    config: Optional[VariationConfig] = None
) -> str:
    """
    Scale a numeric token by a random factor.

    Integers stay integers in [1, max_integer]; decimals keep one decimal
    place in [0.1, max_decimal]. A result that reads the same as the input
    is moved by one unit so the digits always change.
    """
    config = config or VariationConfig()
    low, high = config.factor_range
    factor = rng.uniform(low, high)

    if '.' not in token:
        # Clamp first: long digit runs overflow float (and int() parsing)
        digits = token.lstrip('0') or '0'
        if len(digits) > len(str(config.max_integer)):
            original = config.max_integer
        else:
            original = min(int(digits), config.max_integer)
        value = min(config.max_integer, max(1, _round_half_up(original * factor)))
        result = str(value)
        if result == token:
            value = value + 1 if value < config.max_integer else value - 1
            result = str(value)
        return result

    original = min(float(token), config.max_decimal)
    value = _round_half_up(original * factor * 10) / 10
    value = min(config.max_decimal, max(0.1, value))
    result = f"{value:.1f}"
    if result == token:
        value = value + 0.1 if value + 0.1 <= config.max_decimal else value - 0.1
        result = f"{value:.1f}"
    return result


def fallback_number_variation(
    text: str,
    rng: Optional[random.Random] = None,
    config: Optional[VariationConfig] = None
) -> NumberVariation:
    """
    Vary up to ``max_changes`` numbers without external help.

    The first numbers outside condition clauses are chosen. Substitution is
    positional, so a new value can never be mistaken for a later original.

    Args:
        text: Problem or solution text
        rng: Random source (seed it for reproducible output)
        config: Variation limits

    Returns:
        NumberVariation with ``positions`` as character offsets into ``text``
    """
    config = config or VariationConfig()
    rng = rng or random.Random()

    candidates = find_numbers(text)
    if not candidates:
        return NumberVariation(modified_text=text, source="fallback")

    selected = candidates[:min(config.max_changes, len(candidates))]
    modified = [perturb_number(m.group(), rng, config) for m in selected]

    pieces = []
    cursor = 0
    for match, new_value in zip(selected, modified):
        pieces.append(text[cursor:match.start()])
        pieces.append(new_value)
        cursor = match.end()
    pieces.append(text[cursor:])

    return NumberVariation(
        original_numbers=[m.group() for m in selected],
        modified_numbers=modified,
        positions=[m.start() for m in selected],
        modified_text="".join(pieces),
        source="fallback"
    )


# ============================================================================
# Gemini Client
# ============================================================================

PROMPT_TEMPLATE = """
다음 수학 문제에서 숫자를 1-{max_changes}개만 선택해서 합리적으로 변형해주세요. 변형된 숫자는 원래 문제의 난이도와 패턴을 유지해야 합니다.

규칙:
1. 숫자 변형은 최소 1개, 최대 {max_changes}개까지만
2. 변형된 숫자는 5자리를 넘지 않음
3. 단서 조항 "(단, ...)" 부분의 숫자는 변형하지 않음
4. 문제의 교육적 목적과 난이도를 유지
5. 0이 되지 않도록 주의

문제: {problem}
{solution}
응답은 반드시 다음 JSON 형식으로만 답변해주세요:
{{
  "originalNumbers": ["원본숫자1", "원본숫자2"],
  "modifiedNumbers": ["변형숫자1", "변형숫자2"],
  "positions": [위치1, 위치2],
  "modifiedText": "숫자가 변형된 완전한 문제 텍스트"
}}

예시:
입력: "철수는 사과 5개와 배 3개를 가지고 있다. 총 몇 개인가?"
출력:
{{
  "originalNumbers": ["5", "3"],
  "modifiedNumbers": ["7", "4"],
  "positions": [7, 13],
  "modifiedText": "철수는 사과 7개와 배 4개를 가지고 있다. 총 몇 개인가?"
}}
"""


def build_prompt(problem_text: str, solution_text: Optional[str] = None, max_changes: int = 3) -> str:
    solution = f"해설: {solution_text}\n" if solution_text else ""
    return PROMPT_TEMPLATE.format(
        max_changes=max_changes,
        problem=problem_text,
        solution=solution
    )


def _violates_contract(number: str, max_integer: int) -> bool:
    try:
        value = float(number)
    except ValueError:
        return True
    return value == 0 or abs(value) > max_integer


def parse_variation_response(
    text: str,
    max_changes: int = 3,
    max_integer: int = 99999
) -> NumberVariation:
    """
    Extract and validate the JSON object in a model response.

    Raises:
        VariationError: If no JSON is found, required keys are missing, or a
            modified number is zero or longer than five digits
    """
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise VariationError("No JSON object found in model response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise VariationError(f"Malformed JSON in model response: {e}") from e

    if not isinstance(parsed, dict):
        raise VariationError("Model response is not a JSON object")

    original = parsed.get("originalNumbers")
    modified = parsed.get("modifiedNumbers")
    modified_text = parsed.get("modifiedText")
    if original is None or modified is None or not modified_text:
        raise VariationError("Model response is missing required fields")

    original = [str(n) for n in original][:max_changes]
    modified = [str(n) for n in modified][:max_changes]
    positions = [int(p) for p in (parsed.get("positions") or [])][:max_changes]

    bad = [n for n in modified if _violates_contract(n, max_integer)]
    if bad:
        raise VariationError(f"Model produced out-of-range numbers: {bad}")

    return NumberVariation(
        original_numbers=original,
        modified_numbers=modified,
        positions=positions,
        modified_text=str(modified_text),
        source="gemini"
    )


class GeminiVariationClient:
    """Asks a Gemini model to vary the numbers of a problem."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-1.5-flash",
        temperature: float = 0.7,
        max_changes: int = 3,
        max_integer: int = 99999,
        model: Any = None
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.max_changes = max_changes
        self.max_integer = max_integer
        self._model = model

    @classmethod
    def from_config(cls, config: VariationConfig) -> "GeminiVariationClient":
        return cls(
            api_key=config.gemini_api_key,
            model_name=config.gemini_model,
            temperature=config.temperature,
            max_changes=config.max_changes,
            max_integer=config.max_integer
        )

    def _get_model(self):
        if self._model is None:
            if not self.api_key:
                raise VariationError("GEMINI_API_KEY or GOOGLE_API_KEY must be set")

            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    def generate(self, problem_text: str, solution_text: Optional[str] = None) -> NumberVariation:
        """
        Request one variation.

        Raises:
            VariationError: On any request or parsing failure
        """
        model = self._get_model()
        prompt = build_prompt(problem_text, solution_text, self.max_changes)

        try:
            response = model.generate_content(
                prompt,
                generation_config={"temperature": self.temperature}
            )
            text = response.text or ""
        except Exception as e:
            raise VariationError(f"Gemini request failed: {e}") from e

        return parse_variation_response(text, self.max_changes, self.max_integer)


# ============================================================================
# Variation Generator
# ============================================================================

class VariationGenerator:
    """Gemini first, local fallback on any failure."""

    def __init__(
        self,
        client: Optional[GeminiVariationClient] = None,
        config: Optional[VariationConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.client = client
        self.config = config or VariationConfig()
        self.rng = rng or random.Random()

    @classmethod
    def from_config(
        cls,
        config: VariationConfig,
        rng: Optional[random.Random] = None
    ) -> "VariationGenerator":
        client = None
        if config.use_ai and config.gemini_api_key:
            client = GeminiVariationClient.from_config(config)
        elif config.use_ai:
            logger.info("No Gemini API key configured, using local number variation")
        return cls(client=client, config=config, rng=rng)

    def vary(self, text: str, context: Optional[str] = None) -> NumberVariation:
        """
        Vary the numbers of ``text``; ``context`` is the companion text
        (solution for a problem, problem for a solution).
        """
        if self.client is not None:
            try:
                return self.client.generate(text, context)
            except Exception as e:
                logger.warning(
                    f"Gemini variation failed ({FailureKind.VARIATION_FALLBACK.value}), "
                    f"using local fallback: {e}"
                )

        return fallback_number_variation(text, rng=self.rng, config=self.config)
