"""
Post-processing for OCR text of math problems.

Rewrites spacing and notation artifacts left by recognition: split digits,
spaced operators and brackets, LaTeX delimiters, spaced-out Korean domain
terms, fraction and exponent notation.
"""

import logging
import re
from typing import List, Tuple

logger = logging.getLogger(__name__)


Rule = Tuple["re.Pattern", str]


def _rule(pattern: str, replacement: str) -> Rule:
    return re.compile(pattern), replacement


# Order matters: later rules assume whitespace is already a single space.
LINE_BREAK_RULES: List[Rule] = [
    _rule(r'\r\n', '\n'),
    _rule(r'\r', '\n'),
    _rule(r'\s+', ' '),
]

MATH_SYMBOL_RULES: List[Rule] = [
    _rule(r'(?<=[0-9])\s+(?=[0-9])', ''),
    _rule(r'(?<=[0-9])\s*([+\-×÷=])\s*(?=[0-9])', r'\1'),
    _rule(r'\(\s+', '('),
    _rule(r'\s+\)', ')'),
    _rule(r'\[\s+', '['),
    _rule(r'\s+\]', ']'),
]

LATEX_RULES: List[Rule] = [
    _rule(r'\$\s+', '$'),
    _rule(r'\s+\$', '$'),
    _rule(r'\\\s+', r'\\'),
    _rule(r'\{\s+', '{'),
    _rule(r'\s+\}', '}'),
]

DOMAIN_TERMS = ('문제', '해설', '정답', '풀이', '계산')

DOMAIN_TERM_RULES: List[Rule] = [
    _rule(re.escape(f'{term[0]} {term[1]}'), term) for term in DOMAIN_TERMS
]

FRACTION_RULES: List[Rule] = [
    _rule(r'(?<=[0-9])\s*/\s*(?=[0-9])', '/'),
    # "N 분 의 M" reads "M over N"
    _rule(r'([0-9]+)\s*분\s*의\s*([0-9]+)', r'\2/\1'),
]

EXPONENT_RULES: List[Rule] = [
    _rule(r'\^\s*\{', '^{'),
    _rule(r'\^\s*([0-9])', r'^\1'),
]

FINAL_RULES: List[Rule] = [
    _rule(r'\s+', ' '),
]

RULES: List[Rule] = (
    LINE_BREAK_RULES
    + MATH_SYMBOL_RULES
    + LATEX_RULES
    + DOMAIN_TERM_RULES
    + FRACTION_RULES
    + EXPONENT_RULES
    + FINAL_RULES
)


def _apply_rules(text: str) -> str:
    for pattern, replacement in RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def canonicalize(raw: str) -> str:
    """
    Normalize recognized math-problem text.

    The rule sequence is applied until the text stops changing. Each rewrite
    shortens the text (or swaps a line break for a space), so the loop ends
    and ``canonicalize(canonicalize(x)) == canonicalize(x)``.

    Args:
        raw: Text as returned by the OCR engine

    Returns:
        Canonical text (may be empty)
    """
    if not raw:
        return ""

    text = raw
    while True:
        rewritten = _apply_rules(text)
        if rewritten == text:
            return rewritten
        text = rewritten
