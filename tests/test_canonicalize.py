"""
Tests for OCR text canonicalization.
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


SAMPLES = [
    "1 2 3",
    "3 + 4 = 7",
    "( x + 1 ) [ 2 ]",
    "$ \\ frac { 1 } { 2 } $",
    "문 제 1. 해 설 을 보고 정 답 을 쓰시오",
    "3 분 의 2 + 1 / 4",
    "x^ 2 + y ^ { 3 }",
    "첫째 줄\r\n둘째 줄\r셋째 줄",
    "1 2 3 분의 4 5",
    "",
]


class TestCanonicalize:
    """Test individual rewrite rules."""

    def test_empty(self):
        """Empty input stays empty."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("") == ""
        assert canonicalize("   \n ") == ""

    def test_split_digits_joined(self):
        """Digits separated by spaces are joined, including runs."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("1 2 3") == "123"
        assert canonicalize("x = 1 0 0") == "x = 100"

    def test_operators_between_digits(self):
        """Spacing around operators between digits is removed."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("3 + 4 = 7") == "3+4=7"
        assert canonicalize("12 × 3 ÷ 4 - 1") == "12×3÷4-1"

    def test_operators_next_to_letters_untouched(self):
        """Operators between a letter and a digit keep their spacing."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("x + 1") == "x + 1"

    def test_brackets(self):
        """Whitespace just inside brackets is removed."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("( x + 1 )") == "(x + 1)"
        assert canonicalize("[ 2 ]") == "[2]"

    def test_latex(self):
        """Dollar signs, backslashes and braces are tightened."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("$ x $") == "$x$"
        assert canonicalize("\\ frac { 1 } { 2 }") == "\\frac {1} {2}"

    @pytest.mark.parametrize("term", ["문제", "해설", "정답", "풀이", "계산"])
    def test_domain_terms(self, term):
        """Spaced-out Korean headings are repaired."""
        from mathvariant.utils.canonicalize import canonicalize

        spaced = f"{term[0]} {term[1]}"

        assert canonicalize(f"{spaced} 1") == f"{term} 1"

    def test_korean_fraction_inverted(self):
        """'N분의M' reads M over N."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("3 분 의 2") == "2/3"
        assert canonicalize("5분의1") == "1/5"

    def test_slash_fraction(self):
        """Spaced slashes between digits are tightened."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("1 / 4") == "1/4"

    def test_exponents(self):
        """Caret spacing before digits and braces is removed."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("x^ 2") == "x^2"
        assert canonicalize("y^ { 3 }") == "y^{3}"

    def test_line_breaks_collapsed(self):
        """Every line break style becomes a single space."""
        from mathvariant.utils.canonicalize import canonicalize

        assert canonicalize("a\r\nb\rc\n\nd") == "a b c d"


class TestIdempotence:
    """Canonical text is a fixed point."""

    @pytest.mark.parametrize("sample", SAMPLES)
    def test_canonicalize_twice(self, sample):
        """Applying the canonicalizer again changes nothing."""
        from mathvariant.utils.canonicalize import canonicalize

        once = canonicalize(sample)

        assert canonicalize(once) == once

    def test_fraction_after_digit_join(self):
        """Split digits are joined before the fraction is read."""
        from mathvariant.utils.canonicalize import _apply_rules, canonicalize

        text = "1 2 3 분의 4 5"
        result = canonicalize(text)

        assert _apply_rules(result) == result
        assert result == "45/123"
