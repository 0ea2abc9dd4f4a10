"""
Tests for numeric variation (local fallback and Gemini client).
"""

import json
import random
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


APPLES = "철수는 사과 5개와 배 3개를 가지고 있다."


class FixedFactor:
    """Random stand-in that always returns the same factor."""

    def __init__(self, factor):
        self.factor = factor

    def uniform(self, low, high):
        return self.factor


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Records generate_content calls and replays a canned reply."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def generate_content(self, prompt, generation_config=None):
        self.calls.append((prompt, generation_config))
        if isinstance(self.reply, Exception):
            raise self.reply
        return FakeResponse(self.reply)


class TestFallbackVariation:
    """Test local number variation."""

    def test_apples_example(self):
        """Both numbers change, nothing else does."""
        from mathvariant.utils.variation import fallback_number_variation

        result = fallback_number_variation(APPLES, rng=random.Random(42))

        assert result.source == "fallback"
        assert result.original_numbers == ["5", "3"]
        assert result.positions == [7, 13]
        assert result.modified_numbers[0] in {"4", "6", "7"}
        assert result.modified_numbers[1] in {"2", "4"}
        expected = APPLES[:7] + result.modified_numbers[0] + APPLES[8:13] + result.modified_numbers[1] + APPLES[14:]
        assert result.modified_text == expected

    def test_seeded_rng_is_reproducible(self):
        """Same seed, same variant."""
        from mathvariant.utils.variation import fallback_number_variation

        first = fallback_number_variation(APPLES, rng=random.Random(7))
        second = fallback_number_variation(APPLES, rng=random.Random(7))

        assert first == second

    def test_substitution_is_positional(self):
        """A new value equal to a later original is not replaced again."""
        from mathvariant.utils.variation import fallback_number_variation

        # 3 -> 4 and 4 -> 5 with a factor of 4/3
        result = fallback_number_variation("3 + 4", rng=FixedFactor(4 / 3))

        assert result.modified_numbers == ["4", "5"]
        assert result.modified_text == "4 + 5"

    def test_at_most_three_numbers(self):
        """Only the first three numbers are varied."""
        from mathvariant.utils.variation import fallback_number_variation

        text = "1, 2, 3, 4"
        result = fallback_number_variation(text, rng=random.Random(1))

        assert result.original_numbers == ["1", "2", "3"]
        assert result.modified_text.endswith(", 4")

    def test_condition_clause_untouched(self):
        """Numbers inside '(단, ...)' keep their value."""
        from mathvariant.utils.variation import fallback_number_variation

        text = "x + 5 = 12 (단, x는 3보다 크다.)"
        result = fallback_number_variation(text, rng=random.Random(3))

        assert result.original_numbers == ["5", "12"]
        assert result.modified_text.endswith("(단, x는 3보다 크다.)")

    def test_no_numbers(self):
        """Text without numbers comes back unchanged."""
        from mathvariant.utils.variation import fallback_number_variation

        result = fallback_number_variation("숫자가 없는 문제", rng=random.Random(0))

        assert result.modified_text == "숫자가 없는 문제"
        assert result.changed is False

    def test_decimal_keeps_one_place(self):
        """Decimals stay decimals with a single decimal place."""
        from mathvariant.utils.variation import fallback_number_variation

        result = fallback_number_variation("길이는 2.5 m", rng=random.Random(5))

        value = result.modified_numbers[0]
        assert result.original_numbers == ["2.5"]
        assert len(value.split(".")[1]) == 1
        assert value != "2.5"
        assert 0.1 <= float(value) <= 9999.9


class TestPerturbNumber:
    """Test bounds on a single number."""

    def test_one_always_changes(self):
        """1 scaled by 0.7-1.3 rounds back to 1 and is nudged up."""
        from mathvariant.utils.variation import perturb_number

        for seed in range(20):
            assert perturb_number("1", random.Random(seed)) == "2"

    def test_upper_bound(self):
        """Integers never exceed five digits."""
        from mathvariant.utils.variation import perturb_number

        assert perturb_number("99999", FixedFactor(1.3)) == "99998"
        assert perturb_number("90000", FixedFactor(1.3)) == "99999"

    def test_integer_never_zero(self):
        """Small integers do not scale down to zero."""
        from mathvariant.utils.variation import perturb_number

        assert int(perturb_number("1", FixedFactor(0.1))) >= 1

    def test_decimal_lower_bound(self):
        """Decimals do not drop below 0.1."""
        from mathvariant.utils.variation import perturb_number

        assert perturb_number("0.1", FixedFactor(0.7)) == "0.2"

    @pytest.mark.parametrize("token", ["5", "17", "240", "3.7", "12.25"])
    def test_digits_differ(self, token):
        """The result always reads differently from the input."""
        from mathvariant.utils.variation import perturb_number

        for seed in range(10):
            assert perturb_number(token, random.Random(seed)) != token

    @pytest.mark.parametrize("token", ["1" * 400, "1" * 5000, "0" * 10 + "7" * 320])
    def test_long_integer_clamped(self, token):
        """Digit runs too long for a float are clamped before scaling."""
        from mathvariant.utils.variation import perturb_number

        for seed in range(5):
            assert 1 <= int(perturb_number(token, random.Random(seed))) <= 99999

    def test_long_decimal_clamped(self):
        """A decimal far beyond the bound still yields one decimal place."""
        from mathvariant.utils.variation import perturb_number

        result = perturb_number("1" * 400 + ".5", FixedFactor(1.3))

        assert result == "9999.9"

    def test_long_number_in_text(self):
        """Fallback variation survives a runaway OCR digit sequence."""
        from mathvariant.utils.variation import fallback_number_variation

        text = "값은 " + "1" * 400 + " 이다"
        variation = fallback_number_variation(text, rng=random.Random(1))

        assert variation.original_numbers == ["1" * 400]
        assert int(variation.modified_numbers[0]) <= 99999
        assert variation.modified_text == "값은 " + variation.modified_numbers[0] + " 이다"


class TestParseVariationResponse:
    """Test validation of model output."""

    def test_fenced_json(self):
        """JSON wrapped in prose and code fences is found."""
        from mathvariant.utils.variation import parse_variation_response

        reply = (
            "다음과 같습니다:\n```json\n"
            + json.dumps({
                "originalNumbers": ["5", "3"],
                "modifiedNumbers": ["7", "4"],
                "positions": [7, 13],
                "modifiedText": "철수는 사과 7개와 배 4개를 가지고 있다.",
            }, ensure_ascii=False)
            + "\n```"
        )

        result = parse_variation_response(reply)

        assert result.modified_numbers == ["7", "4"]
        assert result.positions == [7, 13]
        assert result.source == "gemini"

    def test_truncated_to_three(self):
        """Extra changes beyond the limit are dropped."""
        from mathvariant.utils.variation import parse_variation_response

        reply = json.dumps({
            "originalNumbers": ["1", "2", "3", "4"],
            "modifiedNumbers": ["5", "6", "7", "8"],
            "positions": [0, 2, 4, 6],
            "modifiedText": "5 6 7 8",
        })

        result = parse_variation_response(reply)

        assert len(result.modified_numbers) == 3
        assert len(result.positions) == 3

    @pytest.mark.parametrize("reply", [
        "no json here",
        "{not valid json}",
        '{"modifiedNumbers": ["1"], "modifiedText": "1"}',
        '{"originalNumbers": ["1"], "modifiedNumbers": ["2"], "modifiedText": ""}',
        '{"originalNumbers": ["5"], "modifiedNumbers": ["0"], "modifiedText": "0"}',
        '{"originalNumbers": ["5"], "modifiedNumbers": ["123456"], "modifiedText": "123456"}',
    ])
    def test_invalid_replies(self, reply):
        """Malformed or out-of-range replies raise VariationError."""
        from mathvariant.utils.outcomes import VariationError
        from mathvariant.utils.variation import parse_variation_response

        with pytest.raises(VariationError):
            parse_variation_response(reply)

    def test_prompt_contains_inputs(self):
        """Problem, solution and limits appear in the prompt."""
        from mathvariant.utils.variation import build_prompt

        prompt = build_prompt(APPLES, "5 + 3 = 8", max_changes=3)

        assert APPLES in prompt
        assert "해설: 5 + 3 = 8" in prompt
        assert "1-3개" in prompt
        assert '"modifiedText"' in prompt


class TestGeminiVariationClient:
    """Test the Gemini client with a stand-in model."""

    def test_generate(self):
        """The prompt and temperature reach the model."""
        from mathvariant.utils.variation import GeminiVariationClient

        model = FakeModel(json.dumps({
            "originalNumbers": ["5"],
            "modifiedNumbers": ["6"],
            "positions": [7],
            "modifiedText": "철수는 사과 6개와 배 3개를 가지고 있다.",
        }, ensure_ascii=False))
        client = GeminiVariationClient(api_key="test", temperature=0.3, model=model)

        result = client.generate(APPLES)

        prompt, generation_config = model.calls[0]
        assert APPLES in prompt
        assert generation_config == {"temperature": 0.3}
        assert result.modified_text.startswith("철수는 사과 6개")

    def test_request_error_wrapped(self):
        """Transport errors surface as VariationError."""
        from mathvariant.utils.outcomes import VariationError
        from mathvariant.utils.variation import GeminiVariationClient

        client = GeminiVariationClient(api_key="test", model=FakeModel(ConnectionError("offline")))

        with pytest.raises(VariationError, match="offline"):
            client.generate(APPLES)

    def test_missing_key(self):
        """No API key and no model is a VariationError."""
        from mathvariant.utils.outcomes import VariationError
        from mathvariant.utils.variation import GeminiVariationClient

        with pytest.raises(VariationError):
            GeminiVariationClient(api_key=None).generate(APPLES)


class TestVariationGenerator:
    """Test Gemini-first generation with fallback."""

    def test_falls_back_on_bad_reply(self):
        """An unusable model reply produces a local variant."""
        from mathvariant.utils.variation import GeminiVariationClient, VariationGenerator

        client = GeminiVariationClient(api_key="test", model=FakeModel("sorry, I can't"))
        generator = VariationGenerator(client=client, rng=random.Random(0))

        result = generator.vary(APPLES)

        assert result.source == "fallback"
        assert result.original_numbers == ["5", "3"]

    def test_uses_gemini_when_it_works(self):
        """A valid reply is returned as is."""
        from mathvariant.utils.variation import GeminiVariationClient, VariationGenerator

        reply = '{"originalNumbers": ["3"], "modifiedNumbers": ["4"], "positions": [13], "modifiedText": "x"}'
        client = GeminiVariationClient(api_key="test", model=FakeModel(reply))

        result = VariationGenerator(client=client).vary(APPLES, context="5 + 3 = 8")

        assert result.source == "gemini"
        assert "해설: 5 + 3 = 8" in client._model.calls[0][0]

    def test_from_config_without_key(self):
        """No key configured means local variation only."""
        from mathvariant.config import VariationConfig
        from mathvariant.utils.variation import VariationGenerator

        generator = VariationGenerator.from_config(VariationConfig(use_ai=True, gemini_api_key=None))

        assert generator.client is None

    def test_from_config_ai_disabled(self):
        """use_ai=False ignores a configured key."""
        from mathvariant.config import VariationConfig
        from mathvariant.utils.variation import VariationGenerator

        generator = VariationGenerator.from_config(VariationConfig(use_ai=False, gemini_api_key="k"))

        assert generator.client is None

    def test_to_dict_keys(self):
        """Serialized variations use the wire field names."""
        from mathvariant.utils.variation import fallback_number_variation

        data = fallback_number_variation(APPLES, rng=random.Random(1)).to_dict()

        assert set(data) == {"originalNumbers", "modifiedNumbers", "positions", "modifiedText", "source"}
