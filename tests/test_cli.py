"""
Tests for the command-line interface and configuration.
"""

import json
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestConfig:
    """Test environment overrides."""

    def test_defaults(self, monkeypatch):
        from mathvariant.config import get_config

        for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "MATHVARIANT_DEBUG", "TESSERACT_CMD"):
            monkeypatch.delenv(name, raising=False)

        config = get_config()

        assert config.variation.gemini_api_key is None
        assert config.debug_mode is False
        assert config.image.max_canvas_size == 3000
        assert config.ocr.early_exit_confidence == 80.0

    def test_environment(self, monkeypatch):
        """Keys, model and debug flag come from the environment."""
        from mathvariant.config import get_config

        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
        monkeypatch.setenv("MATHVARIANT_GEMINI_MODEL", "gemini-pro")
        monkeypatch.setenv("MATHVARIANT_DEBUG", "true")

        config = get_config()

        assert config.variation.gemini_api_key == "google-key"
        assert config.variation.gemini_model == "gemini-pro"
        assert config.debug_mode is True


class TestCli:
    """Test the CLI with typed input (no OCR, no Gemini)."""

    def run(self, monkeypatch, *args):
        from mathvariant import cli

        monkeypatch.setattr(sys, "argv", ["mathvariant", *args])
        with pytest.raises(SystemExit) as excinfo:
            cli.main()
        return excinfo.value.code

    def test_text_input(self, monkeypatch, tmp_path, capsys):
        """Typed problems are varied and exported."""
        code = self.run(
            monkeypatch,
            "--problem-text", "철수는 사과 5개와 배 3개를 가지고 있다.",
            "--solution-text", "5 + 3 = 8",
            "--output", str(tmp_path),
            "--count", "2",
            "--format", "txt", "json",
            "--no-ai",
            "--seed", "7",
        )

        assert code == 0
        txt_files = list(tmp_path.glob("generated_problems_*.txt"))
        json_files = list(tmp_path.glob("generated_problems_*.json"))
        assert len(txt_files) == 1
        assert "Total variants: 2" in txt_files[0].read_text(encoding="utf-8")
        data = json.loads(json_files[0].read_text(encoding="utf-8"))
        assert len(data["problems"]) == 3
        assert "VARIATION COMPLETE" in capsys.readouterr().out

    def test_missing_image(self, monkeypatch, tmp_path):
        """An unreadable input file exits with status 1."""
        code = self.run(
            monkeypatch,
            "--problem-text", "x = 1",
            "--solution-image", str(tmp_path / "missing.png"),
            "--output", str(tmp_path),
        )

        assert code == 1

    def test_problem_input_required(self, monkeypatch, tmp_path):
        """argparse rejects a call without problem input."""
        code = self.run(monkeypatch, "--solution-text", "1", "--output", str(tmp_path))

        assert code == 2

    def fail_pipeline(self, monkeypatch):
        from mathvariant import cli

        def explode(args):
            raise RuntimeError("boom")

        monkeypatch.setattr(cli, "run_pipeline", explode)

    def test_unexpected_error_exits(self, monkeypatch, tmp_path):
        """Unexpected errors exit with status 1 by default."""
        monkeypatch.delenv("MATHVARIANT_DEBUG", raising=False)
        self.fail_pipeline(monkeypatch)

        code = self.run(monkeypatch, "--problem-text", "x = 1", "--solution-text", "1",
                        "--output", str(tmp_path))

        assert code == 1

    def test_debug_environment_reraises(self, monkeypatch, tmp_path):
        """MATHVARIANT_DEBUG=true behaves like --debug."""
        from mathvariant import cli

        monkeypatch.setenv("MATHVARIANT_DEBUG", "true")
        self.fail_pipeline(monkeypatch)
        monkeypatch.setattr(sys, "argv", [
            "mathvariant", "--problem-text", "x = 1", "--solution-text", "1",
            "--output", str(tmp_path),
        ])

        with pytest.raises(RuntimeError, match="boom"):
            cli.main()
