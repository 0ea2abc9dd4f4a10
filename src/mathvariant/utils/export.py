"""
Export module for generated problem variants.

Provides:
- Plain-text export
- Markdown export (math left in $...$)
- DOCX export (using python-docx)
"""

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[original image used]"
PROBLEM_HEADING = "【문제】"
SOLUTION_HEADING = "【해설】"


def default_filename(prefix: str = "generated_problems", extension: str = "txt", when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return f"{prefix}_{when.strftime('%Y-%m-%d')}.{extension}"


# ============================================================================
# Text Exporter
# ============================================================================

class TextExporter:
    """Export generated variants (original excluded) to a plain-text file."""

    def __init__(self, title: str = "Math Problem Variations"):
        self.title = title

    def render(self, variation_set: Any, when: Optional[datetime] = None) -> str:
        when = when or datetime.now()
        generated = variation_set.generated

        lines = [
            self.title,
            f"Generated at: {when.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Total variants: {len(generated)}",
            "=" * 50,
            "",
        ]

        for index, problem in enumerate(generated):
            lines.append(f"[{problem.sequence}]")
            lines.append("")
            lines.append(PROBLEM_HEADING)
            lines.append(problem.problem_text or IMAGE_PLACEHOLDER)
            lines.append("")
            lines.append(SOLUTION_HEADING)
            lines.append(problem.solution_text or IMAGE_PLACEHOLDER)

            if index < len(generated) - 1:
                lines.append("")
                lines.append("-" * 30)
                lines.append("")

        return "\n".join(lines) + "\n"

    def export(self, variation_set: Any, output_path: Union[str, Path]) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.render(variation_set))

        logger.info(f"Exported text to: {output_path}")
        return output_path


# ============================================================================
# Markdown Exporter
# ============================================================================

class MarkdownExporter:
    """Export the original and its variants to Markdown."""

    def __init__(self, title: str = "Math Problem Variations", include_original: bool = True):
        self.title = title
        self.include_original = include_original

    def render(self, variation_set: Any) -> str:
        lines = [f"# {self.title}", ""]

        for problem in variation_set.problems:
            if not problem.is_generated and not self.include_original:
                continue

            lines.append(f"## {problem.sequence}")
            lines.append("")
            lines.append("**Problem**")
            lines.append("")
            lines.append(problem.problem_text or f"*{IMAGE_PLACEHOLDER}*")
            lines.append("")
            lines.append("**Solution**")
            lines.append("")
            lines.append(problem.solution_text or f"*{IMAGE_PLACEHOLDER}*")
            lines.append("")

            variation = problem.problem_variation
            if variation is not None and variation.changed:
                changes = ", ".join(
                    f"{old} → {new}"
                    for old, new in zip(variation.original_numbers, variation.modified_numbers)
                )
                lines.append(f"*Changed numbers: {changes} ({variation.source})*")
                lines.append("")

        return "\n".join(lines)

    def export(self, variation_set: Any, output_path: Union[str, Path]) -> Path:
        """
        Export variants to a Markdown file.

        Args:
            variation_set: VariationSet object
            output_path: Output file path

        Returns:
            Path to the generated Markdown file
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.render(variation_set))

        logger.info(f"Exported Markdown to: {output_path}")
        return output_path


# ============================================================================
# DOCX Exporter
# ============================================================================

class DocxExporter:
    """Export generated variants to DOCX format using python-docx."""

    def __init__(
        self,
        title: str = "Math Problem Variations",
        template_path: Optional[str] = None
    ):
        self.title = title
        self.template_path = template_path

    def _build(self, variation_set: Any):
        try:
            from docx import Document as DocxDocument
        except ImportError:
            raise ImportError(
                "python-docx is required for DOCX export. "
                "Install with: pip install python-docx"
            )

        if self.template_path and Path(self.template_path).exists():
            doc = DocxDocument(self.template_path)
        else:
            doc = DocxDocument()

        doc.add_heading(self.title, level=0)

        generated = variation_set.generated
        for index, problem in enumerate(generated):
            doc.add_heading(problem.sequence, level=1)
            doc.add_heading(PROBLEM_HEADING, level=2)
            doc.add_paragraph(problem.problem_text or IMAGE_PLACEHOLDER)
            doc.add_heading(SOLUTION_HEADING, level=2)
            doc.add_paragraph(problem.solution_text or IMAGE_PLACEHOLDER)

            if index < len(generated) - 1:
                doc.add_page_break()

        return doc

    def render(self, variation_set: Any) -> bytes:
        buffer = io.BytesIO()
        self._build(variation_set).save(buffer)
        return buffer.getvalue()

    def export(self, variation_set: Any, output_path: Union[str, Path]) -> Path:
        """
        Export variants to a DOCX file.

        Args:
            variation_set: VariationSet object
            output_path: Output file path

        Returns:
            Path to the generated DOCX file
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        self._build(variation_set).save(str(output_path))
        logger.info(f"Exported DOCX to: {output_path}")

        return output_path


# ============================================================================
# Multi-format Exporter
# ============================================================================

class VariationExporter:
    """Convenience class for exporting to multiple formats."""

    EXTENSIONS = {"txt": "txt", "markdown": "md", "docx": "docx", "json": "json"}

    def __init__(
        self,
        output_dir: Union[str, Path],
        prefix: str = "generated_problems",
        title: str = "Math Problem Variations"
    ):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.title = title

    def export(self, variation_set: Any, formats: List[str]) -> Dict[str, Path]:
        """
        Export to each requested format.

        Args:
            variation_set: VariationSet object
            formats: Any of "txt", "markdown", "docx", "json"

        Returns:
            Mapping of format to written path; formats that fail are logged
            and left out
        """
        from .io import save_json

        results = {}
        for fmt in formats:
            if fmt not in self.EXTENSIONS:
                logger.warning(f"Unknown export format: {fmt}")
                continue

            path = self.output_dir / default_filename(self.prefix, self.EXTENSIONS[fmt])
            try:
                if fmt == "txt":
                    results[fmt] = TextExporter(self.title).export(variation_set, path)
                elif fmt == "markdown":
                    results[fmt] = MarkdownExporter(self.title).export(variation_set, path)
                elif fmt == "docx":
                    results[fmt] = DocxExporter(self.title).export(variation_set, path)
                elif fmt == "json":
                    results[fmt] = save_json(variation_set.to_dict(), path)
            except (ImportError, OSError) as e:
                logger.error(f"{fmt} export failed: {e}")

        return results
