#!/usr/bin/env python
"""
Command-line interface for the math problem variation pipeline.

Usage:
    mathvariant --problem-image <image> --solution-image <image> --output <dir> [options]

Examples:
    # Extract text from photos and write 5 variants as text and Markdown
    mathvariant --problem-image p.png --solution-image s.png --output ./out

    # Vary typed text without calling Gemini
    mathvariant --problem-text "철수는 사과 5개와 배 3개를 가지고 있다." \\
        --solution-text "5 + 3 = 8" --output ./out --no-ai --seed 7
"""

import argparse
import logging
import random
import sys
import time

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("mathvariant")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Math problem variation generator - OCR a problem and vary its numbers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  OCR both images and export every format:
    mathvariant --problem-image p.png --solution-image s.png -o ./out --format txt markdown docx json

  Typed input, local variation only, reproducible:
    mathvariant --problem-text "..." --solution-text "..." -o ./out --no-ai --seed 42
        """
    )

    problem = parser.add_mutually_exclusive_group(required=True)
    problem.add_argument("--problem-image", help="Image of the problem")
    problem.add_argument("--problem-text", help="Problem text")

    solution = parser.add_mutually_exclusive_group(required=True)
    solution.add_argument("--solution-image", help="Image of the solution")
    solution.add_argument("--solution-text", help="Solution text")

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated files"
    )

    parser.add_argument(
        "--count", "-n",
        type=int,
        default=5,
        help="Number of variants to generate, 1-10 (default: 5)"
    )

    parser.add_argument(
        "--format", "-f",
        nargs="+",
        default=["txt", "markdown"],
        choices=["txt", "markdown", "docx", "json", "all"],
        help="Output format(s) (default: txt markdown)"
    )

    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip Gemini and use local number variation only"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for local number variation"
    )

    parser.add_argument(
        "--tesseract-cmd",
        default=None,
        help="Path to the tesseract executable"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Re-raise unexpected errors with a traceback (also MATHVARIANT_DEBUG=true)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def check_dependencies(need_ocr: bool) -> bool:
    """Check if required dependencies are available."""
    missing = []

    try:
        import cv2  # noqa: F401
    except ImportError:
        missing.append("opencv-python")

    try:
        import numpy  # noqa: F401
    except ImportError:
        missing.append("numpy")

    if need_ocr:
        try:
            import pytesseract
            try:
                pytesseract.get_tesseract_version()
            except Exception:
                missing.append("tesseract-ocr (system package)")
        except ImportError:
            missing.append("pytesseract")

    if missing:
        logger.error("Missing required dependencies:")
        for dep in missing:
            logger.error(f"  - {dep}")
        logger.error("\nInstall with: pip install -e .")
        return False

    return True


def run_pipeline(args) -> int:
    """Run OCR (if needed), variation and export."""
    from .config import get_config
    from .utils.assembler import ProblemAssembler, SingleProblem
    from .utils.export import VariationExporter
    from .utils.io import ensure_dir, load_raw_image
    from .utils.outcomes import MathVariantError

    start_time = time.time()

    config = get_config()
    if args.no_ai:
        config.variation.use_ai = False
    if args.tesseract_cmd:
        config.ocr.tesseract_cmd = args.tesseract_cmd

    output_dir = ensure_dir(args.output)

    try:
        problem = SingleProblem(
            problem_text=args.problem_text or "",
            solution_text=args.solution_text or "",
            problem_image=load_raw_image(args.problem_image) if args.problem_image else None,
            solution_image=load_raw_image(args.solution_image) if args.solution_image else None,
        )
    except (FileNotFoundError, MathVariantError) as e:
        logger.error(str(e))
        return 1

    rng = random.Random(args.seed) if args.seed is not None else None
    assembler = ProblemAssembler(config=config, rng=rng)

    extraction = assembler.fill_from_images(problem)
    failed = [r for r in extraction.values() if not r.ok]
    for result in failed:
        logger.error(f"{result.label}: {result.message}")
    if failed or not problem.is_complete:
        return 2

    variation_set = assembler.generate(problem, args.count)

    formats = args.format
    if "all" in formats:
        formats = ["txt", "markdown", "docx", "json"]

    exporter = VariationExporter(
        output_dir,
        prefix=config.export.filename_prefix,
        title=config.export.title
    )
    export_results = exporter.export(variation_set, formats)
    for fmt, path in export_results.items():
        logger.info(f"Exported {fmt}: {path}")

    elapsed = time.time() - start_time

    if not args.quiet:
        print("\n" + "=" * 60)
        print("VARIATION COMPLETE")
        print("=" * 60)
        for result in extraction.values():
            print(f"OCR {result.label}: confidence {result.confidence:.1f} "
                  f"({result.processing_time_seconds:.2f}s)")
        print(f"Variants generated: {len(variation_set.generated)}")
        print(f"Output: {output_dir}")
        print(f"Processing time: {elapsed:.2f}s")
        print("=" * 60)

    return 0


def main():
    """Main entry point."""
    from .config import get_config

    parser = setup_argparser()
    args = parser.parse_args()
    debug = args.debug or get_config().debug_mode

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    need_ocr = bool(args.problem_image or args.solution_image)
    if not check_dependencies(need_ocr):
        sys.exit(1)

    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
