#!/usr/bin/env python3
"""
optimize_document.py - Shrink office documents and PDFs by recompressing images.

Usage:
    python optimize_document.py slides.pptx
    python optimize_document.py report.pdf -o small.pdf -q 50
    python optimize_document.py *.hwpx *.pdf --output-dir ./compressed/
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path when running as script
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent))

from doc_optimizer import (
    DocumentArtifact,
    OptimizeSettings,
    OptimizerError,
    optimize_document,
)
from doc_optimizer.results import OUTPUT_PREFIX
from doc_optimizer.settings import DEFAULT_QUALITY


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Recompress embedded images in HWPX/PPTX/DOCX and PDF files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python optimize_document.py deck.pptx
  python optimize_document.py scan.pdf -o compressed.pdf -q 50
  python optimize_document.py *.hwpx --output-dir ./out/ --workers 0

Images are only replaced when the recompressed version is smaller.
PNG entries and PDF images with a soft mask are left alone unless
--include-alpha is given.
"""
    )

    parser.add_argument(
        "input",
        nargs="+",
        type=Path,
        help="Input document(s)"
    )

    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "-o", "--output",
        type=Path,
        help="Output file (single input only)"
    )
    output.add_argument(
        "--output-dir",
        type=Path,
        help="Output directory (for multiple files)"
    )

    parser.add_argument(
        "-q", "--quality",
        type=int,
        default=DEFAULT_QUALITY,
        help=f"Image quality 10-100 (default: {DEFAULT_QUALITY})"
    )

    parser.add_argument(
        "--include-alpha",
        action="store_true",
        help="Also recompress images that may carry transparency"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Parallel recompression workers (0 = auto, default: 1)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    return parser.parse_args(argv)


def print_progress(percent: int):
    """Print progress bar."""
    width = 40
    filled = int(width * percent / 100)
    bar = "=" * filled + "-" * (width - filled)
    print(f"\r[{bar}] {percent}%", end="", file=sys.stderr)
    if percent >= 100:
        print(file=sys.stderr)


def optimize_file(input_path: Path, output_path: Path, settings: OptimizeSettings) -> bool:
    """Optimize one file and write the result. Returns True on success."""
    try:
        artifact = DocumentArtifact.from_path(input_path)
        result = optimize_document(artifact, settings, progress_callback=print_progress)
        output_path.write_bytes(result.data)
    except (OptimizerError, OSError) as e:
        print(f"\nError: {input_path.name}: {e}", file=sys.stderr)
        return False

    print(f"\n{result.summary()}")
    print(f"Written: {output_path}")
    return True


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = OptimizeSettings(
            quality=args.quality,
            skip_alpha=not args.include_alpha,
            max_workers=args.workers,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    # Validate inputs
    valid_inputs = []
    for p in args.input:
        if not p.is_file():
            print(f"Error: File not found: {p}", file=sys.stderr)
            continue
        valid_inputs.append(p)

    if not valid_inputs:
        print("Error: No valid input files", file=sys.stderr)
        sys.exit(1)

    if len(valid_inputs) > 1 and args.output:
        print("Error: Use --output-dir for multiple files", file=sys.stderr)
        sys.exit(1)

    if args.output_dir:
        args.output_dir.mkdir(parents=True, exist_ok=True)

    successes = 0
    for i, input_path in enumerate(valid_inputs):
        if args.output:
            output_path = args.output
        else:
            output_dir = args.output_dir or input_path.parent
            output_path = output_dir / f"{OUTPUT_PREFIX}{input_path.name}"

        if len(valid_inputs) > 1:
            print(f"\n[{i+1}/{len(valid_inputs)}] {input_path.name}")

        if optimize_file(input_path, output_path, settings):
            successes += 1

    if len(valid_inputs) > 1:
        print(f"\n{'='*50}")
        print(f"Batch complete: {successes}/{len(valid_inputs)} files")

    sys.exit(0 if successes == len(valid_inputs) else 1)


if __name__ == "__main__":
    main()
