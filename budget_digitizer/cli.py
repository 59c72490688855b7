"""Command-line interface for digitizing budget documents.

Provides subcommands for extracting a single budget to JSON or CSV and
for processing a folder of budgets into one JSON file per document.
"""

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from budget_digitizer.errors import BudgetUploadError
from budget_digitizer.parsing.structured_budget import structured_budget_to_csv
from budget_digitizer.pipeline.progress import UploadProgress
from budget_digitizer.pipeline.upload import (
    BudgetUploadResult,
    UploadOptions,
    UploadOrchestrator,
    UploadTask,
)
from budget_digitizer.utils.config import load_config
from budget_digitizer.utils.files import sanitize_file_name
from budget_digitizer.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.pdf", "*.png", "*.jpg", "*.jpeg")


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported budget files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _load_task(file_path: Path) -> UploadTask:
    data = file_path.read_bytes()
    content_type, _ = mimetypes.guess_type(file_path.name)
    return UploadTask(
        data=data, file_name=file_path.name, content_type=content_type, size=len(data)
    )


def _print_progress(event: UploadProgress) -> None:
    page = f" {event.page}/{event.total_pages}" if event.total_pages else ""
    print(f"[{event.stage}{page}] {event.progress:.0%} {event.message or ''}", file=sys.stderr)


async def _extract(
    orchestrator: UploadOrchestrator, file_path: Path, dpi: int | None, verbose: bool
) -> BudgetUploadResult:
    options = UploadOptions(dpi=dpi, on_progress=_print_progress if verbose else None)
    return await orchestrator.process(_load_task(file_path), options)


def extract_single(
    file_path: Path, dpi: int | None = None, verbose: bool = False
) -> BudgetUploadResult:
    """Digitize a single budget document.

    Args:
        file_path: Path to the PDF or image.
        dpi: Rasterization resolution for OCR'd pages.
        verbose: Whether to print progress to stderr.

    Returns:
        The upload result.
    """
    config = load_config()

    async def run() -> BudgetUploadResult:
        orchestrator = UploadOrchestrator(config)
        try:
            return await _extract(orchestrator, file_path, dpi, verbose)
        finally:
            await orchestrator.close()

    return asyncio.run(run())


def process_folder(
    input_dir: Path, output_dir: Path, dpi: int | None = None, verbose: bool = False
) -> dict[str, int]:
    """Digitize every budget in a folder, writing one JSON file per input.

    Output names are the sanitized input names with a ``.json`` suffix.

    Args:
        input_dir: Directory containing budget files.
        output_dir: Directory receiving the JSON results.
        dpi: Rasterization resolution for OCR'd pages.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))
    config = load_config()
    output_dir.mkdir(parents=True, exist_ok=True)

    async def run() -> dict[str, int]:
        orchestrator = UploadOrchestrator(config)
        successful = failed = 0
        try:
            for i, file_path in enumerate(files, 1):
                if verbose:
                    print(f"Processing [{i}/{len(files)}]: {file_path.name}")
                try:
                    result = await _extract(orchestrator, file_path, dpi, verbose)
                except BudgetUploadError as exc:
                    logger.error("Failed to process %s: %s", file_path.name, exc.message)
                    failed += 1
                    continue
                out_name = sanitize_file_name(f"{file_path.stem}.json")
                _write_json(result.to_dict(), output_dir / out_name)
                successful += 1
        finally:
            await orchestrator.close()
        return {"total": len(files), "successful": successful, "failed": failed}

    summary = asyncio.run(run())
    _print_summary(summary, output_dir)
    return summary


def _write_json(payload: dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _print_summary(summary: dict[str, int], output_dir: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed documents.
        output_dir: Directory holding the results.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_dir}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Budget Document Digitizer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Process a folder of budgets")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with budgets")
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results"),
        help="Output directory for JSON files (default: results)",
    )
    batch_parser.add_argument("--dpi", type=int, help="OCR rasterization DPI")
    batch_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    single_parser = subparsers.add_parser("extract", help="Process a single budget")
    single_parser.add_argument("file", type=Path, help="Budget file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output file")
    single_parser.add_argument("--dpi", type=int, help="OCR rasterization DPI")
    single_parser.add_argument(
        "--csv", action="store_true", help="Write the semicolon CSV export instead of JSON"
    )
    single_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    setup_logging(load_config().log_level)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, args.dpi, args.verbose)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(args.file, args.dpi, args.verbose)
        except BudgetUploadError as exc:
            print(f"Error ({exc.code}): {exc.message}", file=sys.stderr)
            sys.exit(1)
        if args.csv:
            output_str = structured_budget_to_csv(result.structured)
        else:
            output_str = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str, encoding="utf-8")
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
