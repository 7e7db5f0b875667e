from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from tqdm import tqdm

from .config import load_config
from .inventory import InventoryError, scan_directory
from .logging_ import setup_logging
from .manifest import ManifestError, load_catalog, resolve
from .models import ExpectedFile
from .observability import ProgressListener, VerifyProgress
from .problem import ProblemReport
from .remediation import STATUS_DECLINED, STATUS_NOT_NEEDED, remediate
from .verifier import Verifier

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PROBLEMS = 2


class BarProgress(ProgressListener):
    def __init__(self, bar: tqdm, stats: VerifyProgress) -> None:
        self._bar = bar
        self._stats = stats
        self._lock = threading.Lock()
        self._read: Dict[str, int] = {}

    def file_started(self, expected: ExpectedFile) -> None:
        self._stats.file_started(expected)
        self._bar.set_postfix_str(expected.filename, refresh=False)

    def bytes_read(self, expected: ExpectedFile, count: int) -> None:
        self._stats.bytes_read(expected, count)
        with self._lock:
            self._read[expected.filename] = self._read.get(expected.filename, 0) + count
        self._bar.update(count)

    def file_finished(self, expected: ExpectedFile, problem) -> None:
        self._stats.file_finished(expected, problem)
        with self._lock:
            read = self._read.pop(expected.filename, 0)
        # Bytes of files that were skipped or only partly streamed.
        remaining = expected.expected_size - read
        if remaining > 0:
            self._bar.update(remaining)
        self._stats.maybe_log(logger)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Check downloaded map archives and optionally delete corrupt files "
            "so they can be downloaded again."
        )
    )
    parser.add_argument("dir", help="directory where the downloaded maps are stored")
    parser.add_argument(
        "-f",
        "--force-delete",
        action="store_true",
        help="delete corrupt files without confirmation",
    )
    parser.add_argument("--config", default=None, help="path to config file")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="fail when the sales region names a country missing from the catalog",
    )
    parser.add_argument("--no-progress", action="store_true", help="disable the progress bar")
    return parser.parse_args(argv)


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Could not load config: {exc}", file=sys.stderr)
        return EXIT_FATAL

    try:
        setup_logging(
            config.log_level,
            log_dir=config.logging.dir,
            log_file=config.logging.file_name,
            max_mb=config.logging.max_mb,
            backup_count=config.logging.backup_count,
            use_json=config.logging.json,
            to_console=config.logging.to_console,
        )
    except OSError as exc:
        print(f"Could not set up logging: {exc}", file=sys.stderr)
        return EXIT_FATAL

    path = Path(args.dir)
    print(f"Using path: {path}")

    manifest_path = path / config.manifest_name
    try:
        resolution = resolve(load_catalog(manifest_path), strict=args.strict or config.strict_regions)
        files = resolution.files
    except ManifestError as exc:
        print(f"Reading {config.manifest_name} failed: {exc}", file=sys.stderr)
        return EXIT_FATAL

    for country_id in resolution.missing_ids:
        print(
            f"WARNING: No info found for country with id: {country_id}\n"
            "(country will be skipped in integrity checks)",
            file=sys.stderr,
        )

    total_bytes = sum(item.expected_size for item in files)
    print(
        f"Found maps for region: {resolution.region_name} "
        f"({len(resolution.countries)} countries in {len(files)} files)"
    )

    try:
        inventory = scan_directory(path)
    except InventoryError as exc:
        print(f"Reading dir entries failed: {exc}", file=sys.stderr)
        return EXIT_FATAL
    print(f"Found {len(inventory)} relevant files in path")

    print("Performing integrity check...")
    stats = VerifyProgress(
        total_files=len(files),
        total_bytes=total_bytes,
        log_interval_sec=config.observability.log_interval_sec,
    )
    with tqdm(
        total=total_bytes,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        disable=args.no_progress,
    ) as bar:
        verifier = Verifier(
            inventory,
            workers=config.verify.workers,
            buffer_size=config.verify.buffer_size,
            listener=BarProgress(bar, stats),
        )
        problems = verifier.run(files)

    report = ProblemReport(problems, summary_width=config.report.missing_summary_width)
    logger.info(report.summary_json())
    if report.ok:
        print("All files are OK")
        return EXIT_OK

    print(f"Found {len(report)} problems:")
    summary = report.missing_summary()
    if summary:
        print(summary)
    for problem in report.other_problems():
        print(f"  {problem}")

    outcome = remediate(
        inventory,
        report.corrupt_filenames(),
        force=args.force_delete,
        confirm=_confirm,
    )
    if outcome.status == STATUS_NOT_NEEDED:
        if report.missing():
            print("No corrupt files to delete. Run the downloader again to fetch missing files.")
        else:
            print("No corrupt files to delete.")
    elif outcome.status == STATUS_DECLINED:
        print("Corrupt files were kept.")
    else:
        print(f"Deleted {len(outcome.deleted)} corrupt files. Run the downloader again to fetch them.")
        for name, cause in outcome.errors:
            print(f"Could not delete {name}: {cause}", file=sys.stderr)
    return EXIT_PROBLEMS


def _confirm(candidates: List[str]) -> bool:
    print("Corrupt files:")
    for name in candidates:
        print(f"  {name}")
    try:
        answer = input(f"Delete {len(candidates)} corrupt files? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
