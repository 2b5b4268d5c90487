"""Command-line interface for the sensitivity scan."""

import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from ..library.photos_library import (
    count_media_files,
    get_default_library,
    validate_library,
)
from ..library.source import DirectoryAssetSource
from .library import MediaLibrary


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Scan a media library for sensitive images"
    )
    parser.add_argument(
        "directory",
        type=Path,
        nargs="?",
        help="Library directory (default: $PHOTOTRIAGE_LIBRARY or ~/Pictures/PhotoTriage)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Where the triage database and settings live (default: $PHOTOTRIAGE_DATA_DIR or .cache)",
    )
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Scan again even if a previous scan completed",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Sensitivity threshold between 0.5 and 1.0 (saved to settings)",
    )
    parser.add_argument(
        "--backend",
        type=str,
        choices=["local", "remote", "none"],
        default=None,
        help="Classifier backend (saved to settings)",
    )
    parser.add_argument(
        "--counts",
        action="store_true",
        help="Print per-category counts and exit without scanning",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    directory = args.directory or get_default_library()
    if directory is None:
        logger.error("No library directory given and no default library found")
        sys.exit(1)
    if not validate_library(directory):
        sys.exit(1)

    logger.info(f"Library: {directory} ({count_media_files(directory)} media files)")

    source = DirectoryAssetSource(directory)
    library = MediaLibrary.open(source, data_dir=args.data_dir)

    changes = {}
    if args.threshold is not None:
        changes["sensitivity_threshold"] = args.threshold
    if args.backend is not None:
        changes["classifier_backend"] = args.backend
    if changes:
        try:
            library.update_settings(**changes)
        except ValueError as e:
            logger.error(f"Invalid settings: {e}")
            library.close()
            sys.exit(1)
        if "classifier_backend" in changes:
            # The gate is built from settings, so reopen with the new backend
            library.close()
            library = MediaLibrary.open(source, data_dir=args.data_dir)

    try:
        if args.counts:
            for category, total in library.get_counts().to_dict().items():
                print(f"{category:12s} {total}")
            return

        state = library.scan_state()
        if state.completed and not args.restart:
            logger.info(f"Scan already completed (version {state.version}); use --restart to scan again")
            return

        if args.restart:
            library.scanner.restart()
        else:
            library.scanner.start_if_needed()

        with tqdm(total=100, desc="Scanning for sensitive content", unit="%") as pbar:
            def on_progress(value: float):
                pbar.n = int(value * 100)
                pbar.refresh()

            unsubscribe = library.signals.scan_progress.subscribe(on_progress)
            try:
                while not library.scanner.wait(timeout=0.5):
                    pass
            except KeyboardInterrupt:
                logger.info("Stopping scan...")
                library.stop_scan()
                library.scanner.wait()
            finally:
                unsubscribe()

        report = library.scanner.last_report
        if report is not None:
            logger.info(
                f"Examined {report.examined}/{report.total}, classified {report.classified}, "
                f"flagged {report.flagged}, decode failures {report.decode_failures}"
            )
        logger.info(f"Flagged total: {library.get_counts().flagged}")
    finally:
        library.close()


if __name__ == "__main__":
    main()
