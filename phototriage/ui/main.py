"""Command-line interface for the triage server."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from ..engine.library import MediaLibrary
from ..library.photos_library import get_default_library, validate_library
from ..library.source import DirectoryAssetSource
from .app import app, load_library


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
        description="Start the photo triage server"
    )
    parser.add_argument(
        "--library-dir",
        type=Path,
        default=None,
        help="Library directory (default: $PHOTOTRIAGE_LIBRARY or ~/Pictures/PhotoTriage)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Where the triage database and settings live",
    )
    parser.add_argument(
        "--trash-dir",
        type=Path,
        default=None,
        help="Move deleted files here instead of removing them",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port to bind to",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    library_dir = args.library_dir or get_default_library()
    if library_dir is None or not validate_library(library_dir):
        logger.error("A readable library directory is required (--library-dir)")
        sys.exit(1)

    source = DirectoryAssetSource(library_dir, trash_dir=args.trash_dir)
    library = MediaLibrary.open(source, data_dir=args.data_dir)
    load_library(library)

    # Starts the background scan unless a previous one completed
    library.bind()

    logger.info(f"Starting server at http://{args.host}:{args.port}")
    logger.info("Press Ctrl+C to stop")

    try:
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_level="info" if args.verbose else "warning",
        )
    finally:
        library.close()


if __name__ == "__main__":
    main()
