#!/usr/bin/env python
"""Entry point: one link maintenance run, meant to be started by a timer."""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from notelinks import __version__
from notelinks.config import STORE_KINDS, LinkMaintainerConfig, config
from notelinks.exceptions import LinkMaintainerError
from notelinks.observability import configure_logging, metrics
from notelinks.services.maintainer import LinkMaintainer
from notelinks.storage.bear_store import BearNoteStore
from notelinks.storage.folder_store import FolderNoteStore
from notelinks.storage.index_store import LinkIndexStore
from notelinks.storage.note_store import NoteStore


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments. All of them are optional."""
    parser = argparse.ArgumentParser(
        description="Keep [[wiki links]] between notes valid across renames"
    )
    parser.add_argument(
        "--database-path",
        help="SQLite file holding the link index",
        type=str,
        default=os.environ.get("NOTELINKS_DATABASE_PATH")
    )
    parser.add_argument(
        "--store",
        help="Note store adapter",
        choices=STORE_KINDS,
        default=os.environ.get("NOTELINKS_STORE")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


def update_config(args) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.store:
        config.store = args.store


def build_note_store(settings: LinkMaintainerConfig) -> NoteStore:
    """Open the note store adapter selected in *settings*."""
    if settings.store == "folder":
        return FolderNoteStore(settings.get_absolute_path(settings.folder_path))
    xcall = settings.get_absolute_path(settings.xcall_path) if settings.xcall_path else None
    return BearNoteStore(settings.get_absolute_path(settings.bear_database_path), xcall)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one maintenance pass and exit."""
    args = parse_args(argv)
    update_config(args)

    # Console + persistent file logging with rotation
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)

    try:
        logger.debug(f"Using link index: {config.get_absolute_path(config.database_path)}")
        note_store = build_note_store(config)
    except LinkMaintainerError as e:
        logger.error(f"Cannot open note store: {e}")
        return 1

    try:
        index_store = LinkIndexStore.open()
    except LinkMaintainerError as e:
        logger.error(f"Cannot open link index: {e}")
        note_store.close()
        return 1

    try:
        summary = LinkMaintainer(note_store, index_store).run()
    except LinkMaintainerError as e:
        logger.error(f"Link maintenance failed: {e}")
        return 1
    except Exception:
        logger.exception("Unexpected error during link maintenance")
        return 1
    finally:
        index_store.dispose()
        note_store.close()
        logger.debug(f"Stage timings: {metrics.get_metrics()}")

    logger.info(f"Done: {summary}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
