"""One maintenance run: detect changes, propagate renames, reindex, report."""
import logging
import time
from typing import Callable, Optional

from notelinks.models.schema import RunMetadata, RunSummary
from notelinks.observability import timed_operation
from notelinks.services.change_detector import ChangeDetector
from notelinks.services.link_indexer import LinkIndexer
from notelinks.services.rename_service import RenamePropagator, TitleRenameResolver
from notelinks.services.report_service import BrokenLinkReporter
from notelinks.storage.index_store import LinkIndexStore
from notelinks.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


class LinkMaintainer:
    """Runs the pipeline once against a note store and the link index.

    Everything written to the index, the checkpoint included, commits
    in one transaction at the end; a failure anywhere leaves the index
    at the previous run so the next run reprocesses the same window.
    """

    def __init__(
        self,
        note_store: NoteStore,
        index_store: LinkIndexStore,
        clock: Callable[[], float] = time.time,
        report_title: Optional[str] = None,
    ):
        self.note_store = note_store
        self.index_store = index_store
        self.clock = clock
        self.report_title = report_title
        self.detector = ChangeDetector(note_store)

    def run(self) -> RunSummary:
        """Perform one full run and return what it did."""
        summary = RunSummary()
        with timed_operation("link_maintenance_run") as run_op, \
                self.index_store.begin() as index:
            metadata = index.get_metadata()
            summary.report_note_id = metadata.report_note_id
            latest_note_time = metadata.latest_note_time

            if self.detector.has_changed(metadata.last_store_check_time):
                logger.info("Note store has changed. Scanning for broken links.")
                summary.store_changed = True

                with timed_operation("fetch_changed") as op:
                    changed = self.detector.fetch_changed(metadata.latest_note_time)
                    op["changed"] = summary.changed = len(changed)
                logger.info(f"{len(changed)} changed notes")

                with timed_operation("forget_trashed") as op:
                    trashed = self.detector.fetch_trashed(metadata.latest_note_time)
                    index.forget_notes(trashed)
                    op["trashed"] = summary.trashed = len(trashed)
                if trashed:
                    logger.info(f"{len(trashed)} trashed notes removed from the index")

                with timed_operation("find_renames") as op:
                    renames = TitleRenameResolver(index).find_renames(changed)
                    op["renamed"] = summary.renamed = len(renames)

                if renames:
                    logger.info(f"{len(renames)} renamed notes")
                    with timed_operation("propagate_renames") as op:
                        propagator = RenamePropagator(index, self.note_store)
                        changed = propagator.propagate(changed, renames)
                        op["rewritten"] = summary.rewritten = propagator.rewritten

                with timed_operation("record_titles"):
                    index.record_titles(changed)

                with timed_operation("reindex_links") as op:
                    resolution = LinkIndexer(index).reindex(changed)
                    op["links"] = summary.links_indexed = len(resolution)
                summary.ambiguous = resolution.ambiguous_count
                summary.dead = len(resolution.broken()) - summary.ambiguous
                logger.info(
                    f"{summary.links_indexed} links indexed, "
                    f"{summary.dead} dead, {summary.ambiguous} ambiguous"
                )

                with timed_operation("publish_report"):
                    reporter = BrokenLinkReporter(
                        index, self.note_store, self.clock, self.report_title
                    )
                    summary.report_note_id = reporter.publish(
                        resolution, metadata.report_note_id
                    )

                latest_note_time = self.note_store.latest_modification()
            else:
                logger.debug("Nothing to do.")

            index.write_metadata(
                RunMetadata(
                    latest_note_time=latest_note_time,
                    last_store_check_time=self.clock(),
                    report_note_id=summary.report_note_id,
                )
            )
            run_op["store_changed"] = summary.store_changed
        return summary
