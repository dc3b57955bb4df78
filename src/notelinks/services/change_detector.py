"""Detection of notes changed since the last checkpoint."""
import logging
from typing import List, Optional

from notelinks.models.schema import ChangedEntry
from notelinks.storage.note_store import NoteStore
from notelinks.wikilinks import extract_link_titles

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Asks the note store what changed and extracts outgoing link titles."""

    def __init__(self, note_store: NoteStore):
        self.note_store = note_store

    def has_changed(self, last_check_time: Optional[float]) -> bool:
        """Whether the store was modified after *last_check_time*.

        A missing check time (first run) always counts as changed.
        """
        if last_check_time is None:
            return True
        return self.note_store.get_modification_time() > last_check_time

    def fetch_changed(self, since: Optional[float]) -> List[ChangedEntry]:
        """Return every live note modified at or after *since*, with its links."""
        notes = self.note_store.list_changed(since)
        logger.debug(f"{len(notes)} notes modified since {since}")
        return [
            ChangedEntry(id=note.id, title=note.title, links=extract_link_titles(note.body))
            for note in notes
        ]

    def fetch_trashed(self, since: Optional[float]) -> List[str]:
        """Return ids of notes trashed at or after *since*."""
        trashed = self.note_store.list_trashed(since)
        logger.debug(f"{len(trashed)} notes trashed since {since}")
        return trashed
