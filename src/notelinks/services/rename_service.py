"""Title rename detection and propagation into linking notes."""
import logging
from typing import Dict, List, Sequence

from notelinks.models.schema import ChangedEntry, TitleChangeMap
from notelinks.storage.index_store import LinkIndex
from notelinks.storage.note_store import NoteStore
from notelinks.wikilinks import rewrite_links, strip_title_line

logger = logging.getLogger(__name__)


class TitleRenameResolver:
    """Finds changed notes whose title differs from the indexed one."""

    def __init__(self, index: LinkIndex):
        self.index = index

    def find_renames(self, changed: Sequence[ChangedEntry]) -> TitleChangeMap:
        """Return id -> (old, new) title for renamed notes.

        Notes without an indexed title are new, not renamed.
        """
        return self.index.find_title_changes(changed)


class RenamePropagator:
    """Rewrites ``[[old]]`` to ``[[new]]`` in every note linking to a renamed note."""

    def __init__(self, index: LinkIndex, note_store: NoteStore):
        self.index = index
        self.note_store = note_store
        self.rewritten = 0

    def propagate(
        self, changed: Sequence[ChangedEntry], renames: TitleChangeMap
    ) -> List[ChangedEntry]:
        """Push renamed link text to linking notes.

        Returns a copy of *changed* in which the link sets of linking notes
        that are themselves changed carry the new titles. Titles are not
        touched here.
        """
        updated = [
            ChangedEntry(id=entry.id, title=entry.title, links=set(entry.links))
            for entry in changed
        ]
        if not renames:
            return updated
        by_id: Dict[str, ChangedEntry] = {entry.id: entry for entry in updated}

        sources = self.index.incoming_links(renames.keys())
        logger.debug(f"Notes linking to renamed notes: {sorted(sources)}")
        if not sources:
            return updated

        for note in self.note_store.get_by_ids(list(sources)):
            title_map = {}
            for target_id in sources[note.id]:
                change = renames[target_id]
                logger.info(
                    f"Replacing link in {note.title} ({note.id}): "
                    f"{change.old_title} => {change.new_title}"
                )
                title_map[change.old_title] = change.new_title

            body, replaced = rewrite_links(note.body, title_map)

            entry = by_id.get(note.id)
            if entry is not None:
                # Two passes so swapped titles (A->B, B->A) stay correct
                present = [old for old in title_map if old in entry.links]
                entry.links.difference_update(present)
                entry.links.update(title_map[old] for old in present)

            if not replaced:
                logger.debug(f"No link text to rewrite in {note.id}")
                continue

            self.note_store.replace_body(note.id, strip_title_line(body, note.title))
            self.rewritten += 1

        return updated
