"""Recomputation of the links table for changed and previously broken links."""
import logging
from typing import List, Sequence, Tuple

from notelinks.models.schema import ChangedEntry, LinkResolution
from notelinks.storage.index_store import LinkIndex

logger = logging.getLogger(__name__)


class LinkIndexer:
    """Resolves link titles to note ids and replaces the affected link rows.

    The titles index must already hold this run's titles (renames
    included) when :meth:`reindex` runs.
    """

    def __init__(self, index: LinkIndex):
        self.index = index

    def links_to_recheck(
        self, changed: Sequence[ChangedEntry]
    ) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
        """Return (previously broken pairs, pairs from changed notes).

        A broken link from an untouched note may resolve now that its
        target was created or renamed, so it is checked again.
        """
        changed_ids = {entry.id for entry in changed}
        previously_broken = [
            (from_id, link_title)
            for from_id, link_title in self.index.unresolved_links()
            if from_id not in changed_ids
        ]
        changed_links = [
            (entry.id, link_title)
            for entry in changed
            for link_title in sorted(entry.links)
        ]
        return previously_broken, changed_links

    def reindex(self, changed: Sequence[ChangedEntry]) -> LinkResolution:
        """Replace link rows of changed notes and re-resolve old broken links.

        Returns:
            The resolution of every checked link, for reporting.
        """
        previously_broken, changed_links = self.links_to_recheck(changed)
        if previously_broken:
            logger.debug(f"Rechecking {len(previously_broken)} previously broken links")
            self.index.delete_links_by_pair(previously_broken)
        else:
            logger.debug("No previously broken links")

        self.index.delete_links_from([entry.id for entry in changed])

        resolution = LinkResolution()
        self.index.resolve_titles(previously_broken + changed_links, resolution.add)

        if resolution.ambiguous:
            logger.warning(f"Found ambiguous links: {resolution.ambiguous}")

        self.index.insert_links(resolution.records())
        return resolution
