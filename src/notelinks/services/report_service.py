"""The single report note listing dead and ambiguous links."""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from notelinks.config import config
from notelinks.models.schema import BrokenLink, LinkResolution
from notelinks.storage.index_store import LinkIndex
from notelinks.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


class BrokenLinkReporter:
    """Creates, updates or trashes the report note.

    Transitions: no report + broken links -> create; report + broken
    links -> update in place; report + none -> trash; none + none -> no-op.
    """

    def __init__(
        self,
        index: LinkIndex,
        note_store: NoteStore,
        clock: Callable[[], float],
        title: Optional[str] = None,
    ):
        self.index = index
        self.note_store = note_store
        self.clock = clock
        self.title = title or config.report_title

    def render(self, broken: List[BrokenLink], source_titles: Dict[str, str]) -> str:
        """Render one list item per broken link plus a last-updated line."""
        store = self.note_store
        ordered = sorted(
            broken,
            key=lambda link: (source_titles.get(link.from_id, ""), link.from_id, link.link_title),
        )
        lines = []
        for link in ordered:
            source = f"[{source_titles.get(link.from_id, link.from_id)}]({store.note_url(link.from_id)})"
            if link.is_ambiguous:
                lines.append(f'* Ambiguous link in {source} to "{link.link_title}". Could be:')
                lines.extend(
                    f"  * [{link.link_title}]({store.note_url(candidate)})"
                    for candidate in link.candidates
                )
            else:
                lines.append(
                    f'* Dead link in {source} to "{link.link_title}" '
                    f"([create]({store.create_url(link.link_title)}))"
                )
        updated = datetime.fromtimestamp(self.clock()).strftime("%Y-%m-%d %H:%M:%S")
        return "\n".join(lines) + f"\n\nLast updated {updated}"

    def publish(
        self, resolution: LinkResolution, report_note_id: Optional[str]
    ) -> Optional[str]:
        """Bring the report note in line with *resolution*.

        Returns:
            The id of the report note, or None when there is none.
        """
        broken = resolution.broken()
        if not broken:
            if report_note_id:
                logger.info(f"No broken links left, trashing report {report_note_id}")
                self.note_store.trash_note(report_note_id)
                self.index.forget_notes([report_note_id])
            return None

        source_titles = self.index.titles_for({link.from_id for link in broken})
        body = self.render(broken, source_titles)
        if report_note_id:
            logger.info(f"Updating report {report_note_id}: {len(broken)} broken links")
            self.note_store.replace_body(report_note_id, body)
            return report_note_id

        logger.info(f"Creating report note: {len(broken)} broken links")
        return self.note_store.create_note(self.title, body, pinned=True)
