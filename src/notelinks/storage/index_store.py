"""Repository for the persisted titles/links/meta index.

All statements of one maintenance run share a single session, so later
queries see earlier writes and the run commits (or rolls back) as one
transaction.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notelinks.exceptions import ErrorCode, QueryError, StoreUnavailableError
from notelinks.models.db_models import META_ROW_ID, get_session_factory, init_db
from notelinks.models.schema import (ChangedEntry, LinkRecord, RunMetadata,
                                     TitleChange, TitleChangeMap)
from notelinks.storage.batch import run_batched

logger = logging.getLogger(__name__)


class LinkIndexStore:
    """Owns the index database engine and hands out per-run transactions."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = get_session_factory(engine)

    @classmethod
    def open(cls, db_url: Optional[str] = None) -> "LinkIndexStore":
        """Open (and if needed create) the index database.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        try:
            return cls(init_db(db_url))
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(
                "Cannot open link index database",
                path=db_url,
                code=ErrorCode.INDEX_STORE_UNAVAILABLE,
                original_error=e,
            ) from e

    @contextmanager
    def begin(self) -> Iterator["LinkIndex"]:
        """Yield a LinkIndex bound to one transaction.

        Commits when the block exits normally, rolls back otherwise.
        """
        with self.session_factory() as session:
            try:
                yield LinkIndex(session)
                session.commit()
            except BaseException:
                session.rollback()
                raise

    def dispose(self) -> None:
        self.engine.dispose()


class LinkIndex:
    """Titles, links and meta operations inside one transaction."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    def _fetch(self, sql: str, params: Dict) -> List[Tuple]:
        try:
            return [tuple(row) for row in self.session.execute(text(sql), params)]
        except SQLAlchemyError as e:
            raise QueryError("Index query failed", query=sql, original_error=e) from e

    def _run(self, sql: str, params: Dict) -> None:
        try:
            self.session.execute(text(sql), params)
        except SQLAlchemyError as e:
            raise QueryError("Index statement failed", query=sql, original_error=e) from e

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------

    def get_metadata(self) -> RunMetadata:
        """Read the run checkpoint."""
        rows = self._fetch(
            "SELECT latest_note_time, last_store_check_time, report_note_id "
            "FROM meta WHERE id = :id",
            {"id": META_ROW_ID},
        )
        if not rows:
            return RunMetadata()
        latest, checked, report_id = rows[0]
        return RunMetadata(
            latest_note_time=latest,
            last_store_check_time=checked,
            report_note_id=report_id,
        )

    def write_metadata(self, metadata: RunMetadata) -> None:
        """Overwrite the run checkpoint."""
        self._run(
            "UPDATE meta SET latest_note_time = :latest, "
            "last_store_check_time = :checked, report_note_id = :report "
            "WHERE id = :id",
            {
                "latest": metadata.latest_note_time,
                "checked": metadata.last_store_check_time,
                "report": metadata.report_note_id,
                "id": META_ROW_ID,
            },
        )

    # ------------------------------------------------------------------
    # Titles
    # ------------------------------------------------------------------

    def find_title_changes(self, entries: Sequence[ChangedEntry]) -> TitleChangeMap:
        """Join current (id, title) pairs against the stored titles.

        Only ids with a stored title that differs are returned.
        """
        changes: TitleChangeMap = {}

        def collect(rows: List[Tuple]) -> None:
            for note_id, new_title, old_title in rows:
                changes[note_id] = TitleChange(old_title=old_title, new_title=new_title)

        run_batched(
            self._fetch,
            lambda placeholders: (
                f"WITH changed(id, title) AS (VALUES {placeholders}) "
                "SELECT changed.id, changed.title, titles.title FROM changed "
                "INNER JOIN titles ON (changed.id = titles.id) "
                "WHERE changed.title != titles.title"
            ),
            [(entry.id, entry.title) for entry in entries],
            collect,
            width=2,
        )
        return changes

    def record_titles(self, entries: Sequence[ChangedEntry]) -> None:
        """Upsert the current title of every entry."""
        run_batched(
            self._run,
            lambda placeholders: f"REPLACE INTO titles (id, title) VALUES {placeholders}",
            [(entry.id, entry.title) for entry in entries],
            width=2,
        )

    def titles_for(self, note_ids: Iterable[str]) -> Dict[str, str]:
        """Map each known id to its stored title."""
        titles: Dict[str, str] = {}

        def collect(rows: List[Tuple]) -> None:
            titles.update(rows)

        run_batched(
            self._fetch,
            lambda placeholders: f"SELECT id, title FROM titles WHERE id IN ({placeholders})",
            list(note_ids),
            collect,
        )
        return titles

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def incoming_links(self, to_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Map each source id to the given target ids it links to."""
        sources: Dict[str, List[str]] = {}

        def collect(rows: List[Tuple]) -> None:
            for from_id, to_id in rows:
                sources.setdefault(from_id, []).insert(0, to_id)

        run_batched(
            self._fetch,
            lambda placeholders: (
                f"SELECT from_id, to_id FROM links WHERE to_id IN ({placeholders})"
            ),
            list(to_ids),
            collect,
        )
        return sources

    def unresolved_links(self) -> List[Tuple[str, str]]:
        """Return every stored (from_id, link_title) without a target."""
        pairs = []
        for row in self._fetch(
            "SELECT from_id, to_id, link_title FROM links WHERE to_id IS NULL", {}
        ):
            record = LinkRecord.from_row(*row)
            pairs.append((record.from_id, record.target.title))
        return pairs

    def delete_links_by_pair(self, pairs: Sequence[Tuple[str, str]]) -> None:
        """Delete unresolved links identified by (from_id, link_title)."""
        run_batched(
            self._run,
            lambda placeholders: (
                "DELETE FROM links WHERE to_id IS NULL AND "
                f"(from_id, link_title) IN (VALUES {placeholders})"
            ),
            list(pairs),
            width=2,
        )

    def delete_links_from(self, from_ids: Iterable[str]) -> None:
        """Delete every link whose source is one of *from_ids*."""
        run_batched(
            self._run,
            lambda placeholders: f"DELETE FROM links WHERE from_id IN ({placeholders})",
            list(from_ids),
        )

    def forget_notes(self, note_ids: Iterable[str]) -> None:
        """Drop trashed notes from the titles and links tables.

        Resolved links pointing at a forgotten note become unresolved
        under its last indexed title, so the next resolution re-checks
        them like any other broken link.
        """
        ids = list(note_ids)
        # SET expressions see the pre-update row, so the subquery uses the old to_id
        run_batched(
            self._run,
            lambda placeholders: (
                "UPDATE links SET link_title = "
                "(SELECT titles.title FROM titles WHERE titles.id = links.to_id), "
                f"to_id = NULL WHERE to_id IN ({placeholders})"
            ),
            ids,
        )
        self.delete_links_from(ids)
        run_batched(
            self._run,
            lambda placeholders: f"DELETE FROM titles WHERE id IN ({placeholders})",
            ids,
        )

    def resolve_titles(
        self,
        pairs: Sequence[Tuple[str, str]],
        visitor: Callable[[Optional[str], Optional[str], str], None],
    ) -> None:
        """Left-join (from_id, link_title) pairs against the titles index.

        *visitor* receives ``(from_id, to_id, link_title)`` per joined row,
        chunk by chunk; ``to_id`` is None when no title matched.
        """
        def fold(rows: List[Tuple]) -> None:
            for from_id, to_id, link_title in rows:
                visitor(from_id, to_id, link_title)

        run_batched(
            self._fetch,
            lambda placeholders: (
                f"WITH checked(id, link_title) AS (VALUES {placeholders}) "
                "SELECT checked.id, titles.id, checked.link_title FROM checked "
                "LEFT JOIN titles ON (titles.title = checked.link_title)"
            ),
            list(pairs),
            fold,
            width=2,
        )

    def insert_links(self, records: Sequence[LinkRecord]) -> None:
        """Insert one links row per record."""
        run_batched(
            self._run,
            lambda placeholders: (
                f"INSERT INTO links (from_id, to_id, link_title) VALUES {placeholders}"
            ),
            [record.to_row() for record in records],
            width=3,
        )

