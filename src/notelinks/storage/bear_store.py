"""Note store adapter for the Bear notes app.

Reads go straight to Bear's SQLite database (read-only). Writes are
issued as ``bear://x-callback-url`` requests; Bear applies them
asynchronously, so the next run sees their effect.
"""
import json
import logging
import sqlite3
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import quote, urlencode

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from notelinks.exceptions import (ErrorCode, ExternalWriteError, QueryError,
                                  StoreUnavailableError)
from notelinks.models.schema import StoredNote
from notelinks.observability import traced
from notelinks.storage.batch import run_batched
from notelinks.storage.note_store import NoteStore

logger = logging.getLogger(__name__)

CALLBACK_BASE = "bear://x-callback-url"

_NOTE_COLUMNS = (
    "ZUNIQUEIDENTIFIER AS id, COALESCE(ZTITLE, '') AS title, "
    "COALESCE(ZTEXT, '') AS body, ZMODIFICATIONDATE AS modified_at"
)


def callback_url(action: str, **params: str) -> str:
    """Build a Bear x-callback URL with percent-encoded parameters."""
    return f"{CALLBACK_BASE}/{action}?{urlencode(params, quote_via=quote)}"


class BearNoteStore(NoteStore):
    """Bear database reads plus x-callback writes.

    Args:
        database_path: Bear's ``database.sqlite``.
        xcall_path: ``xcall`` binary; only needed to create notes.
    """

    def __init__(self, database_path: Path, xcall_path: Optional[Path] = None):
        self.database_path = Path(database_path)
        self.xcall_path = xcall_path
        if not self.database_path.is_file():
            raise StoreUnavailableError(
                "Bear database not found", path=str(self.database_path)
            )
        self.engine = self._open_engine()

    def _open_engine(self) -> Engine:
        uri = f"{self.database_path.resolve().as_uri()}?mode=ro"
        try:
            engine = create_engine(
                "sqlite://", creator=lambda: _connect_read_only(uri)
            )
            with engine.connect() as conn:
                conn.execute(text("SELECT 1 FROM ZSFNOTE LIMIT 1"))
            return engine
        except SQLAlchemyError as e:
            raise StoreUnavailableError(
                "Cannot open Bear database",
                path=str(self.database_path),
                original_error=e,
            ) from e

    def _fetch(self, sql: str, params: dict) -> List[StoredNote]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(text(sql), params).mappings().all()
        except SQLAlchemyError as e:
            raise QueryError("Bear query failed", query=sql, original_error=e) from e
        return [StoredNote(**row) for row in rows]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_modification_time(self) -> float:
        try:
            return self.database_path.stat().st_mtime
        except OSError as e:
            raise StoreUnavailableError(
                "Cannot stat Bear database",
                path=str(self.database_path),
                original_error=e,
            ) from e

    def latest_modification(self) -> Optional[float]:
        try:
            with self.engine.connect() as conn:
                return conn.execute(
                    text("SELECT MAX(ZMODIFICATIONDATE) FROM ZSFNOTE")
                ).scalar()
        except SQLAlchemyError as e:
            raise QueryError("Bear query failed", original_error=e) from e

    @traced("bear_list_changed")
    def list_changed(self, since: Optional[float]) -> List[StoredNote]:
        sql = f"SELECT {_NOTE_COLUMNS} FROM ZSFNOTE WHERE ZTRASHED = 0"
        params = {}
        if since is not None:
            sql += " AND ZMODIFICATIONDATE >= :since"
            params["since"] = since
        return self._fetch(sql, params)

    def list_trashed(self, since: Optional[float]) -> List[str]:
        sql = f"SELECT {_NOTE_COLUMNS} FROM ZSFNOTE WHERE ZTRASHED = 1"
        params = {}
        if since is not None:
            sql += " AND ZMODIFICATIONDATE >= :since"
            params["since"] = since
        return [note.id for note in self._fetch(sql, params)]

    def get_by_ids(self, note_ids: Sequence[str]) -> List[StoredNote]:
        notes: List[StoredNote] = []
        run_batched(
            self._fetch,
            lambda placeholders: (
                f"SELECT {_NOTE_COLUMNS} FROM ZSFNOTE "
                f"WHERE ZUNIQUEIDENTIFIER IN ({placeholders})"
            ),
            list(note_ids),
            notes.extend,
        )
        return notes

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _open_url(self, url: str, note_id: Optional[str], code: ErrorCode) -> None:
        try:
            subprocess.run(
                ["open", "-g", url], check=True, capture_output=True, text=True
            )
        except (OSError, subprocess.CalledProcessError) as e:
            raise ExternalWriteError(
                "Bear callback failed", note_id=note_id, code=code, original_error=e
            ) from e

    def replace_body(self, note_id: str, body: str) -> None:
        url = callback_url(
            "add-text",
            open_note="no",
            show_window="no",
            mode="replace",
            id=note_id,
            text=body,
        )
        self._open_url(url, note_id, ErrorCode.REPLACE_BODY_FAILED)

    def trash_note(self, note_id: str) -> None:
        url = callback_url("trash", id=note_id, show_window="no")
        self._open_url(url, note_id, ErrorCode.TRASH_NOTE_FAILED)

    def create_note(self, title: str, body: str, pinned: bool = False) -> str:
        """Create a note through xcall, which prints Bear's JSON reply."""
        if self.xcall_path is None:
            raise ExternalWriteError(
                "Creating Bear notes needs NOTELINKS_XCALL_PATH",
                code=ErrorCode.CREATE_NOTE_FAILED,
            )
        url = callback_url(
            "create",
            pin="yes" if pinned else "no",
            open_note="no",
            new_window="no",
            title=title,
            text=body,
        )
        try:
            completed = subprocess.run(
                [str(self.xcall_path), "-activateApp", "NO", "-url", url],
                check=True,
                capture_output=True,
                text=True,
            )
            return json.loads(completed.stdout)["identifier"]
        except (OSError, subprocess.CalledProcessError) as e:
            raise ExternalWriteError(
                "xcall failed", code=ErrorCode.CREATE_NOTE_FAILED, original_error=e
            ) from e
        except (ValueError, KeyError, TypeError) as e:
            raise ExternalWriteError(
                "Unexpected xcall response",
                code=ErrorCode.CREATE_NOTE_FAILED,
                original_error=e,
            ) from e

    # ------------------------------------------------------------------
    # Links for the report
    # ------------------------------------------------------------------

    def note_url(self, note_id: str) -> str:
        return callback_url("open-note", new_window="yes", id=note_id)

    def create_url(self, title: str) -> str:
        return callback_url("create", edit="yes", title=title)

    def close(self) -> None:
        self.engine.dispose()


def _connect_read_only(uri: str) -> sqlite3.Connection:
    return sqlite3.connect(uri, uri=True, check_same_thread=False)
