"""Note store backed by a folder of markdown files.

Each note is a ``.md`` file whose YAML frontmatter carries ``id`` and
``title`` (and optionally ``pinned`` / ``trashed``); the markdown after
the frontmatter is the body. Trashing sets ``trashed: true`` rather
than deleting the file.
"""
import logging
import os
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import frontmatter

from notelinks.exceptions import (ErrorCode, ExternalWriteError,
                                  StoreUnavailableError)
from notelinks.models.schema import StoredNote
from notelinks.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


def note_filename(title: str) -> str:
    """Turn a title into a filename stem with no spaces or separators.

    Examples:
        "Reading List: 2024" -> "Reading-List-2024"
        "a/b" -> "a-b"
    """
    result = (
        title.replace(":", " ").replace(";", " ").replace("/", " ").replace("\\", " ")
    )
    words = []
    for word in result.split():
        cleaned = "".join(c if c.isalnum() or c in "-_" else "" for c in word)
        if cleaned:
            words.append(cleaned)
    return "-".join(words) or "untitled"


class FolderNoteStore(NoteStore):
    """Markdown-with-frontmatter files under *root* (searched recursively)."""

    def __init__(self, root: Path):
        self.root = Path(root)
        if not self.root.is_dir():
            raise StoreUnavailableError("Notes folder not found", path=str(self.root))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _files(self) -> List[Path]:
        return sorted(self.root.rglob("*.md"))

    def _load(self, path: Path) -> Optional[Tuple[frontmatter.Post, float]]:
        """Parse one file; files without an id are not notes."""
        try:
            post = frontmatter.load(path)
            mtime = path.stat().st_mtime
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable note file {path.name}: {e}")
            return None
        if not post.metadata.get("id"):
            logger.debug(f"Skipping {path.name}: no id in frontmatter")
            return None
        return post, mtime

    def _scan(self) -> Dict[str, Tuple[Path, frontmatter.Post, float]]:
        notes = {}
        for path in self._files():
            loaded = self._load(path)
            if loaded is None:
                continue
            post, mtime = loaded
            notes[str(post.metadata["id"])] = (path, post, mtime)
        return notes

    @staticmethod
    def _to_note(post: frontmatter.Post, mtime: float) -> StoredNote:
        return StoredNote(
            id=str(post.metadata["id"]),
            title=str(post.metadata.get("title") or ""),
            body=post.content,
            modified_at=mtime,
        )

    def _write(self, path: Path, post: frontmatter.Post, note_id: str, code: ErrorCode) -> None:
        """Write atomically through a temp file in the same directory."""
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
            os.replace(temp_path, path)
        except OSError as e:
            raise ExternalWriteError(
                "Cannot write note file", note_id=note_id, code=code, original_error=e
            ) from e

    def _locate(self, note_id: str, code: ErrorCode) -> Tuple[Path, frontmatter.Post]:
        found = self._scan().get(note_id)
        if found is None:
            raise ExternalWriteError("Note not found in folder", note_id=note_id, code=code)
        path, post, _ = found
        return path, post

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_modification_time(self) -> float:
        # The directory mtime covers files being added or removed
        times = [self.root.stat().st_mtime]
        times.extend(path.stat().st_mtime for path in self._files())
        return max(times)

    def latest_modification(self) -> Optional[float]:
        times = [mtime for _, _, mtime in self._scan().values()]
        return max(times) if times else None

    def list_changed(self, since: Optional[float]) -> List[StoredNote]:
        return [
            self._to_note(post, mtime)
            for _, post, mtime in self._scan().values()
            if not post.metadata.get("trashed")
            and (since is None or mtime >= since)
        ]

    def list_trashed(self, since: Optional[float]) -> List[str]:
        return [
            note_id
            for note_id, (_, post, mtime) in self._scan().items()
            if post.metadata.get("trashed") and (since is None or mtime >= since)
        ]

    def get_by_ids(self, note_ids: Sequence[str]) -> List[StoredNote]:
        notes = self._scan()
        return [
            self._to_note(notes[note_id][1], notes[note_id][2])
            for note_id in note_ids
            if note_id in notes
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_body(self, note_id: str, body: str) -> None:
        path, post = self._locate(note_id, ErrorCode.REPLACE_BODY_FAILED)
        post.content = body
        self._write(path, post, note_id, ErrorCode.REPLACE_BODY_FAILED)

    def create_note(self, title: str, body: str, pinned: bool = False) -> str:
        note_id = uuid.uuid4().hex.upper()
        post = frontmatter.Post(body, id=note_id, title=title)
        if pinned:
            post.metadata["pinned"] = True
        path = self.root / f"{note_filename(title)}-{note_id[:8]}.md"
        self._write(path, post, note_id, ErrorCode.CREATE_NOTE_FAILED)
        logger.debug(f"Created note {note_id} at {path.name}")
        return note_id

    def trash_note(self, note_id: str) -> None:
        path, post = self._locate(note_id, ErrorCode.TRASH_NOTE_FAILED)
        post.metadata["trashed"] = True
        self._write(path, post, note_id, ErrorCode.TRASH_NOTE_FAILED)

    # ------------------------------------------------------------------
    # Links for the report
    # ------------------------------------------------------------------

    def note_url(self, note_id: str) -> str:
        found = self._scan().get(note_id)
        if found is None:
            return f"note:{quote(note_id)}"
        return found[0].resolve().as_uri()

    def create_url(self, title: str) -> str:
        return (self.root.resolve() / f"{note_filename(title)}.md").as_uri()
