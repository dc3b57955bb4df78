"""Interface of the external note store the maintainer works against."""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from notelinks.models.schema import StoredNote


class NoteStore(ABC):
    """Read/write access to the note corpus.

    Reads are cheap and synchronous; writes go through whatever
    automation channel the store offers and are not read back.
    Every write failure raises ExternalWriteError.
    """

    @abstractmethod
    def get_modification_time(self) -> float:
        """Return a timestamp that moves forward whenever anything changes."""

    @abstractmethod
    def latest_modification(self) -> Optional[float]:
        """Return the greatest note modification time, None for an empty store."""

    @abstractmethod
    def list_changed(self, since: Optional[float]) -> List[StoredNote]:
        """Return non-trashed notes modified at or after *since* (all if None)."""

    @abstractmethod
    def list_trashed(self, since: Optional[float]) -> List[str]:
        """Return ids of trashed notes modified at or after *since* (all if None)."""

    @abstractmethod
    def get_by_ids(self, note_ids: Sequence[str]) -> List[StoredNote]:
        """Return the notes with the given ids; unknown ids are skipped."""

    @abstractmethod
    def replace_body(self, note_id: str, body: str) -> None:
        """Replace the body of a note."""

    @abstractmethod
    def create_note(self, title: str, body: str, pinned: bool = False) -> str:
        """Create a note and return its id."""

    @abstractmethod
    def trash_note(self, note_id: str) -> None:
        """Move a note to the trash (soft delete)."""

    @abstractmethod
    def note_url(self, note_id: str) -> str:
        """Return a URL that opens the note."""

    @abstractmethod
    def create_url(self, title: str) -> str:
        """Return a URL that starts a new note with *title*."""

    def close(self) -> None:
        """Release any resources held by the store."""
