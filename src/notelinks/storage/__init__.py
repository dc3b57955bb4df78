"""Storage layer for the link maintainer."""

from notelinks.storage.index_store import LinkIndex, LinkIndexStore
from notelinks.storage.note_store import NoteStore

__all__ = [
    "LinkIndex",
    "LinkIndexStore",
    "NoteStore",
]
