"""Domain models for the link maintainer.

Persistent rows are translated to these types at the index-store
boundary; nothing above the storage layer sees nullable columns.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field

from notelinks.exceptions import ErrorCode, LinkIndexInvariantError


class StoredNote(BaseModel):
    """A note as read from the external note store."""

    id: str = Field(..., description="Stable note identifier")
    title: str = Field(default="", description="Current title")
    body: str = Field(default="", description="Current body text")
    modified_at: Optional[float] = Field(
        default=None, description="Store modification timestamp"
    )

    model_config = {"frozen": True}


class RunMetadata(BaseModel):
    """Checkpoint persisted at the end of every successful run."""

    latest_note_time: Optional[float] = None
    last_store_check_time: Optional[float] = None
    report_note_id: Optional[str] = None

    model_config = {"frozen": True}


@dataclass
class ChangedEntry:
    """A note modified since the last checkpoint, with its link titles."""

    id: str
    title: str
    links: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class TitleChange:
    """Old and new title of a renamed note."""

    old_title: str
    new_title: str


# note id -> title change
TitleChangeMap = Dict[str, TitleChange]


@dataclass(frozen=True)
class Resolved:
    """Link target that resolved to exactly one note."""

    note_id: str


@dataclass(frozen=True)
class Unresolved:
    """Link target that is dead or ambiguous; kept by title for re-checking."""

    title: str


LinkTarget = Union[Resolved, Unresolved]


@dataclass(frozen=True)
class LinkRecord:
    """One outgoing link of a note, as stored in the links table."""

    from_id: str
    target: LinkTarget

    def to_row(self) -> Tuple[str, Optional[str], Optional[str]]:
        """Encode as the nullable ``(from_id, to_id, link_title)`` columns."""
        if isinstance(self.target, Resolved):
            return (self.from_id, self.target.note_id, None)
        return (self.from_id, None, self.target.title)

    @classmethod
    def from_row(
        cls, from_id: str, to_id: Optional[str], link_title: Optional[str]
    ) -> "LinkRecord":
        """Decode a links row, rejecting rows with both or neither column set."""
        if (to_id is None) == (link_title is None):
            raise LinkIndexInvariantError(
                "Link row must carry exactly one of to_id and link_title",
                code=ErrorCode.LINK_RECORD_SHAPE,
                from_id=from_id,
                to_id=to_id,
                link_title=link_title,
            )
        if to_id is not None:
            return cls(from_id, Resolved(to_id))
        return cls(from_id, Unresolved(link_title))


@dataclass(frozen=True)
class BrokenLink:
    """A dead or ambiguous link found by the indexer."""

    from_id: str
    link_title: str
    # Empty for dead links, two or more ids for ambiguous ones
    candidates: Tuple[str, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.candidates)


class LinkResolution:
    """Accumulates title-join rows into per-source link targets.

    Rows for the same ``(from_id, link_title)`` pair may arrive in
    different batches; a second matching row turns the pair ambiguous.
    """

    def __init__(self) -> None:
        # from_id -> link_title -> to_id (None = unresolved)
        self.entries: Dict[str, Dict[str, Optional[str]]] = {}
        # from_id -> link_title -> candidate to_ids
        self.ambiguous: Dict[str, Dict[str, List[str]]] = {}

    def add(self, from_id: str, to_id: Optional[str], link_title: str) -> None:
        """Fold one join row into the resolution."""
        links = self.entries.setdefault(from_id, {})
        if to_id is None or link_title not in links:
            links[link_title] = to_id
            return

        # A second target for a pair already seen
        candidates = self.ambiguous.setdefault(from_id, {})
        if link_title in candidates:
            candidates[link_title].insert(0, to_id)
            return

        existing = links[link_title]
        if existing is None:
            raise LinkIndexInvariantError(
                "Unexpected null entry in link list",
                from_id=from_id,
                link_title=link_title,
                to_id=to_id,
            )
        candidates[link_title] = [to_id, existing]
        links[link_title] = None

    def records(self) -> List[LinkRecord]:
        """Return one LinkRecord per checked (from_id, link_title) pair."""
        return [
            LinkRecord(
                from_id,
                Resolved(to_id) if to_id is not None else Unresolved(link_title),
            )
            for from_id, links in self.entries.items()
            for link_title, to_id in links.items()
        ]

    def broken(self) -> List[BrokenLink]:
        """Return every unresolved pair, with candidates for ambiguous ones."""
        result = []
        for from_id, links in self.entries.items():
            for link_title, to_id in links.items():
                if to_id is not None:
                    continue
                candidates = self.ambiguous.get(from_id, {}).get(link_title, [])
                result.append(BrokenLink(from_id, link_title, tuple(sorted(candidates))))
        return result

    @property
    def ambiguous_count(self) -> int:
        return sum(len(links) for links in self.ambiguous.values())

    def __len__(self) -> int:
        return sum(len(links) for links in self.entries.values())


@dataclass
class RunSummary:
    """What one maintenance run did."""

    store_changed: bool = False
    changed: int = 0
    trashed: int = 0
    renamed: int = 0
    rewritten: int = 0
    links_indexed: int = 0
    dead: int = 0
    ambiguous: int = 0
    report_note_id: Optional[str] = None
