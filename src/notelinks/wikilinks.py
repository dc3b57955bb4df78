"""Scanning and rewriting of ``[[Title]]`` link references.

Extraction and rewriting share one tokenizer, so a rename only ever
touches text that extraction would have reported as a link.
"""
import re
from dataclasses import dataclass
from typing import Iterator, Mapping, Set, Tuple

# Non-greedy: "[[a]] and [[b]]" is two links, not one
WIKILINK_RE = re.compile(r"\[\[(.+?)\]\]")

# Leading markdown heading marker, e.g. "# " or "### "
_HEADING_MARKER_RE = re.compile(r"^#+ ")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class LinkToken:
    """One link reference: its title and the span of the full ``[[...]]``."""

    title: str
    start: int
    end: int


def scan_links(text: str) -> Iterator[LinkToken]:
    """Yield every link token in *text*, left to right, non-overlapping."""
    for match in WIKILINK_RE.finditer(text or ""):
        yield LinkToken(match.group(1), match.start(), match.end())


def extract_link_titles(text: str) -> Set[str]:
    """Return the distinct link titles referenced by *text* (case-sensitive)."""
    return {token.title for token in scan_links(text)}


def rewrite_links(text: str, renames: Mapping[str, str]) -> Tuple[str, int]:
    """Replace link titles according to *renames* in a single pass.

    Only whole tokens whose title equals a key exactly are rewritten, so
    a title containing regex metacharacters or a prefix of a longer
    title is never matched by accident.

    Returns:
        The rewritten text and the number of tokens replaced.
    """
    parts = []
    replaced = 0
    cursor = 0
    for token in scan_links(text):
        new_title = renames.get(token.title)
        if new_title is None:
            continue
        parts.append(text[cursor:token.start])
        parts.append(f"[[{new_title}]]")
        cursor = token.end
        replaced += 1
    if not replaced:
        return text, 0
    parts.append(text[cursor:])
    return "".join(parts), replaced


def strip_title_line(body: str, title: str) -> str:
    """Drop the first line of *body* if it only repeats *title*.

    The note store synthesizes the title from the first line, so a
    literal ``# Title`` line must not be written back into the body.
    """
    lines = _LINE_BREAK_RE.split(body)
    if _HEADING_MARKER_RE.sub("", lines[0], count=1) == title:
        return "\n".join(lines[1:])
    return body
