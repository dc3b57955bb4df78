"""
Note Links - keeps a wiki-link graph over a note corpus consistent.

Each run scans the note store for changes, propagates title renames into the
``[[Title]]`` references of other notes, re-resolves links against a persisted
titles index and publishes a single report note listing dead and ambiguous links.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notelinks")
except PackageNotFoundError:
    __version__ = "0.3.0"
