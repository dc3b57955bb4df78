"""Tests for link reindexing."""
from notelinks.models.schema import ChangedEntry, LinkRecord, Resolved, Unresolved
from notelinks.services.link_indexer import LinkIndexer
from tests.fakes import stored_links


def _index_notes(index, *entries):
    index.record_titles(entries)
    return LinkIndexer(index).reindex(entries)


class TestLinkIndexer:
    """Tests for LinkIndexer."""

    def test_links_to_recheck_skips_changed_sources(self, index):
        index.insert_links([LinkRecord("a", Unresolved("Z")), LinkRecord("b", Unresolved("Y"))])

        previously_broken, changed_links = LinkIndexer(index).links_to_recheck(
            [ChangedEntry("a", "A", {"Q", "P"})]
        )

        assert previously_broken == [("b", "Y")]
        assert changed_links == [("a", "P"), ("a", "Q")]

    def test_reindex_replaces_rows_of_changed_notes(self, index):
        _index_notes(index, ChangedEntry("b", "B"), ChangedEntry("a", "A", {"B"}))

        resolution = _index_notes(index, ChangedEntry("a", "A", {"C"}))

        assert stored_links(index) == [LinkRecord("a", Unresolved("C"))]
        assert len(resolution.broken()) == 1

    def test_previously_broken_link_heals(self, index):
        _index_notes(index, ChangedEntry("a", "A", {"Z"}))

        resolution = _index_notes(index, ChangedEntry("z", "Z"))

        assert stored_links(index) == [LinkRecord("a", Resolved("z"))]
        assert resolution.broken() == []

    def test_still_broken_link_kept_and_reported(self, index):
        _index_notes(index, ChangedEntry("a", "A", {"Z"}))

        resolution = _index_notes(index, ChangedEntry("c", "C"))

        assert stored_links(index) == [LinkRecord("a", Unresolved("Z"))]
        assert [link.link_title for link in resolution.broken()] == ["Z"]

    def test_note_without_links_clears_rows(self, index):
        _index_notes(index, ChangedEntry("b", "B"), ChangedEntry("a", "A", {"B"}))

        _index_notes(index, ChangedEntry("a", "A"))

        assert stored_links(index) == []

    def test_ambiguous_link_stored_unresolved(self, index):
        resolution = _index_notes(
            index,
            ChangedEntry("x1", "X"),
            ChangedEntry("x2", "X"),
            ChangedEntry("a", "A", {"X"}),
        )

        assert stored_links(index) == [LinkRecord("a", Unresolved("X"))]
        [broken] = resolution.broken()
        assert broken.candidates == ("x1", "x2")
