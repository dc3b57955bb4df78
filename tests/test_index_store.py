"""Tests for the SQLite link index (real database, never mocked)."""
import pytest
from sqlalchemy import text

from notelinks.exceptions import (ErrorCode, LinkIndexInvariantError, QueryError,
                                  StoreUnavailableError)
from notelinks.models.schema import (ChangedEntry, LinkRecord, LinkResolution,
                                     Resolved, RunMetadata, TitleChange,
                                     Unresolved)
from notelinks.storage.index_store import LinkIndexStore
from tests.fakes import stored_links, stored_titles


def _entry(note_id, title, links=()):
    return ChangedEntry(id=note_id, title=title, links=set(links))


class TestSchema:
    """Tests for database initialisation."""

    def test_wal_mode_enabled(self, index_store):
        with index_store.session_factory() as session:
            result = session.execute(text("PRAGMA journal_mode")).fetchone()
            assert result[0].lower() == "wal"

    def test_fresh_metadata_is_empty(self, index):
        assert index.get_metadata() == RunMetadata()

    def test_open_twice_keeps_single_meta_row(self, index_store, test_config):
        second = LinkIndexStore.open(test_config.get_db_url())
        try:
            with second.session_factory() as session:
                count = session.execute(text("SELECT COUNT(*) FROM meta")).scalar()
            assert count == 1
        finally:
            second.dispose()

    def test_unopenable_database(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StoreUnavailableError) as exc_info:
            LinkIndexStore.open(f"sqlite:///{blocker}/links.db")
        assert exc_info.value.code == ErrorCode.INDEX_STORE_UNAVAILABLE


class TestTransactions:
    """Tests for the per-run transaction."""

    def test_commit_on_success(self, index_store):
        with index_store.begin() as index:
            index.write_metadata(RunMetadata(latest_note_time=5.0, last_store_check_time=6.0))

        with index_store.begin() as index:
            assert index.get_metadata().latest_note_time == 5.0

    def test_rollback_on_error(self, index_store):
        with pytest.raises(RuntimeError):
            with index_store.begin() as index:
                index.record_titles([_entry("a", "A")])
                raise RuntimeError("abort")

        with index_store.begin() as index:
            assert stored_titles(index) == {}

    def test_reads_see_writes_of_same_run(self, index):
        index.record_titles([_entry("a", "A")])
        assert index.titles_for(["a"]) == {"a": "A"}


class TestTitles:
    """Tests for the titles table."""

    def test_record_titles_upserts(self, index):
        index.record_titles([_entry("a", "A"), _entry("b", "B")])
        index.record_titles([_entry("a", "A2")])

        assert stored_titles(index) == {"a": "A2", "b": "B"}

    def test_find_title_changes(self, index):
        index.record_titles([_entry("a", "A"), _entry("b", "B")])

        changes = index.find_title_changes(
            [_entry("a", "A2"), _entry("b", "B"), _entry("c", "C")]
        )

        assert changes == {"a": TitleChange(old_title="A", new_title="A2")}

    def test_find_title_changes_empty(self, index):
        assert index.find_title_changes([]) == {}

    def test_titles_for_unknown_ids(self, index):
        index.record_titles([_entry("a", "A")])
        assert index.titles_for(["a", "zzz"]) == {"a": "A"}

    def test_many_titles_across_chunks(self, index, test_config, monkeypatch):
        monkeypatch.setattr(test_config, "query_parameter_limit", 3)
        entries = [_entry(f"id{i}", f"T{i}") for i in range(20)]

        index.record_titles(entries)
        changes = index.find_title_changes([_entry(f"id{i}", f"U{i}") for i in range(20)])

        assert len(stored_titles(index)) == 20
        assert len(changes) == 20
        assert changes["id7"] == TitleChange(old_title="T7", new_title="U7")


class TestLinks:
    """Tests for the links table."""

    def test_insert_and_read_back(self, index):
        records = [LinkRecord("a", Resolved("b")), LinkRecord("a", Unresolved("Z"))]
        index.insert_links(records)

        assert stored_links(index) == records
        assert index.unresolved_links() == [("a", "Z")]

    def test_incoming_links(self, index):
        index.insert_links([
            LinkRecord("a", Resolved("t")),
            LinkRecord("b", Resolved("t")),
            LinkRecord("b", Resolved("u")),
            LinkRecord("c", Resolved("v")),
        ])

        sources = index.incoming_links(["t", "u"])

        assert set(sources) == {"a", "b"}
        assert sorted(sources["b"]) == ["t", "u"]

    def test_delete_links_from(self, index):
        index.insert_links([LinkRecord("a", Resolved("b")), LinkRecord("c", Unresolved("Z"))])

        index.delete_links_from(["a"])

        assert stored_links(index) == [LinkRecord("c", Unresolved("Z"))]

    def test_delete_by_pair_only_touches_unresolved(self, index):
        index.insert_links([
            LinkRecord("a", Unresolved("Z")),
            LinkRecord("a", Unresolved("Y")),
            LinkRecord("a", Resolved("b")),
        ])

        index.delete_links_by_pair([("a", "Z")])

        assert stored_links(index) == [
            LinkRecord("a", Unresolved("Y")),
            LinkRecord("a", Resolved("b")),
        ]

    def test_resolve_titles_rows(self, index):
        index.record_titles([_entry("b", "B"), _entry("x1", "X"), _entry("x2", "X")])
        resolution = LinkResolution()

        index.resolve_titles([("a", "B"), ("a", "X"), ("a", "Z")], resolution.add)

        records = set(resolution.records())
        assert records == {
            LinkRecord("a", Resolved("b")),
            LinkRecord("a", Unresolved("X")),
            LinkRecord("a", Unresolved("Z")),
        }
        assert resolution.ambiguous_count == 1

    def test_forget_notes_unresolves_incoming_links(self, index):
        """Links to a forgotten note fall back to its last title."""
        index.record_titles([_entry("a", "A"), _entry("b", "B"), _entry("c", "C")])
        index.insert_links([
            LinkRecord("a", Resolved("b")),
            LinkRecord("a", Resolved("c")),
            LinkRecord("b", Resolved("c")),
        ])

        index.forget_notes(["b"])

        assert stored_titles(index) == {"a": "A", "c": "C"}
        assert stored_links(index) == [
            LinkRecord("a", Unresolved("B")),
            LinkRecord("a", Resolved("c")),
        ]
        assert index.unresolved_links() == [("a", "B")]

    def test_forget_unknown_notes_is_a_noop(self, index):
        index.record_titles([_entry("a", "A")])

        index.forget_notes(["zzz"])
        index.forget_notes([])

        assert stored_titles(index) == {"a": "A"}

    def test_malformed_row_is_rejected(self, index):
        index.session.execute(
            text("INSERT INTO links (from_id, to_id, link_title) VALUES ('a', NULL, NULL)")
        )

        with pytest.raises(LinkIndexInvariantError) as exc_info:
            index.unresolved_links()
        assert exc_info.value.code == ErrorCode.LINK_RECORD_SHAPE


class TestQueryErrors:
    """Tests for error wrapping."""

    def test_sql_failure_becomes_query_error(self, index):
        with pytest.raises(QueryError) as exc_info:
            index._fetch("SELECT * FROM no_such_table", {})
        assert "no_such_table" in exc_info.value.details["query"]
