"""Tests for the markdown folder note store."""
import os

import frontmatter
import pytest

from notelinks.exceptions import ErrorCode, ExternalWriteError, StoreUnavailableError
from notelinks.storage.folder_store import FolderNoteStore, note_filename


def _write_note(root, name, note_id, title, body, mtime=None, **extra):
    path = root / name
    post = frontmatter.Post(body, id=note_id, title=title, **extra)
    path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def notes_dir(tmp_path):
    root = tmp_path / "notes"
    root.mkdir()
    return root


@pytest.fixture
def folder_store(notes_dir):
    return FolderNoteStore(notes_dir)


class TestNoteFilename:
    """Tests for title-to-filename conversion."""

    def test_separators_become_dashes(self):
        assert note_filename("Reading List: 2024") == "Reading-List-2024"
        assert note_filename("a/b") == "a-b"

    def test_punctuation_dropped(self):
        assert note_filename("What? Why!") == "What-Why"

    def test_empty_title(self):
        assert note_filename("???") == "untitled"


class TestFolderReads:
    """Tests for reading notes from the folder."""

    def test_missing_folder(self, tmp_path):
        with pytest.raises(StoreUnavailableError):
            FolderNoteStore(tmp_path / "nope")

    def test_list_all_notes(self, folder_store, notes_dir):
        _write_note(notes_dir, "a.md", "A1", "Alpha", "see [[Beta]]")
        _write_note(notes_dir, "b.md", "B1", "Beta", "text")

        notes = {note.id: note for note in folder_store.list_changed(None)}

        assert set(notes) == {"A1", "B1"}
        assert notes["A1"].title == "Alpha"
        assert "[[Beta]]" in notes["A1"].body

    def test_nested_directories(self, folder_store, notes_dir):
        (notes_dir / "sub").mkdir()
        _write_note(notes_dir / "sub", "deep.md", "D1", "Deep", "")

        assert [note.id for note in folder_store.list_changed(None)] == ["D1"]

    def test_files_without_id_are_ignored(self, folder_store, notes_dir):
        (notes_dir / "plain.md").write_text("# Just markdown\n", encoding="utf-8")

        assert folder_store.list_changed(None) == []

    def test_list_changed_since(self, folder_store, notes_dir):
        _write_note(notes_dir, "old.md", "O1", "Old", "", mtime=100)
        _write_note(notes_dir, "new.md", "N1", "New", "", mtime=200)

        assert [note.id for note in folder_store.list_changed(200)] == ["N1"]
        assert folder_store.latest_modification() == 200

    def test_trashed_notes_skipped(self, folder_store, notes_dir):
        _write_note(notes_dir, "t.md", "T1", "Trash", "", trashed=True)

        assert folder_store.list_changed(None) == []

    def test_list_trashed_since(self, folder_store, notes_dir):
        _write_note(notes_dir, "old.md", "O1", "Old", "", mtime=100, trashed=True)
        _write_note(notes_dir, "new.md", "N1", "New", "", mtime=200, trashed=True)
        _write_note(notes_dir, "live.md", "L1", "Live", "", mtime=300)

        assert sorted(folder_store.list_trashed(None)) == ["N1", "O1"]
        assert folder_store.list_trashed(150) == ["N1"]

    def test_get_by_ids(self, folder_store, notes_dir):
        _write_note(notes_dir, "a.md", "A1", "Alpha", "")
        _write_note(notes_dir, "b.md", "B1", "Beta", "")

        notes = folder_store.get_by_ids(["B1", "missing"])

        assert [note.title for note in notes] == ["Beta"]

    def test_empty_folder(self, folder_store):
        assert folder_store.latest_modification() is None
        assert folder_store.get_modification_time() > 0


class TestFolderWrites:
    """Tests for writing notes to the folder."""

    def test_replace_body_keeps_frontmatter(self, folder_store, notes_dir):
        path = _write_note(notes_dir, "a.md", "A1", "Alpha", "old body")

        folder_store.replace_body("A1", "new body")

        post = frontmatter.load(path)
        assert post.content == "new body"
        assert post.metadata["title"] == "Alpha"
        assert not list(notes_dir.glob("*.tmp"))

    def test_replace_body_unknown_id(self, folder_store):
        with pytest.raises(ExternalWriteError) as exc_info:
            folder_store.replace_body("nope", "x")
        assert exc_info.value.code == ErrorCode.REPLACE_BODY_FAILED

    def test_create_pinned_note(self, folder_store):
        note_id = folder_store.create_note("Broken: Links", "body", pinned=True)

        [note] = folder_store.get_by_ids([note_id])
        assert note.title == "Broken: Links"
        assert note.body == "body"
        path = next(folder_store.root.glob("Broken-Links-*.md"))
        assert frontmatter.load(path).metadata["pinned"] is True

    def test_trash_note(self, folder_store, notes_dir):
        path = _write_note(notes_dir, "a.md", "A1", "Alpha", "")

        folder_store.trash_note("A1")

        assert path.exists()
        assert frontmatter.load(path).metadata["trashed"] is True
        assert folder_store.list_changed(None) == []

    def test_write_moves_store_modification_time(self, folder_store, notes_dir):
        _write_note(notes_dir, "a.md", "A1", "Alpha", "", mtime=100)
        os.utime(notes_dir, (100, 100))

        folder_store.replace_body("A1", "changed")

        assert folder_store.get_modification_time() > 100


class TestFolderUrls:
    """Tests for report links."""

    def test_note_url_points_at_file(self, folder_store, notes_dir):
        _write_note(notes_dir, "a.md", "A1", "Alpha", "")

        assert folder_store.note_url("A1").startswith("file://")
        assert folder_store.note_url("A1").endswith("/a.md")

    def test_note_url_unknown_id(self, folder_store):
        assert folder_store.note_url("X 1") == "note:X%201"

    def test_create_url(self, folder_store):
        assert folder_store.create_url("New Note").endswith("/New-Note.md")
