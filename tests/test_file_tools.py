import base64
from pathlib import Path

import pytest

from smolcode.file_tools import edit_file, list_files, read_file, write_file
from smolcode.toolbox import ToolError


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_write_then_read_round_trip(workdir):
    result = write_file({"filepath": "notes.txt", "content": "hello there"})
    assert result == {"wrote": "notes.txt"}
    assert read_file({"filepath": "notes.txt"}) == {
        "contents": "hello there",
        "mime_type": "text/plain",
    }


def test_write_creates_directories(workdir):
    result = write_file({"filepath": "deep/nested/file.txt", "content": "data"})
    assert result == {"wrote": "deep/nested/file.txt"}
    assert (workdir / "deep" / "nested" / "file.txt").read_text() == "data"


def test_write_requires_filepath(workdir):
    with pytest.raises(ToolError, match="filepath is missing"):
        write_file({"content": "x"})


def test_edit_replaces_every_occurrence(workdir):
    (workdir / "f.txt").write_text("a-b-a")
    assert edit_file({"filepath": "f.txt", "old_str": "a", "new_str": "c"}) == {"wrote": "f.txt"}
    assert (workdir / "f.txt").read_text() == "c-b-c"


def test_edit_rejects_identical_strings(workdir):
    (workdir / "f.txt").write_text("abc")
    with pytest.raises(ToolError, match="must be different"):
        edit_file({"filepath": "f.txt", "old_str": "abc", "new_str": "abc"})


def test_edit_reports_missing_text(workdir):
    (workdir / "f.txt").write_text("abc")
    with pytest.raises(ToolError, match="old_str not found"):
        edit_file({"filepath": "f.txt", "old_str": "zzz", "new_str": "y"})
    assert (workdir / "f.txt").read_text() == "abc"


def test_edit_creates_missing_file_with_empty_old_str(workdir):
    result = edit_file({"filepath": "new/dir/f.txt", "old_str": "", "new_str": "fresh"})
    assert result == {"created": "new/dir/f.txt"}
    assert (workdir / "new" / "dir" / "f.txt").read_text() == "fresh"


def test_edit_missing_file_with_old_str_fails(workdir):
    with pytest.raises(ToolError):
        edit_file({"filepath": "absent.txt", "old_str": "x", "new_str": "y"})
    assert not (workdir / "absent.txt").exists()


def test_edit_requires_filepath(workdir):
    with pytest.raises(ToolError, match="filepath is missing"):
        edit_file({"old_str": "x", "new_str": "y"})


def test_read_binary_is_base64(workdir):
    payload = bytes([0xFF, 0xFE, 0x00, 0x81])
    (workdir / "blob.bin").write_bytes(payload)
    result = read_file({"filepath": "blob.bin"})
    assert result["mime_type"] == "application/octet-stream"
    assert base64.b64decode(result["contents"]) == payload


def test_read_without_filepath(workdir):
    with pytest.raises(ToolError, match="no filepath provided"):
        read_file({})


def test_read_missing_file(workdir):
    with pytest.raises(ToolError, match="read_file"):
        read_file({"filepath": "nope.txt"})


def test_list_files_walks_tree_and_skips_git(workdir):
    (workdir / "a").mkdir()
    (workdir / "a" / "x.txt").write_text("1")
    (workdir / "b.txt").write_text("2")
    (workdir / ".git").mkdir()
    (workdir / ".git" / "HEAD").write_text("ref")
    files = list_files({})["files"]
    assert files == ["a/", str(Path("a") / "x.txt"), "b.txt"]


def test_list_files_of_subdirectory(workdir):
    (workdir / "sub" / "inner").mkdir(parents=True)
    (workdir / "sub" / "inner" / "f.py").write_text("")
    files = list_files({"filepath": "sub"})["files"]
    assert files == ["inner/", str(Path("inner") / "f.py")]


def test_list_files_missing_directory(workdir):
    with pytest.raises(ToolError):
        list_files({"filepath": "does-not-exist"})