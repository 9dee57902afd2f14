"""
Tests for the ucf command line interface, driven through main().
"""

import zipfile

import pytest

from conftest import EPUB_MIMETYPE
from ucf_cli import main
from ucf_container import Container


def run(capsys, *argv):
    main(list(argv))
    return capsys.readouterr()


def test_create(capsys, new_ucf_path):
    out = run(capsys, "create", new_ucf_path).out
    assert EPUB_MIMETYPE in out
    with zipfile.ZipFile(new_ucf_path) as zf:
        assert zf.namelist() == ["mimetype"]
    assert Container.verify_file(new_ucf_path)


def test_create_with_mimetype(capsys, new_ucf_path):
    run(capsys, "create", new_ucf_path, "-m", "application/x-test")
    with Container.open(new_ucf_path, mode="r") as ucf:
        assert ucf.mimetype == "application/x-test"


def test_add_file_with_entry_name(capsys, new_ucf_path, tmp_path):
    source = tmp_path / "chapter.html"
    source.write_bytes(b"<html/>")
    run(capsys, "create", new_ucf_path)
    run(capsys, "add", new_ucf_path, f"{source}:OEBPS/chapter1.html")
    with Container.open(new_ucf_path, mode="r") as ucf:
        assert ucf.read("OEBPS/chapter1.html") == b"<html/>"
        assert ucf.entries()[0].filename == "mimetype"


def test_add_directory_recursively(capsys, new_ucf_path, tmp_path):
    content = tmp_path / "content"
    (content / "images").mkdir(parents=True)
    (content / "text.txt").write_bytes(b"text")
    (content / "images" / "cover.png").write_bytes(b"png")
    run(capsys, "create", new_ucf_path)
    run(capsys, "add", new_ucf_path, "-r", str(content))
    with Container.open(new_ucf_path, mode="r") as ucf:
        assert ucf.is_directory("content")
        assert ucf.is_directory("content/images")
        assert ucf.read("content/images/cover.png") == b"png"
        assert ucf.read("content/text.txt") == b"text"


def test_add_reserved_name_fails(capsys, new_ucf_path, tmp_path):
    source = tmp_path / "mimetype"
    source.write_bytes(b"text/plain")
    run(capsys, "create", new_ucf_path)
    with pytest.raises(SystemExit) as excinfo:
        main(["add", new_ucf_path, str(source)])
    assert excinfo.value.code == 1
    assert "reserved name" in capsys.readouterr().err
    with Container.open(new_ucf_path, mode="r") as ucf:
        assert ucf.mimetype == EPUB_MIMETYPE


def test_list(capsys, example_ucf):
    out = run(capsys, "list", example_ucf).out
    assert "greeting.txt" in out
    assert "dir/code.rb" in out


def test_long_list_marks_protected_entries(capsys, example_ucf):
    lines = run(capsys, "list", "-l", example_ucf).out.splitlines()
    assert any(line.endswith("mimetype *") for line in lines)
    assert any(line.endswith("META-INF/container.xml *") for line in lines)
    assert any(line.endswith("greeting.txt") for line in lines)


def test_extract(capsys, example_ucf, tmp_path):
    destination = tmp_path / "out"
    run(capsys, "extract", example_ucf, "greeting.txt", "-d", str(destination))
    assert (destination / "greeting.txt").read_bytes() == b"Hello, World!\n"


def test_verify_ok(capsys, example_ucf):
    out = run(capsys, "verify", example_ucf).out
    assert out.strip() == f"{example_ucf}: OK"


def test_verify_failure(capsys, example_ucf, compressed_mimetype_ucf, null_file):
    with pytest.raises(SystemExit) as excinfo:
        main(["verify", example_ucf, compressed_mimetype_ucf, null_file])
    assert excinfo.value.code == 1
    captured = capsys.readouterr()
    assert f"{example_ucf}: OK" in captured.out
    assert f"{compressed_mimetype_ucf}: FAILED" in captured.err
    assert f"{null_file}: FAILED" in captured.err


def test_remove_skips_protected_entries(capsys, example_ucf):
    out = run(capsys, "remove", example_ucf, "greeting.txt", "META-INF", "mimetype").out
    assert 'Removed: "greeting.txt"' in out
    assert 'Skipped protected entry: "META-INF"' in out
    with Container.open(example_ucf, mode="r") as ucf:
        assert not ucf.exists("greeting.txt")
        assert ucf.exists("META-INF/container.xml")
        assert ucf.exists("mimetype")


def test_rename(capsys, example_ucf):
    run(capsys, "rename", example_ucf, "greeting.txt", "hello.txt")
    with Container.open(example_ucf, mode="r") as ucf:
        assert ucf.read("hello.txt") == b"Hello, World!\n"


def test_mkdir(capsys, example_ucf):
    run(capsys, "mkdir", example_ucf, "images")
    with Container.open(example_ucf, mode="r") as ucf:
        assert ucf.is_directory("images")


def test_reserved(capsys, example_ucf):
    lines = run(capsys, "reserved", example_ucf).out.splitlines()
    assert lines[0].split() == ["reserved", "mimetype"]
    assert "directory  META-INF/" in lines
    assert "file       META-INF/container.xml" in lines


def test_missing_document(capsys, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["list", str(tmp_path / "missing.ucf")])
    assert excinfo.value.code == 1
    assert "not found" in capsys.readouterr().err
