"""
Shared fixtures: small UCF and ZIP documents written into pytest's tmp_path.
"""

import zipfile

import pytest

EPUB_MIMETYPE = "application/epub+zip"

VALID_CONTAINER_XML = b"""<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

VALID_MANIFEST_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<manifest:manifest xmlns:manifest="urn:oasis:names:tc:opendocument:xmlns:manifest:1.0">
  <manifest:file-entry manifest:full-path="/" manifest:media-type="application/epub+zip"/>
  <manifest:file-entry manifest:full-path="greeting.txt" manifest:media-type="text/plain" manifest:size="14"/>
</manifest:manifest>
"""


def write_zip(path, entries, comment=b""):
    """Writes a ZIP file from (name, data, compress_type) tuples, in order."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, data, compress_type in entries:
            zf.writestr(zipfile.ZipInfo(name, (2013, 1, 1, 12, 0, 0)), data, compress_type=compress_type)
        zf.comment = comment
    return str(path)


def mimetype_entry(mimetype=EPUB_MIMETYPE, compress_type=zipfile.ZIP_STORED):
    return ("mimetype", mimetype.encode("utf-8"), compress_type)


@pytest.fixture
def null_file(tmp_path):
    """A file that is not a ZIP archive at all."""
    path = tmp_path / "null.file"
    path.write_bytes(b"")
    return str(path)


@pytest.fixture
def empty_zip(tmp_path):
    """A valid ZIP archive without a mimetype entry."""
    return write_zip(tmp_path / "empty.zip", [])


@pytest.fixture
def empty_ucf(tmp_path):
    """A UCF document holding nothing but its mimetype."""
    return write_zip(tmp_path / "empty.ucf", [mimetype_entry()])


@pytest.fixture
def compressed_mimetype_ucf(tmp_path):
    return write_zip(tmp_path / "compressed_mimetype.ucf", [mimetype_entry(compress_type=zipfile.ZIP_DEFLATED)])


@pytest.fixture
def misplaced_mimetype_ucf(tmp_path):
    return write_zip(
        tmp_path / "misplaced_mimetype.ucf",
        [("greeting.txt", b"Hello, World!\n", zipfile.ZIP_DEFLATED), mimetype_entry()],
    )


@pytest.fixture
def example_ucf(tmp_path):
    """A UCF document with a few files, a directory and a valid META-INF."""
    return write_zip(
        tmp_path / "example.ucf",
        [
            mimetype_entry(),
            ("greeting.txt", b"Hello, World!\n", zipfile.ZIP_DEFLATED),
            ("dir/", b"", zipfile.ZIP_STORED),
            ("dir/code.rb", b"puts 'hello'\n", zipfile.ZIP_DEFLATED),
            ("META-INF/", b"", zipfile.ZIP_STORED),
            ("META-INF/container.xml", VALID_CONTAINER_XML, zipfile.ZIP_DEFLATED),
        ],
    )


@pytest.fixture
def new_ucf_path(tmp_path):
    """Path for a document that does not exist yet."""
    return str(tmp_path / "new.ucf")
