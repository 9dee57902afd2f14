# -*- coding: utf-8 -*-
"""
ucf_container.py

This module defines the Container class, which represents a Universal
Container Format (UCF) document: a PK ZIP archive with a few structural rules
layered on top.

1.  mimetype: the first entry of the archive (local header offset 0) must be
    a file called "mimetype", stored without compression, whose contents name
    the type of the document. The default is "application/epub+zip".
2.  Reserved names: "mimetype" and the names of all managed entries may only
    be written by the container itself. Adding, creating or renaming onto
    such a name raises ReservedNameClashError; removing, renaming or
    replacing one is silently ignored. Comparisons are case-insensitive and
    made on the name as it would be stored, without leading or trailing "/".
3.  Managed entries: files and directories (such as the standard META-INF
    directory) that may be required and whose contents may be validated.
    See ucf_entries.py and ucf_meta_inf.py.

Extra reserved names and managed entries are passed to the constructor, or
through Container.open()/Container.create():

    with Container.create("book.epub", managed_entries=[ManagedFile("index.html", True)]) as ucf:
        ucf.add("text/chapter1.html", b"<html/>")

    Container.verify_file("book.epub")  # -> False, index.html is missing

All read-only operations are passed straight through to the underlying
ucf_archive.ZipArchive.
"""

import zipfile
from typing import Optional, List, BinaryIO, Literal, Iterator, Callable, Iterable, Union

from ucf_archive import (
    ZipArchive,
    ArchiveError,
    EntryNotFoundError,
    EntryExistsError,
    DIRECTORY_PERMISSIONS,
    normalize_name,
)
from ucf_entries import (
    NameRegistry,
    ManagedEntries,
    ManagedEntry,
    ManagedFile,
    ManagedDirectory,
    UcfError,
    MalformedContainerError,
    ReservedNameClashError,
    FeatureNotAvailableError,
    matches_name,
)
from ucf_meta_inf import MetaInf, META_INF_DIR

# --- Constants ---
DEFAULT_MIMETYPE = "application/epub+zip"
MIMETYPE_FILE = "mimetype"

EntryName = Union[str, zipfile.ZipInfo]

__all__ = [
    "Container",
    "verify",
    "verify_or_fail",
    "ManagedEntry",
    "ManagedFile",
    "ManagedDirectory",
    "MetaInf",
    "NameRegistry",
    "UcfError",
    "MalformedContainerError",
    "ReservedNameClashError",
    "FeatureNotAvailableError",
    "ArchiveError",
    "EntryNotFoundError",
    "EntryExistsError",
    "DEFAULT_MIMETYPE",
    "MIMETYPE_FILE",
    "META_INF_DIR",
]


def _name_of(entry: EntryName) -> str:
    return entry.filename if isinstance(entry, zipfile.ZipInfo) else str(entry)


# --- Main Class ---
class Container(ManagedEntries):
    """
    Represents a UCF document on disk.
    """

    def __init__(
        self,
        filename: str,
        mode: Literal["r", "r+"] = "r+",
        reserved_names: Iterable[str] = (),
        managed_entries: Iterable[Union[ManagedEntry, str]] = (),
        validate_schemas: bool = True,
    ):
        """
        Opens an existing UCF document and checks its mimetype entry.

        Prefer Container.open() and Container.create(). Raises
        MalformedContainerError if the mimetype entry is missing, not first,
        or compressed.
        """
        if mode not in ("r", "r+"):
            raise ValueError(f'Invalid mode: "{mode}". Use "r" or "r+".')
        self._archive = ZipArchive(filename).open(mode)
        try:
            self._check_mimetype()
            self._mimetype: str = self._read_mimetype()
        except (MalformedContainerError, ArchiveError):
            self._archive.close()
            raise

        self._reserved = NameRegistry([MIMETYPE_FILE])
        for name in reserved_names:
            self._reserved.register(name)

        self._init_managed_entries([MetaInf(validate_schemas=validate_schemas)])
        for entry in managed_entries:
            self.register_managed_entry(entry)

    @classmethod
    def create(cls, filename: str, mimetype: str = DEFAULT_MIMETYPE, func: Optional[Callable[["Container"], None]] = None, **config) -> "Container":
        """
        Creates a new UCF document on disk, containing only its mimetype entry,
        and opens it for editing.

        See open() for `func` and the configuration keywords.
        """
        if not mimetype:
            raise ValueError("Mimetype cannot be empty.")
        with ZipArchive(filename).open("w") as archive:
            archive.add(MIMETYPE_FILE, mimetype.encode("utf-8"), compress_type=zipfile.ZIP_STORED)
        return cls.open(filename, func=func, **config)

    @classmethod
    def open(cls, filename: str, mode: Literal["r", "r+"] = "r+", func: Optional[Callable[["Container"], None]] = None, **config) -> "Container":
        """
        Opens an existing UCF document.

        If `func` is given it is called with the open container, which is then
        closed (committing any changes) however `func` exits. The container is
        also a context manager with the same behaviour.
        """
        container = cls(filename, mode=mode, **config)
        if func is not None:
            try:
                func(container)
            finally:
                container.close()
        return container

    @classmethod
    def each_entry(cls, filename: str, **config) -> Iterator[zipfile.ZipInfo]:
        """
        Yields every entry of a document, in archive order.

        The document is opened read-only and is closed when iteration ends or
        the generator is closed.
        """
        container = cls(filename, mode="r", **config)
        try:
            yield from container.entries()
        finally:
            container.close()

    @classmethod
    def verify_file(cls, filename: str, **config) -> bool:
        """
        Verifies that a file is a conformant document of this container type.

        Returns False if there is any problem at all, including when the file
        cannot be found or is not a ZIP archive.
        """
        try:
            cls.verify_file_or_fail(filename, **config)
        except Exception:
            return False
        return True

    @classmethod
    def verify_file_or_fail(cls, filename: str, **config):
        """
        Verifies that a file is a conformant document of this container type.

        Raises MalformedContainerError for structural problems; errors from
        the archive layer (missing file, corrupt ZIP) propagate unchanged.
        """
        container = cls(filename, mode="r", **config)
        try:
            container.verify_managed_entries_or_fail()
        finally:
            container.close()

    def __enter__(self) -> "Container":
        """Enter the runtime context."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit the runtime context, committing any changes."""
        self.close()

    # --- Internal Checks ---
    def _check_mimetype(self):
        info = self._archive.find_entry(MIMETYPE_FILE)
        if info is None or info.filename != MIMETYPE_FILE:
            raise MalformedContainerError(f'Not a UCF document: no "{MIMETYPE_FILE}" file found.')
        if info.header_offset != 0:
            raise MalformedContainerError(f'The "{MIMETYPE_FILE}" file must be the first entry in the archive.')
        if info.compress_type != zipfile.ZIP_STORED:
            raise MalformedContainerError(f'The "{MIMETYPE_FILE}" file must be stored without compression.')

    def _read_mimetype(self) -> str:
        try:
            return self._archive.read(MIMETYPE_FILE).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedContainerError(f'The "{MIMETYPE_FILE}" file is not valid UTF-8: {e}') from e

    # --- Managed Entry Support ---
    def _write_managed_file(self, name: str, data: bytes):
        self._archive.add(name, data, overwrite=True)

    def _create_managed_directory(self, name: str):
        if not self._archive.exists(name):
            self._archive.mkdir(name)

    # --- Reserved Names ---
    @property
    def mimetype(self) -> str:
        """The mimetype of this document, as read from its mimetype file."""
        return self._mimetype

    def reserved_names(self) -> List[str]:
        """Returns the names reserved by this container, "mimetype" first."""
        return self._reserved.all()

    def is_reserved(self, entry: EntryName) -> bool:
        return self._reserved.is_reserved(normalize_name(entry))

    def protected_names(self) -> List[str]:
        """Returns every name that the mutating methods protect."""
        return self.reserved_names() + self.managed_entry_names()

    def is_protected(self, entry: EntryName) -> bool:
        """Is `entry` a reserved or managed name, at any depth?"""
        name = normalize_name(entry)
        return self._reserved.is_reserved(name) or matches_name(name, self.managed_entry_names())

    # --- Guarded Modification ---
    def add(self, entry: EntryName, source, compress_type: Optional[int] = None, overwrite: bool = False):
        """
        Adds a file from bytes or a local file path.

        Raises ReservedNameClashError for reserved or managed names.
        """
        if self.is_protected(entry):
            raise ReservedNameClashError(_name_of(entry))
        self._archive.add(entry, source, compress_type=compress_type, overwrite=overwrite)

    def get_output_stream(self, entry: EntryName, compress_type: Optional[int] = None) -> BinaryIO:
        """
        Returns a writable stream for an entry, stored when the stream is closed.

        Raises ReservedNameClashError for reserved or managed names.
        """
        if self.is_protected(entry):
            raise ReservedNameClashError(_name_of(entry))
        return self._archive.get_output_stream(entry, compress_type=compress_type)

    def mkdir(self, entry: EntryName, permissions: int = DIRECTORY_PERMISSIONS):
        """
        Creates a directory entry.

        Raises ReservedNameClashError for reserved or managed names.
        """
        if self.is_protected(entry):
            raise ReservedNameClashError(_name_of(entry))
        self._archive.mkdir(entry, permissions)

    def remove(self, entry: EntryName):
        """Removes an entry. Reserved or managed entries are left alone."""
        if self.is_protected(entry):
            return None
        self._archive.remove(entry)

    def rename(self, entry: EntryName, new_name: str, overwrite: bool = False):
        """
        Renames an entry. Reserved or managed entries are left alone, but
        renaming anything onto a reserved or managed name raises
        ReservedNameClashError.
        """
        if self.is_protected(entry):
            return None
        if self.is_protected(new_name):
            raise ReservedNameClashError(_name_of(new_name))
        self._archive.rename(entry, new_name, overwrite=overwrite)

    def replace(self, entry: EntryName, source):
        """Replaces the contents of an entry. Reserved or managed entries are left alone."""
        if self.is_protected(entry):
            return None
        self._archive.replace(entry, source)

    @property
    def comment(self) -> bytes:
        return self._archive.comment

    @comment.setter
    def comment(self, value: Union[str, bytes]):
        self._archive.comment = value

    def commit_required(self) -> bool:
        return self._archive.commit_required()

    def commit(self) -> bool:
        """
        Writes changes made since the last commit to disk.

        Returns True if anything was written, False otherwise.
        """
        if not self.commit_required():
            return False
        return self._archive.commit()

    def close(self) -> bool:
        """Commits any pending changes and closes the document."""
        return self._archive.close()

    # --- Read-only Access ---
    @property
    def filename(self) -> str:
        return self._archive.filename

    @property
    def closed(self) -> bool:
        return self._archive.closed

    def entries(self) -> List[zipfile.ZipInfo]:
        return self._archive.entries()

    def __iter__(self) -> Iterator[zipfile.ZipInfo]:
        return iter(self._archive)

    def __len__(self) -> int:
        return len(self._archive)

    @property
    def size(self) -> int:
        return self._archive.size

    def find_entry(self, entry: EntryName) -> Optional[zipfile.ZipInfo]:
        return self._archive.find_entry(entry)

    def get_entry(self, entry: EntryName) -> zipfile.ZipInfo:
        return self._archive.get_entry(entry)

    def exists(self, entry: EntryName) -> bool:
        return self._archive.exists(entry)

    def is_directory(self, entry: EntryName) -> bool:
        return self._archive.is_directory(entry)

    def glob(self, pattern: str) -> List[zipfile.ZipInfo]:
        return self._archive.glob(pattern)

    def read(self, entry: EntryName) -> bytes:
        return self._archive.read(entry)

    def get_input_stream(self, entry: EntryName) -> BinaryIO:
        return self._archive.get_input_stream(entry)

    def extract(self, entry: EntryName, destination_folder: str) -> str:
        return self._archive.extract(entry, destination_folder)

    # --- Verification ---
    def verify(self) -> bool:
        """Checks the mimetype file and all managed entries. Returns True if they pass."""
        try:
            self.verify_or_fail()
        except Exception:
            return False
        return True

    def verify_or_fail(self):
        """Checks the mimetype file and all managed entries, raising MalformedContainerError."""
        self._check_mimetype()
        self.verify_managed_entries_or_fail()

    def __str__(self) -> str:
        return f"{self.filename} - {self._mimetype}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.filename!r} mimetype={self._mimetype!r}>"


verify = Container.verify_file
verify_or_fail = Container.verify_file_or_fail
