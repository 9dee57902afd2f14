# -*- coding: utf-8 -*-
"""
ucf_archive.py

This module defines the ZipArchive class, a buffered read/modify/write view of
a standard PK ZIP archive. It is the generic container underneath the UCF
policy layer in ucf_container.py and knows nothing about reserved names.

Changes (add, remove, rename, replace, mkdir, comment) are kept in memory and
written by commit() or close(). A commit rewrites the whole archive into a
temporary file next to the original, in the original entry order, and then
moves it into place. Entry order is therefore stable, which is what keeps a
leading entry (such as a UCF "mimetype" file) at offset 0.

Entries are described by zipfile.ZipInfo objects. Directory entries carry a
trailing "/" in their names.
"""

import fnmatch
import io
import os
import tempfile
import time
import zipfile
import zlib
from typing import Dict, Optional, List, BinaryIO, Literal, Iterator, Union

# --- Constants ---
DEFAULT_COMPRESSION = zipfile.ZIP_DEFLATED
SUPPORTED_COMPRESSION = {
    "stored": zipfile.ZIP_STORED,
    "deflated": zipfile.ZIP_DEFLATED,
}
FILE_PERMISSIONS = 0o644
DIRECTORY_PERMISSIONS = 0o755
WRITABLE_MODES = ("w", "a", "r+")
CHUNK_SIZE = 64 * 1024  # 64KB for streaming operations

# MS-DOS directory attribute, stored in the low byte of external_attr
_MSDOS_DIRECTORY = 0x10

Source = Union[bytes, bytearray, str, "os.PathLike[str]"]


# --- Custom Exceptions ---
class ArchiveError(Exception):
    """Base class for exceptions raised by the archive layer."""

    pass


class EntryNotFoundError(ArchiveError, KeyError):
    """Raised when a requested entry is not found in the archive."""

    pass


class EntryExistsError(ArchiveError):
    """Raised when adding or renaming onto an entry that already exists."""

    pass


# --- Helper Functions ---
def _entry_name(entry: Union[str, zipfile.ZipInfo]) -> str:
    """Returns the archive name for a name or ZipInfo, using forward slashes."""
    name = entry.filename if isinstance(entry, zipfile.ZipInfo) else os.fspath(entry)
    return name.replace(os.sep, "/").lstrip("/")


def normalize_name(entry: Union[str, zipfile.ZipInfo]) -> str:
    """Returns the name `entry` is stored under, without trailing separators."""
    return _entry_name(entry).rstrip("/")


def _copy_info(info: zipfile.ZipInfo, name: str) -> zipfile.ZipInfo:
    """Returns a fresh ZipInfo carrying the attributes of `info` under `name`."""
    copy = zipfile.ZipInfo(name, info.date_time)
    copy.compress_type = info.compress_type
    copy.external_attr = info.external_attr
    copy.create_system = info.create_system
    copy.comment = info.comment
    return copy


def _now() -> tuple:
    return time.localtime(time.time())[:6]


class _PendingEntry:
    """An entry as it will be written: its ZipInfo plus where its data lives."""

    __slots__ = ("info", "data", "source")

    def __init__(self, info: zipfile.ZipInfo, data: Optional[bytes] = None, source: Optional[zipfile.ZipInfo] = None):
        self.info = info
        # New or replaced content; None means "read it from `source`".
        self.data = data
        self.source = source


class _EntryWriter(io.BytesIO):
    """A writable stream whose contents are stored in the archive on close."""

    def __init__(self, archive: "ZipArchive", entry_name: str, compress_type: int):
        super().__init__()
        self._archive = archive
        self._entry_name = entry_name
        self._compress_type = compress_type

    def close(self):
        if not self.closed:
            self._archive._put(self._entry_name, self.getvalue(), self._compress_type, overwrite=True)
        super().close()


# --- Main Class ---
class ZipArchive:
    """
    Represents a ZIP archive on disk, opened for reading or modification.
    """

    def __init__(self, filename: Union[str, "os.PathLike[str]"]):
        """Initializes the ZipArchive object."""
        if not filename:
            raise ValueError("Filename cannot be empty.")
        self.filename: str = os.fspath(filename)
        self._zip: Optional[zipfile.ZipFile] = None
        self._entries: Dict[str, _PendingEntry] = {}
        self._comment: bytes = b""
        self._open_mode: Optional[Literal["r", "w", "a", "r+"]] = None
        self._modified: bool = False

    def open(self, mode: Literal["r", "w", "a", "r+"] = "r") -> "ZipArchive":
        """Opens the archive file."""
        if self._open_mode is not None:
            if self._open_mode == mode:
                return self
            else:
                self.close()

        if mode not in ("r", "w", "a", "r+"):
            raise ValueError(f'Invalid mode: "{mode}". Use "r", "w", "a", or "r+".')

        file_exists = os.path.exists(self.filename)
        if mode in ("r", "r+") and not file_exists:
            raise FileNotFoundError(f'File not found: "{self.filename}"')

        self._reset()
        self._open_mode = mode

        if mode == "w" or (mode == "a" and not file_exists):
            # A new archive has to be written even if nothing is added to it.
            self._modified = True
            return self

        try:
            self._load()
        except zipfile.BadZipFile as e:
            self._reset()
            raise ArchiveError(f'"{self.filename}" is not a valid ZIP archive: {e}') from e
        except (IOError, OSError) as e:
            self._reset()
            raise ArchiveError(f'Failed to open "{self.filename}" in mode "{mode}": {e}') from e

        return self

    def close(self) -> bool:
        """
        Closes the archive, committing any pending changes first.

        Returns True if anything was written.
        """
        if self._open_mode is None:
            return False
        try:
            return self.commit() if self._open_mode in WRITABLE_MODES else False
        finally:
            self._release()
            self._reset()

    def __enter__(self) -> "ZipArchive":
        """Enter the runtime context."""
        if self._open_mode is None:
            self.open("r")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit the runtime context."""
        self.close()

    @property
    def closed(self) -> bool:
        return self._open_mode is None

    @property
    def mode(self) -> Optional[str]:
        return self._open_mode

    # --- Internal State Handling ---
    def _reset(self):
        self._entries = {}
        self._comment = b""
        self._open_mode = None
        self._modified = False

    def _release(self):
        """Closes the underlying zipfile handle, if any."""
        if self._zip is not None:
            try:
                self._zip.close()
            except (IOError, OSError) as e:
                print(f'Warning: Error closing file handle for "{self.filename}": {e}')
            finally:
                self._zip = None

    def _load(self):
        """Reads the central directory of the archive on disk."""
        self._zip = zipfile.ZipFile(self.filename, "r")
        self._comment = self._zip.comment
        self._entries = {}
        for info in self._zip.infolist():
            self._entries[info.filename] = _PendingEntry(info, source=info)
        self._modified = False

    def _require_open(self):
        if self._open_mode is None:
            raise ArchiveError(f'Archive "{self.filename}" is not open.')

    def _require_writable(self):
        self._require_open()
        if self._open_mode not in WRITABLE_MODES:
            raise ArchiveError('Archive must be open in "w", "a" or "r+" mode to modify entries.')

    def _resolve(self, entry: Union[str, zipfile.ZipInfo]) -> Optional[str]:
        """Returns the key of the entry called `entry`, or `entry/` for directories."""
        name = _entry_name(entry)
        if name in self._entries:
            return name
        if not name.endswith("/") and name + "/" in self._entries:
            return name + "/"
        return None

    def _lookup(self, entry: Union[str, zipfile.ZipInfo]) -> str:
        self._require_open()
        key = self._resolve(entry)
        if key is None:
            raise EntryNotFoundError(f'Entry not found: "{_entry_name(entry)}"')
        return key

    def _entry_data(self, pending: _PendingEntry) -> bytes:
        if pending.data is not None:
            return pending.data
        if pending.source is None or self._zip is None:
            return b""
        try:
            return self._zip.read(pending.source)
        except (zipfile.BadZipFile, zlib.error) as e:
            raise ArchiveError(f'Failed to read entry "{pending.info.filename}": {e}') from e

    def _put(self, entry_name: str, data: bytes, compress_type: Optional[int], overwrite: bool, info: Optional[zipfile.ZipInfo] = None):
        """Stores `data` under `entry_name`, keeping the position of a replaced entry."""
        self._require_writable()
        existing = self._resolve(entry_name.rstrip("/"))
        if existing is not None and not overwrite:
            raise EntryExistsError(f'Entry already exists: "{entry_name}"')

        if info is None:
            info = zipfile.ZipInfo(entry_name, _now())
            info.external_attr = FILE_PERMISSIONS << 16
        info.compress_type = DEFAULT_COMPRESSION if compress_type is None else compress_type

        pending = _PendingEntry(info, bytes(data))
        if existing is not None and existing != entry_name:
            self._replace_key(existing, entry_name, pending)
        else:
            self._entries[entry_name] = pending
        self._modified = True

    def _replace_key(self, old_key: str, new_key: str, pending: _PendingEntry):
        """Swaps `old_key` for `new_key` without moving the entry."""
        entries: Dict[str, _PendingEntry] = {}
        for key, value in self._entries.items():
            if key == old_key:
                entries[new_key] = pending
            elif key != new_key:
                entries[key] = value
        self._entries = entries

    @staticmethod
    def _read_source(entry_name: str, source: Source) -> tuple:
        """Returns (data, ZipInfo or None) for a bytes or file path source."""
        if isinstance(source, (bytes, bytearray)):
            return bytes(source), None
        path = os.fspath(source)
        if not os.path.isfile(path):
            raise FileNotFoundError(f'Source file not found: "{path}"')
        with open(path, "rb") as f:
            data = f.read()
        return data, zipfile.ZipInfo.from_file(path, entry_name)

    # --- Read-only Access ---
    def entries(self) -> List[zipfile.ZipInfo]:
        """Returns the ZipInfo of every entry, in archive order."""
        self._require_open()
        return [pending.info for pending in self._entries.values()]

    def names(self) -> List[str]:
        """Returns the name of every entry, in archive order."""
        self._require_open()
        return list(self._entries.keys())

    def __iter__(self) -> Iterator[zipfile.ZipInfo]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        """Number of entries in the archive."""
        return len(self._entries)

    def find_entry(self, entry: Union[str, zipfile.ZipInfo]) -> Optional[zipfile.ZipInfo]:
        """Returns the ZipInfo for `entry` (or the directory `entry/`), or None."""
        self._require_open()
        key = self._resolve(entry)
        return None if key is None else self._entries[key].info

    def get_entry(self, entry: Union[str, zipfile.ZipInfo]) -> zipfile.ZipInfo:
        """Like find_entry(), but raises EntryNotFoundError for missing entries."""
        return self._entries[self._lookup(entry)].info

    def exists(self, entry: Union[str, zipfile.ZipInfo]) -> bool:
        return self.find_entry(entry) is not None

    def is_directory(self, entry: Union[str, zipfile.ZipInfo]) -> bool:
        info = self.find_entry(entry)
        return info is not None and info.is_dir()

    def glob(self, pattern: str) -> List[zipfile.ZipInfo]:
        """Returns the entries whose names match the shell-style `pattern`."""
        self._require_open()
        return [pending.info for name, pending in self._entries.items() if fnmatch.fnmatchcase(name.rstrip("/"), pattern.rstrip("/"))]

    def read(self, entry: Union[str, zipfile.ZipInfo]) -> bytes:
        """Returns the (uncompressed) contents of a file entry."""
        key = self._lookup(entry)
        pending = self._entries[key]
        if pending.info.is_dir():
            raise ArchiveError(f'Cannot read directory entry: "{key}"')
        return self._entry_data(pending)

    def get_input_stream(self, entry: Union[str, zipfile.ZipInfo]) -> BinaryIO:
        """Returns a readable binary stream over the contents of a file entry."""
        return io.BytesIO(self.read(entry))

    @property
    def comment(self) -> bytes:
        self._require_open()
        return self._comment

    @comment.setter
    def comment(self, value: Union[str, bytes]):
        self._require_writable()
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._comment = bytes(value)
        self._modified = True

    def commit_required(self) -> bool:
        """Returns True if there are changes that have not been written yet."""
        return self._open_mode is not None and self._modified

    def extract(self, entry: Union[str, zipfile.ZipInfo], destination_folder: str) -> str:
        """
        Extracts a single entry below `destination_folder`.

        Returns the path that was written. Entries whose names would escape the
        destination folder are refused.
        """
        key = self._lookup(entry)
        info = self._entries[key].info
        base = os.path.abspath(destination_folder)
        target_path = os.path.abspath(os.path.join(base, *key.rstrip("/").split("/")))
        if os.path.commonpath([base, target_path]) != base:
            raise ArchiveError(f'Refusing to extract "{key}" outside of "{destination_folder}".')

        if info.is_dir():
            os.makedirs(target_path, exist_ok=True)
            return target_path

        parent_dir = os.path.dirname(target_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)
        data = self.read(key)
        with open(target_path, "wb") as f:
            for offset in range(0, len(data), CHUNK_SIZE):
                f.write(data[offset : offset + CHUNK_SIZE])
        return target_path

    # --- Modification ---
    def add(self, entry: Union[str, zipfile.ZipInfo], source: Source, compress_type: Optional[int] = None, overwrite: bool = False):
        """
        Adds a file entry from bytes or from a local file path.

        Raises EntryExistsError if the entry exists and `overwrite` is False.
        """
        self._require_writable()
        entry_name = _entry_name(entry)
        if not entry_name or entry_name.endswith("/"):
            raise ArchiveError(f'Invalid file entry name: "{entry_name}". Use mkdir() for directories.')
        data, info = self._read_source(entry_name, source)
        self._put(entry_name, data, compress_type, overwrite, info=info)

    def get_output_stream(self, entry: Union[str, zipfile.ZipInfo], compress_type: Optional[int] = None) -> BinaryIO:
        """
        Returns a writable binary stream for an entry.

        The data is stored (replacing any existing entry of the same name) when
        the stream is closed, so use it as a context manager.
        """
        self._require_writable()
        entry_name = _entry_name(entry)
        if not entry_name or entry_name.endswith("/"):
            raise ArchiveError(f'Invalid file entry name: "{entry_name}".')
        return _EntryWriter(self, entry_name, DEFAULT_COMPRESSION if compress_type is None else compress_type)

    def mkdir(self, entry: Union[str, zipfile.ZipInfo], permissions: int = DIRECTORY_PERMISSIONS):
        """Adds a directory entry."""
        self._require_writable()
        entry_name = normalize_name(entry)
        if not entry_name:
            raise ArchiveError("Directory name cannot be empty.")
        if self._resolve(entry_name) is not None:
            raise EntryExistsError(f'Entry already exists: "{entry_name}"')

        info = zipfile.ZipInfo(entry_name + "/", _now())
        info.external_attr = ((0o040000 | permissions) << 16) | _MSDOS_DIRECTORY
        self._put(info.filename, b"", zipfile.ZIP_STORED, overwrite=False, info=info)

    def remove(self, entry: Union[str, zipfile.ZipInfo]):
        """Removes an entry."""
        self._require_writable()
        key = self._lookup(entry)
        del self._entries[key]
        self._modified = True

    def rename(self, entry: Union[str, zipfile.ZipInfo], new_name: str, overwrite: bool = False):
        """Renames an entry, keeping its position, data and attributes."""
        self._require_writable()
        key = self._lookup(entry)
        pending = self._entries[key]
        new_key = normalize_name(new_name)
        if not new_key:
            raise ArchiveError("New entry name cannot be empty.")
        if pending.info.is_dir():
            new_key += "/"
        if new_key == key:
            return

        existing = self._resolve(new_key.rstrip("/"))
        if existing is not None and existing != key:
            if not overwrite:
                raise EntryExistsError(f'Entry already exists: "{new_key}"')
            del self._entries[existing]

        renamed = _PendingEntry(_copy_info(pending.info, new_key), pending.data, pending.source)
        self._replace_key(key, new_key, renamed)
        self._modified = True

    def replace(self, entry: Union[str, zipfile.ZipInfo], source: Source):
        """Replaces the contents of an existing file entry."""
        self._require_writable()
        key = self._lookup(entry)
        pending = self._entries[key]
        if pending.info.is_dir():
            raise ArchiveError(f'Cannot replace directory entry: "{key}"')
        data, _ = self._read_source(key, source)
        info = _copy_info(pending.info, key)
        info.date_time = _now()
        self._entries[key] = _PendingEntry(info, data)
        self._modified = True

    def commit(self) -> bool:
        """
        Writes all pending changes to disk.

        Returns True if anything was written, False if there was nothing to do.
        """
        if not self.commit_required():
            return False
        self._require_writable()

        target_dir = os.path.dirname(os.path.abspath(self.filename))
        fd, temp_filename = tempfile.mkstemp(prefix=".ucf-", suffix=".tmp", dir=target_dir)
        os.close(fd)
        try:
            with zipfile.ZipFile(temp_filename, "w") as target:
                for name, pending in self._entries.items():
                    target.writestr(_copy_info(pending.info, name), self._entry_data(pending))
                target.comment = self._comment
            self._release()
            os.replace(temp_filename, self.filename)
        except (IOError, OSError, zipfile.BadZipFile) as e:
            self._discard(temp_filename)
            raise ArchiveError(f'Failed to write "{self.filename}": {e}') from e
        except ArchiveError:
            self._discard(temp_filename)
            raise

        try:
            self._load()
        except (zipfile.BadZipFile, IOError, OSError) as e:
            raise ArchiveError(f'Failed to reload "{self.filename}" after writing: {e}') from e
        return True

    def _discard(self, temp_filename: str):
        if os.path.exists(temp_filename):
            try:
                os.remove(temp_filename)
            except OSError as e:
                print(f'Warning: Could not remove temporary file "{temp_filename}": {e}')

    def __repr__(self) -> str:
        return f"<ZipArchive {self.filename!r} mode={self._open_mode!r} entries={len(self._entries)}>"
