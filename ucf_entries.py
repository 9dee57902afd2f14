# -*- coding: utf-8 -*-
"""
ucf_entries.py

Reserved names and managed entries for UCF containers.

A reserved name is an entry name (such as "mimetype") that may only be written
by the container itself. A managed entry is a file or directory that the
container knows about: its name is reserved as well, it may be required to be
present, and a managed file may validate its own contents.

Managed entries form a tree. The container is the root; ManagedDirectory
objects own further managed files and directories. Every entry keeps a weak
reference to its parent, which is how it computes its fully qualified name
and finds the container whose archive it lives in.

Name comparisons are case-insensitive and ignore one trailing "/".
"""

import weakref
from typing import Dict, Any, Optional, List, Iterator, Callable, Iterable, Union

from ucf_archive import ArchiveError

# --- Constants ---
SEPARATOR = "/"

Validator = Callable[[bytes], bool]


# --- Custom Exceptions ---
class UcfError(Exception):
    """Base class for exceptions raised by the container layer."""

    pass


class MalformedContainerError(UcfError):
    """Raised when a document breaks the structural rules of its container format."""

    pass


class ReservedNameClashError(UcfError):
    """Raised when creating, writing or renaming onto a reserved or managed name."""

    def __init__(self, name: str):
        super().__init__(f'The supplied name "{name}" clashes with a reserved name.')
        self.name = name


class FeatureNotAvailableError(UcfError):
    """Raised when a feature (like schema validation) is used but its dependency is missing."""

    pass


# --- Helper Functions ---
def fold_name(name: str) -> str:
    """Returns the comparison key of an entry name."""
    if name.endswith(SEPARATOR):
        name = name[:-1]
    return name.lower()


def matches_name(name: str, names: Iterable[str]) -> bool:
    """Is `name` one of `names`, ignoring case and a trailing separator?"""
    key = fold_name(name)
    return any(fold_name(candidate) == key for candidate in names)


def _always_valid(contents: bytes) -> bool:
    return True


class NameRegistry:
    """
    An insertion-ordered set of reserved names with case-insensitive lookup.

    Names are stored as given; only comparisons fold case and drop a trailing
    separator. There is no way to unregister a name.
    """

    def __init__(self, names: Iterable[str] = ()):
        self._names: List[str] = []
        self._keys: set = set()
        for name in names:
            self.register(name)

    def register(self, name: str) -> bool:
        """Adds `name` unless it is already reserved. Returns True if it was added."""
        if not isinstance(name, str) or not name.strip(SEPARATOR):
            raise ValueError(f"Reserved names must be non-empty strings, got {name!r}.")
        key = fold_name(name)
        if key in self._keys:
            return False
        self._keys.add(key)
        self._names.append(name)
        return True

    def is_reserved(self, candidate: str) -> bool:
        return fold_name(candidate) in self._keys

    def all(self) -> List[str]:
        return list(self._names)

    def __contains__(self, candidate: object) -> bool:
        return isinstance(candidate, str) and self.is_reserved(candidate)

    def __iter__(self) -> Iterator[str]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"NameRegistry({self._names!r})"


class ManagedEntries:
    """
    Owner of managed files and directories.

    Mixed into the container (the root of the tree) and into ManagedDirectory.
    Owners must call _init_managed_entries() from their constructor.
    """

    def _init_managed_entries(self, entries: Iterable[Any] = ()):
        self._directories: Dict[str, "ManagedDirectory"] = {}
        self._files: Dict[str, "ManagedFile"] = {}
        for entry in entries:
            self.register_managed_entry(entry)

    def _qualify(self, name: str) -> str:
        """Returns the fully qualified form of a child name."""
        return name

    def register_managed_entry(self, entry: Union["ManagedEntry", str]) -> "ManagedEntry":
        """
        Registers a ManagedFile or ManagedDirectory with this owner.

        A plain string registers an optional ManagedFile of that name. An entry
        registered under a name that is already taken replaces the earlier one.
        """
        if isinstance(entry, str):
            entry = ManagedFile(entry)
        is_directory = getattr(entry, "is_directory", False)
        if not (is_directory or getattr(entry, "is_file", False)):
            raise TypeError("The supplied entry must be a ManagedDirectory or ManagedFile (or a subclass of either).")

        entry.parent = self
        if is_directory:
            self._directories[entry.name] = entry
        else:
            self._files[entry.name] = entry
        return entry

    def managed_directories(self) -> List["ManagedDirectory"]:
        """Returns all managed directories below this owner, nested ones included."""
        directories: List[ManagedDirectory] = []
        for directory in self._directories.values():
            directories.append(directory)
            directories.extend(directory.managed_directories())
        return directories

    def managed_files(self) -> List["ManagedFile"]:
        """Returns all managed files below this owner, those in managed directories included."""
        files: List[ManagedFile] = list(self._files.values())
        for directory in self._directories.values():
            files.extend(directory.managed_files())
        return files

    def managed_entries(self) -> List["ManagedEntry"]:
        return self.managed_directories() + self.managed_files()

    def managed_directory_names(self) -> List[str]:
        return [directory.full_name for directory in self.managed_directories()]

    def managed_file_names(self) -> List[str]:
        return [managed_file.full_name for managed_file in self.managed_files()]

    def managed_entry_names(self) -> List[str]:
        return self.managed_directory_names() + self.managed_file_names()

    def managed_entry(self, name: str) -> Optional["ManagedEntry"]:
        """Returns the managed entry with the fully qualified `name`, or None."""
        key = fold_name(name)
        for entry in self.managed_entries():
            if fold_name(entry.full_name) == key:
                return entry
        return None

    def is_managed_entry(self, name: str) -> bool:
        return matches_name(name, self.managed_entry_names())

    def is_managed_file(self, name: str) -> bool:
        return matches_name(name, self.managed_file_names())

    def is_managed_directory(self, name: str) -> bool:
        return matches_name(name, self.managed_directory_names())

    def verify_managed_entries(self) -> bool:
        """Verifies every directly registered entry, and through them the whole subtree."""
        results = [entry.verify() for entry in list(self._directories.values()) + list(self._files.values())]
        return all(results)

    def verify_managed_entries_or_fail(self):
        """Like verify_managed_entries(), but raises MalformedContainerError on the first failure."""
        for directory in self._directories.values():
            directory.verify_or_fail()
        for managed_file in self._files.values():
            managed_file.verify_or_fail()


class ManagedEntry:
    """
    Base class of ManagedFile and ManagedDirectory. Not used directly.
    """

    is_file = False
    is_directory = False

    def __init__(self, name: str, required: bool = False):
        if not isinstance(name, str):
            raise TypeError(f"Entry names must be strings, got {type(name).__name__}.")
        if name.endswith(SEPARATOR):
            name = name[:-1]
        if not name or SEPARATOR in name:
            raise ValueError(f'Invalid managed entry name: "{name}". Use a single path segment.')
        self._name = name
        self._required = bool(required)
        self._parent_ref: Optional[weakref.ref] = None

    @property
    def name(self) -> str:
        """The local name of this entry within its parent."""
        return self._name

    @property
    def required(self) -> bool:
        return self._required

    @property
    def parent(self) -> Optional[ManagedEntries]:
        return None if self._parent_ref is None else self._parent_ref()

    @parent.setter
    def parent(self, parent: ManagedEntries):
        current = self.parent
        if current is not None and current is not parent:
            raise ValueError(f'Managed entry "{self._name}" is already registered elsewhere.')
        self._parent_ref = weakref.ref(parent)

    @property
    def full_name(self) -> str:
        """The fully qualified name of this entry in the container."""
        parent = self.parent
        return self._name if parent is None else parent._qualify(self._name)

    @property
    def container(self):
        """The container this entry is registered in."""
        owner = self.parent
        while isinstance(owner, ManagedEntry):
            owner = owner.parent
        if owner is None:
            raise UcfError(f'Managed entry "{self._name}" is not registered with a container.')
        return owner

    def exists(self) -> bool:
        """Does this entry exist in the container?"""
        name = self.full_name
        for info in self.container.entries():
            test = name + SEPARATOR if info.is_dir() else name
            if info.filename == test:
                return True
        return False

    def verify(self) -> bool:
        """An entry verifies if it is optional or present."""
        return not self._required or self.exists()

    def verify_or_fail(self):
        """Raises MalformedContainerError if this entry is required but missing."""
        if self._required and not self.exists():
            raise MalformedContainerError(f'Entry "{self.full_name}" is required but missing.')

    def __repr__(self) -> str:
        kind = "required" if self._required else "optional"
        return f"<{type(self).__name__} {self.full_name!r} ({kind})>"


class ManagedFile(ManagedEntry):
    """
    A file whose name is reserved in the container namespace.

    If given, `validator` is called with the raw contents of the file when the
    container is verified and must return True for the file to pass. For
    example, a file that need not be present but must otherwise contain a
    greeting:

        ManagedFile("greeting.txt", validator=lambda contents: b"Hello" in contents)
    """

    is_file = True

    def __init__(self, name: str, required: bool = False, validator: Optional[Validator] = None):
        super().__init__(name, required)
        self._validator: Validator = validator if validator is not None else _always_valid

    def validate(self, contents: bytes) -> bool:
        """Returns True if `contents` are acceptable for this file."""
        return bool(self._validator(contents))

    def read(self) -> bytes:
        """Returns the raw contents of this file."""
        return self.container.read(self.full_name)

    def write(self, data: Union[bytes, str]):
        """Writes this file, creating any missing managed parent directories first."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        parent = self.parent
        if isinstance(parent, ManagedDirectory) and not parent.exists():
            parent.create()
        self.container._write_managed_file(self.full_name, data)

    def _check_contents(self):
        """Raises MalformedContainerError unless this file is readable and valid."""
        if self.container.is_directory(self.full_name):
            raise MalformedContainerError(f'Entry "{self.full_name}" must be a file, not a directory.')
        try:
            contents = self.read()
        except ArchiveError as e:
            raise MalformedContainerError(f'The contents of file "{self.full_name}" cannot be read: {e}') from e
        if not self.validate(contents):
            raise MalformedContainerError(f'The contents of file "{self.full_name}" do not pass validation.')

    def verify(self) -> bool:
        if not super().verify():
            return False
        if not self.exists():
            return True
        try:
            self._check_contents()
        except MalformedContainerError:
            return False
        return True

    def verify_or_fail(self):
        super().verify_or_fail()
        if self.exists():
            self._check_contents()


class ManagedDirectory(ManagedEntry, ManagedEntries):
    """
    A directory whose name is reserved in the container namespace, and the
    owner of the (possibly) managed entries within it.
    """

    is_directory = True

    def __init__(self, name: str, required: bool = False, entries: Iterable[Union[ManagedEntry, str]] = ()):
        super().__init__(name, required)
        self._init_managed_entries(entries)

    def _qualify(self, name: str) -> str:
        return self.full_name + SEPARATOR + name

    def create(self):
        """Adds this directory to the container if it is not there yet."""
        parent = self.parent
        if isinstance(parent, ManagedDirectory) and not parent.exists():
            parent.create()
        if not self.exists():
            self.container._create_managed_directory(self.full_name)

    def verify(self) -> bool:
        own = super().verify()
        children = self.verify_managed_entries()
        return own and children

    def verify_or_fail(self):
        super().verify_or_fail()
        self.verify_managed_entries_or_fail()
