"""File entry and batch data models."""

import os
from collections.abc import Iterable, Iterator
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from amv.handles import PathHandle


class RenameStatus(str, Enum):
    """Outcome of one rename attempt."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class FileEntry(BaseModel):
    """One file or directory in the working batch.

    Serializes with camelCase keys, which is what the browser UI sends and expects.
    The capability handle never leaves the process.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        arbitrary_types_allowed=True,
    )

    path: str = Field(description="Batch-unique identifier: parent directory and name joined by '/'")
    name: str = Field(description="Current display name")
    is_directory: bool = Field(default=False, description="Whether the entry is a directory")
    original_name: str = Field(frozen=True, description="Name at the time the entry was added")
    suggested_name: str | None = Field(default=None, description="Model-proposed new name")
    rename_status: RenameStatus | None = Field(default=None, description="Set only after a rename attempt")
    rename_error: str | None = Field(default=None, description="Failure details, present only with an error status")
    handle: Any = Field(default=None, exclude=True, repr=False, description="Rename capability")

    def __str__(self) -> str:
        return f"FileEntry('{self.path}', suggested={self.suggested_name!r}, status={self.rename_status})"

    @classmethod
    def from_path(cls, path: Path) -> "FileEntry":
        """Create an entry for a local filesystem path, carrying a PathHandle.

        The path is made absolute and `..` components are collapsed, so every spelling of a
        directory groups its entries under one parent. Symlinks are kept, not followed.
        """
        path = Path(os.path.abspath(path))
        return cls(
            path=path.as_posix(),
            name=path.name,
            is_directory=path.is_dir(),
            original_name=path.name,
            handle=PathHandle(path),
        )

    @property
    def parent_path(self) -> str:
        """Directory part of `path`, or '/' for top-level entries."""
        return self.path.rpartition("/")[0] or "/"

    @property
    def has_new_name(self) -> bool:
        return bool(self.suggested_name) and self.suggested_name != self.original_name

    def clear_suggestion(self) -> None:
        """Forget the previous suggestion and rename outcome before a new round."""
        self.suggested_name = None
        self.clear_status()

    def clear_status(self) -> None:
        self.rename_status = None
        self.rename_error = None

    def mark(self, status: RenameStatus, error: str | None = None) -> None:
        self.rename_status = status
        self.rename_error = error if status is RenameStatus.ERROR else None

    def to_api(self) -> dict:
        """Serialize for the HTTP API, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _sort_key(entry: FileEntry) -> tuple[bool, str]:
    # Directories first, then case-insensitive by original name
    return (not entry.is_directory, entry.original_name.lower())


class Batch:
    """Ordered collection of the entries the user is working with.

    Entries are unique by `path` and kept in display order after every mutation.
    """

    def __init__(self, entries: Iterable[FileEntry] | None = None) -> None:
        self._entries: list[FileEntry] = []
        if entries is not None:
            self.add(entries)

    @classmethod
    def from_paths(cls, paths: Iterable[Path], expand_directories: bool = True) -> "Batch":
        """Build a batch from local filesystem paths.

        Args:
            paths: Files and/or directories selected by the user.
            expand_directories: If True, a directory contributes one entry per file found
                recursively below it instead of an entry for itself.

        Returns:
            A sorted Batch whose entries carry PathHandle capabilities.
        """
        entries: list[FileEntry] = []
        for path in paths:
            if path.is_dir() and expand_directories:
                entries.extend(FileEntry.from_path(child) for child in sorted(path.rglob("*")) if child.is_file())
            else:
                entries.append(FileEntry.from_path(path))
        return cls(entries)

    def add(self, entries: Iterable[FileEntry]) -> int:
        """Add entries, skipping paths already in the batch.

        Returns:
            Number of entries actually added.
        """
        known = {entry.path for entry in self._entries}
        added = 0
        for entry in entries:
            if entry.path in known:
                continue
            known.add(entry.path)
            self._entries.append(entry)
            added += 1
        self.sort()
        return added

    def get(self, path: str) -> FileEntry:
        for entry in self._entries:
            if entry.path == path:
                return entry
        raise KeyError(path)

    def clear(self) -> None:
        self._entries = []

    def sort(self) -> None:
        self._entries.sort(key=_sort_key)

    @property
    def entries(self) -> list[FileEntry]:
        return list(self._entries)

    def has_suggestions(self) -> bool:
        return any(entry.has_new_name for entry in self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> FileEntry:
        return self._entries[index]
