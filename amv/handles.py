"""Rename capabilities held by file entries."""

from abc import ABC, abstractmethod
from pathlib import Path


class FileHandle(ABC):
    """Capability to rename one filesystem object in place.

    The rename executor only relies on a callable `rename(new_name)`, so objects from
    other environments can stand in without subclassing.
    """

    @abstractmethod
    def rename(self, new_name: str) -> None:
        """Rename the object within its current directory.

        Raises:
            FileExistsError: If something else already uses `new_name`.
            OSError: For any other filesystem failure.
        """
        pass


class PathHandle(FileHandle):
    """Capability backed by a local filesystem path."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def rename(self, new_name: str) -> None:
        if not new_name or "/" in new_name or new_name in (".", ".."):
            raise ValueError(f"Invalid target name: {new_name!r}")
        if not self.path.exists():
            raise FileNotFoundError(f"Source file not found: {self.path}")

        target = self.path.with_name(new_name)
        # Case-only renames resolve to the same file on case-insensitive filesystems
        if target.exists() and not target.samefile(self.path):
            raise FileExistsError(f"Target file already exists: {target}")

        self.path = self.path.rename(target)

    def __repr__(self) -> str:
        return f"PathHandle({str(self.path)!r})"
