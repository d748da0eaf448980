"""Applies approved renames through each entry's capability handle."""

import errno

from amv.models.entries import FileEntry, RenameStatus
from amv.models.results import RenameOutcome


NO_NEW_NAME_MESSAGE = "No new name suggested or same as original"
MISSING_HANDLE_MESSAGE = "File access unavailable - please re-add the file to rename it"
UNSUPPORTED_MESSAGE = "File renaming not supported: the file handle has no rename operation in this environment"
COLLISION_MESSAGE = "Naming collision detected - multiple files would have the same name"

# Substrings of error messages that mean the target name is taken
NAME_IN_USE_PATTERNS = ("already exists", "collision", "name is already in use")

NAME_IN_USE_ERRNOS = {errno.EEXIST, errno.ENOTEMPTY}


def is_name_in_use_error(error: BaseException) -> bool:
    """Whether a failed rename means the target name is already taken."""
    if isinstance(error, FileExistsError):
        return True
    if isinstance(error, OSError) and error.errno in NAME_IN_USE_ERRNOS:
        return True
    # Handles from other environments report this as a named error
    if type(error).__name__ == "InvalidModificationError":
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in NAME_IN_USE_PATTERNS)


def _finish(entry: FileEntry, status: RenameStatus, message: str = "") -> RenameOutcome:
    entry.mark(status, message or None)
    return RenameOutcome(
        path=entry.path,
        original_name=entry.original_name,
        status=status,
        message=message,
        new_name=entry.suggested_name,
    )


def mark_collision(entry: FileEntry) -> RenameOutcome:
    """Record that an entry was skipped because its target clashes within the batch."""
    return _finish(entry, RenameStatus.ERROR, COLLISION_MESSAGE)


def apply_rename(entry: FileEntry) -> RenameOutcome:
    """Rename one entry to its suggested name.

    Preconditions are checked in order: a new name, a handle, and a callable `rename`
    on that handle. Failures are recorded on the entry and returned, never raised, so
    the caller can carry on with the next entry.

    Args:
        entry: Entry that is not part of a batch collision.

    Returns:
        RenameOutcome with SUCCESS, WARNING (nothing to do) or ERROR.
    """
    if not entry.has_new_name:
        return _finish(entry, RenameStatus.WARNING, NO_NEW_NAME_MESSAGE)

    if entry.handle is None:
        return _finish(entry, RenameStatus.ERROR, MISSING_HANDLE_MESSAGE)

    rename = getattr(entry.handle, "rename", None)
    if not callable(rename):
        return _finish(entry, RenameStatus.ERROR, UNSUPPORTED_MESSAGE)

    try:
        rename(entry.suggested_name)
    except Exception as e:
        if is_name_in_use_error(e):
            message = f'Naming collision: A file or folder named "{entry.suggested_name}" already exists'
        else:
            message = str(e) or type(e).__name__
        return _finish(entry, RenameStatus.ERROR, message)

    return _finish(entry, RenameStatus.SUCCESS)
