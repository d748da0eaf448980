"""Batch-local naming collision detection."""

from collections.abc import Iterable

from amv.models.entries import FileEntry
from amv.models.results import CollisionReport


def detect_collisions(entries: Iterable[FileEntry]) -> CollisionReport:
    """Find entries that would be renamed to the same name in the same directory.

    Only entries with a new name take part. Within a directory, the first entry claiming
    a target name is remembered; every later claimant marks both itself and that first
    entry, and adds one message naming the pair.

    The real filesystem is not consulted: an existing file that already has the target
    name is only discovered when the rename itself fails.

    Args:
        entries: Entries of the batch, in display order.

    Returns:
        CollisionReport with the colliding entry paths and one message per clash.
    """
    report = CollisionReport()
    # parent path -> {target name -> first claimant}
    claimed: dict[str, dict[str, FileEntry]] = {}

    for entry in entries:
        if not entry.has_new_name:
            continue

        names = claimed.setdefault(entry.parent_path, {})
        first = names.get(entry.suggested_name)
        if first is None:
            names[entry.suggested_name] = entry
            continue

        report.paths.add(entry.path)
        report.paths.add(first.path)
        report.messages.append(
            f'Naming collision: "{entry.original_name}" and "{first.original_name}" '
            f'would both be renamed to "{entry.suggested_name}"'
        )

    return report
