"""Result types returned by the suggestion and rename passes."""

from dataclasses import dataclass, field
from enum import Enum

from amv.models.entries import RenameStatus


class BatchOutcome(str, Enum):
    """How a suggestion batch ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Why a single entry did not get a suggestion."""

    TRANSPORT = "transport"
    VALIDATION = "validation"


@dataclass
class SuggestionFailure:
    """An entry that exhausted its attempts without a usable suggestion."""

    path: str
    original_name: str
    kind: FailureKind
    message: str
    attempts: int

    def __str__(self) -> str:
        return f"{self.original_name}: {self.message} ({self.kind.value}, {self.attempts} attempt(s))"


@dataclass
class SuggestionBatchResult:
    """Aggregate result of one suggestion round."""

    outcome: BatchOutcome = BatchOutcome.COMPLETED
    suggested: int = 0
    processed: int = 0
    failures: list[SuggestionFailure] = field(default_factory=list)
    error: str | None = None

    @property
    def cancelled(self) -> bool:
        return self.outcome is BatchOutcome.CANCELLED


@dataclass
class CollisionReport:
    """Entries whose suggested names clash inside one directory."""

    paths: set[str] = field(default_factory=set)
    messages: list[str] = field(default_factory=list)

    @property
    def has_collisions(self) -> bool:
        return bool(self.messages)

    def __contains__(self, path: str) -> bool:
        return path in self.paths


@dataclass
class RenameOutcome:
    """Result of one rename attempt."""

    path: str
    original_name: str
    status: RenameStatus
    message: str = ""
    new_name: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is RenameStatus.SUCCESS


@dataclass
class RenameSummary:
    """Aggregate result of one rename pass."""

    outcomes: list[RenameOutcome] = field(default_factory=list)
    collisions: CollisionReport = field(default_factory=CollisionReport)
    message: str = ""

    @property
    def successful(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        """Warnings and errors, collisions included."""
        return len(self.outcomes) - self.successful

    @property
    def warnings(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is RenameStatus.WARNING)

    @property
    def errors(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is RenameStatus.ERROR)

    @property
    def collision_count(self) -> int:
        return len(self.collisions.paths)

    @property
    def failures(self) -> list[RenameOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]
