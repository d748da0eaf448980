"""Batch orchestration: suggestion rounds, collision checks and renames."""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from amv.models.entries import Batch, FileEntry
from amv.models.results import BatchOutcome, RenameSummary, SuggestionBatchResult
from amv.processors.collisions import detect_collisions
from amv.processors.rename_executor import apply_rename, mark_collision
from amv.processors.suggestion_pipeline import CancellationToken, ProgressCallback, SuggestionPipeline
from amv.providers import DEFAULT_MODEL_IDENTIFIER, ModelClient, create_model_client
from amv.settings_store import MODEL_KEY, RULES_KEY, SettingsStore


console = Console()

# Status messages disappear after this many seconds
MESSAGE_TIMEOUT_SECONDS = 5.0


class MessageKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class StatusMessage:
    """Dismissible, user-facing message about the last operation."""

    text: str
    kind: MessageKind
    created_at: float = field(default_factory=time.monotonic)

    def expired(self, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        return now - self.created_at >= MESSAGE_TIMEOUT_SECONDS


def summarize_renames(summary: RenameSummary) -> str:
    """Human-readable result of a rename pass."""
    successful = summary.successful
    failed = summary.failed
    collisions = summary.collision_count

    if failed == 0 and collisions == 0:
        return f"Successfully renamed {successful} files!"

    if successful > 0:
        details = []
        if collisions > 0:
            details.append(f"{collisions} had naming collisions")
        if failed - collisions > 0:
            details.append(f"{failed - collisions} other failures")
        return f"Renamed {successful} files, {failed} failed ({', '.join(details)}). Check console for details."

    suffix = f" ({collisions} due to naming collisions)" if collisions > 0 else ""
    return f"Failed to rename files. {failed} operations failed{suffix}."


class RenameSession:
    """Drives one working batch from suggestions to renames.

    The session is the observable state: callers read `batch`, `message`, `is_loading`
    and `can_regenerate`, and may pass `on_change` to be told after every mutation.
    """

    def __init__(
        self,
        batch: Batch | None = None,
        rules: str | None = None,
        model_identifier: str | None = None,
        client_factory: Callable[[str], ModelClient] | None = None,
        store: SettingsStore | None = None,
        on_change: Callable[["RenameSession"], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the session.

        Args:
            batch: Initial batch, empty if omitted.
            rules: Renaming rules. Falls back to the stored rules.
            model_identifier: Model to use. Falls back to the stored model, then the default.
            client_factory: Builds a model client for a model identifier. Defaults to `create_model_client`.
            store: Persistence for rules and model. Nothing is persisted if omitted.
            on_change: Called with the session after each state change.
            sleep: Wait function passed to the suggestion pipeline between attempts.
        """
        self.batch = batch if batch is not None else Batch()
        self.store = store
        self.rules = rules if rules is not None else self._stored(RULES_KEY, "")
        self.model_identifier = model_identifier or self._stored(MODEL_KEY, DEFAULT_MODEL_IDENTIFIER)
        self.client_factory = client_factory or create_model_client
        self.on_change = on_change
        self.is_loading = False
        self.can_regenerate = False
        self._sleep = sleep
        self._message: StatusMessage | None = None
        self._token: CancellationToken | None = None

    def _stored(self, key: str, default: str) -> str:
        if self.store is None:
            return default
        value = self.store.get(key)
        return value if isinstance(value, str) and value else default

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def _show(self, kind: MessageKind, text: str) -> None:
        self._message = StatusMessage(text=text, kind=kind)
        self._notify()

    @property
    def message(self) -> StatusMessage | None:
        """Current status message, or None once it has expired."""
        if self._message is not None and self._message.expired():
            self._message = None
        return self._message

    def clear_message(self) -> None:
        self._message = None

    def set_rules(self, rules: str) -> None:
        self.rules = rules
        if self.store is not None:
            self.store.set(RULES_KEY, rules)

    def set_model(self, model_identifier: str) -> None:
        self.model_identifier = model_identifier
        if self.store is not None:
            self.store.set(MODEL_KEY, model_identifier)

    def add_entries(self, entries: Iterable[FileEntry]) -> int:
        added = self.batch.add(entries)
        self._notify()
        return added

    def add_paths(self, paths: Iterable[Path], expand_directories: bool = True) -> int:
        return self.add_entries(Batch.from_paths(paths, expand_directories=expand_directories))

    def clear(self) -> None:
        """Drop the whole batch."""
        self.batch.clear()
        self.can_regenerate = False
        self.clear_message()
        self._notify()

    def _pipeline(self) -> SuggestionPipeline:
        return SuggestionPipeline(self.client_factory(self.model_identifier), self.rules, sleep=self._sleep)

    def generate_suggestions(self, on_update: ProgressCallback | None = None) -> SuggestionBatchResult | None:
        """Run a suggestion round over the whole batch.

        Args:
            on_update: Called with (index, entry) after each entry of this round is processed.

        Returns:
            The batch result, or None if there are no rules to apply.
        """
        if not self.rules.strip():
            self._show(MessageKind.ERROR, "Please enter some renaming rules first.")
            return None

        self.is_loading = True
        self.can_regenerate = True
        self.clear_message()

        # A new token leaves any earlier round without a way to report progress
        token = CancellationToken()
        self._token = token

        def _on_update(index: int, entry: FileEntry) -> None:
            if self._token is not token:
                return
            if on_update is not None:
                on_update(index, entry)
            self._notify()

        try:
            for entry in self.batch:
                entry.clear_suggestion()
            self.batch.sort()
            self._notify()

            result = self._pipeline().run(self.batch.entries, token=token, on_update=_on_update)
        except Exception as e:
            console.print(f"[bold red]Failed to generate suggestions:[/bold red] {escape(str(e))}")
            self._show(MessageKind.ERROR, f"Failed to generate suggestions: {e}")
            return SuggestionBatchResult(outcome=BatchOutcome.FAILED, error=str(e))
        finally:
            self.is_loading = False
            if self._token is token:
                self._token = None

        if result.cancelled:
            self._show(MessageKind.ERROR, "AI suggestions generation was cancelled.")
        elif result.failures:
            for failure in result.failures:
                console.print(f"  [red]{escape(str(failure))}[/red]")
            self._show(
                MessageKind.ERROR,
                f"AI suggestions generated with {len(result.failures)} failure(s). Check console for details.",
            )
        else:
            self._show(MessageKind.SUCCESS, "AI suggestions generated successfully!")
        return result

    def cancel_suggestions(self) -> bool:
        """Signal the running suggestion round to stop before its next request.

        Returns:
            True if a round was running.
        """
        if self._token is None:
            return False
        self._token.cancel()
        return True

    def regenerate(self, path: str) -> bool:
        """Request a fresh suggestion for one entry, leaving the others alone.

        Only available after a suggestion round and until the next rename pass.

        Returns:
            True if the entry now has a suggestion.

        Raises:
            KeyError: If no entry has this path.
        """
        if not self.can_regenerate:
            self._show(MessageKind.ERROR, "Generate suggestions for the batch before regenerating a single file.")
            return False
        if not self.rules.strip():
            self._show(MessageKind.ERROR, "Please enter some renaming rules first.")
            return False

        entry = self.batch.get(path)
        entry.clear_suggestion()
        self._notify()

        try:
            failure = self._pipeline().suggest_one(entry)
        except Exception as e:
            console.print(f"[bold red]Failed to generate suggestion:[/bold red] {escape(str(e))}")
            failure_message = str(e)
        else:
            failure_message = failure.message if failure is not None else None

        if failure_message is not None:
            self._show(
                MessageKind.ERROR,
                f'Failed to generate suggestion for "{entry.original_name}": {failure_message}',
            )
            return False

        self._show(MessageKind.SUCCESS, f'AI suggestion generated for "{entry.original_name}"!')
        return True

    def rename_files(self) -> RenameSummary:
        """Apply every suggested rename that does not collide within the batch.

        Entries are handled strictly in batch order and each failure is recorded on its
        entry; the pass always reaches the end of the batch.

        Returns:
            RenameSummary with per-entry outcomes and the summary message.
        """
        self.is_loading = True
        self.can_regenerate = False
        self.clear_message()

        try:
            collisions = detect_collisions(self.batch)
            if collisions.has_collisions:
                console.print("[yellow]Naming collisions detected:[/yellow]")
                for message in collisions.messages:
                    console.print(f"  [yellow]{escape(message)}[/yellow]")

            summary = RenameSummary(collisions=collisions)
            for entry in self.batch:
                if entry.path in collisions:
                    outcome = mark_collision(entry)
                else:
                    outcome = apply_rename(entry)
                summary.outcomes.append(outcome)
                self._notify()

            self.batch.sort()
            summary.message = summarize_renames(summary)
        finally:
            self.is_loading = False

        for outcome in summary.failures:
            console.print(f"  [red]{escape(outcome.original_name)}: {escape(outcome.message)}[/red]")

        all_succeeded = summary.failed == 0 and summary.collision_count == 0
        self._show(MessageKind.SUCCESS if all_succeeded else MessageKind.ERROR, summary.message)
        return summary
