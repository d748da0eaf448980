"""Per-file name suggestion pipeline."""

import json
import threading
import time
from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from rich.console import Console
from rich.markup import escape
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from amv.errors import ProviderConfigurationError, SuggestionValidationError
from amv.models.entries import FileEntry
from amv.models.results import BatchOutcome, FailureKind, SuggestionBatchResult, SuggestionFailure
from amv.prompts import build_rename_prompt
from amv.providers import ModelClient


console = Console()

# Attempts per entry, first request included
MAX_SUGGESTION_ATTEMPTS = 3

# The n-th retry waits n * RETRY_BACKOFF_SECONDS
RETRY_BACKOFF_SECONDS = 1.0

ProgressCallback = Callable[[int, FileEntry], None]


class SuggestionPayload(BaseModel):
    """JSON object the model is asked to answer with."""

    model_config = ConfigDict(extra="ignore")

    suggestion: str = Field(strict=True, description="New file or directory name, without path")

    @field_validator("suggestion")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("suggestion is blank")
        return value.strip()


def parse_suggestion(text: str) -> str:
    """Extract the suggested name from a raw model response.

    Raises:
        SuggestionValidationError: If the response is not JSON, or has no usable `suggestion`.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SuggestionValidationError(
            f"AI model returned invalid JSON response. Please check if the model is working correctly. "
            f"Response: {text[:100]}..."
        ) from e

    if not isinstance(data, dict):
        raise SuggestionValidationError("AI did not return a valid suggestion")
    try:
        payload = SuggestionPayload.model_validate(data)
    except ValidationError as e:
        raise SuggestionValidationError("AI did not return a valid suggestion") from e
    return payload.suggestion


class CancellationToken:
    """Cooperative cancellation signal for one suggestion batch."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SuggestionPipeline:
    """Obtains a suggested name for each entry, one request at a time.

    A failing entry is retried with incrementing backoff and, once its attempts are
    exhausted, left without a suggestion while the batch moves on.
    """

    def __init__(
        self,
        client: ModelClient,
        rules: str,
        max_attempts: int = MAX_SUGGESTION_ATTEMPTS,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the pipeline.

        Args:
            client: Model client issuing single chat-completion requests.
            rules: User's renaming rules.
            max_attempts: Attempts per entry before giving up.
            backoff_seconds: Wait after the first failure; grows by the same amount per attempt.
            sleep: Function used to wait between attempts.
        """
        self.client = client
        self.rules = rules
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def _retrying(self, entry: FileEntry) -> Retrying:
        def _log_retry(retry_state: RetryCallState) -> None:
            """Log retry attempt information."""
            wait_time = getattr(retry_state.next_action, "sleep", 0) if retry_state.next_action else 0
            error = retry_state.outcome.exception() if retry_state.outcome else None
            console.print(
                f"  [yellow]Attempt {retry_state.attempt_number}/{self.max_attempts} for "
                f"{escape(entry.original_name)} failed: {escape(str(error))}. Retrying in {wait_time:.1f}s...[/yellow]"
            )

        return Retrying(
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(ProviderConfigurationError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    def _request_suggestion(self, entry: FileEntry) -> str:
        prompt = build_rename_prompt(entry, self.rules)
        return parse_suggestion(self.client.complete(prompt))

    def suggest_one(self, entry: FileEntry) -> SuggestionFailure | None:
        """Regenerate the suggestion for a single entry.

        Returns:
            None on success (the entry's `suggested_name` is set), otherwise the failure.

        Raises:
            ProviderConfigurationError: Immediately, without retrying.
        """
        entry.clear_suggestion()
        retrying = self._retrying(entry)

        try:
            suggestion = retrying(self._request_suggestion, entry)
        except ProviderConfigurationError:
            raise
        except Exception as e:
            kind = FailureKind.VALIDATION if isinstance(e, SuggestionValidationError) else FailureKind.TRANSPORT
            failure = SuggestionFailure(
                path=entry.path,
                original_name=entry.original_name,
                kind=kind,
                message=str(e) or type(e).__name__,
                attempts=retrying.statistics.get("attempt_number", self.max_attempts),
            )
            console.print(f"  [red]No suggestion for {escape(entry.original_name)}: {escape(failure.message)}[/red]")
            return failure

        entry.suggested_name = suggestion
        return None

    def run(
        self,
        entries: Sequence[FileEntry],
        token: CancellationToken | None = None,
        on_update: ProgressCallback | None = None,
    ) -> SuggestionBatchResult:
        """Generate suggestions for a whole batch, in order.

        Previous suggestions and rename statuses are cleared first. The token is checked
        before each request; after cancellation the entries already processed keep their
        results and the rest stay untouched.

        Args:
            entries: Entries in display order.
            token: Cancellation token for this batch.
            on_update: Called with (index, entry) after each entry is processed.

        Returns:
            SuggestionBatchResult with outcome COMPLETED or CANCELLED.
        """
        token = token or CancellationToken()
        result = SuggestionBatchResult()

        for entry in entries:
            entry.clear_suggestion()

        for index, entry in enumerate(entries):
            if token.cancelled:
                console.print(f"[yellow]Cancelled after {result.processed}/{len(entries)} file(s).[/yellow]")
                result.outcome = BatchOutcome.CANCELLED
                return result

            console.print(
                f"  [dim]Requesting suggestion for {escape(entry.original_name)} ({index + 1}/{len(entries)})[/dim]"
            )
            failure = self.suggest_one(entry)
            result.processed += 1
            if failure is None:
                result.suggested += 1
            else:
                result.failures.append(failure)

            if on_update is not None:
                on_update(index, entry)

        return result
