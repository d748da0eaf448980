"""Unit tests for SuggestionPipeline."""

from unittest.mock import MagicMock, call

import pytest

from amv.errors import EmptyResponseError, ProviderConfigurationError, SuggestionValidationError
from amv.models.entries import FileEntry, RenameStatus
from amv.models.results import BatchOutcome, FailureKind
from amv.processors.suggestion_pipeline import CancellationToken, SuggestionPipeline, parse_suggestion


def make_entry(name: str) -> FileEntry:
    return FileEntry(path=f"docs/{name}", name=name, original_name=name)


@pytest.fixture
def mock_client():
    """Create a mock model client."""
    return MagicMock()


@pytest.fixture
def mock_sleep():
    """Record waits instead of sleeping."""
    return MagicMock()


@pytest.fixture
def pipeline(mock_client, mock_sleep):
    return SuggestionPipeline(client=mock_client, rules="Use kebab-case", sleep=mock_sleep)


class TestParseSuggestion:
    """Tests for parse_suggestion."""

    def test_valid(self):
        """Test a well-formed response."""
        assert parse_suggestion('{"suggestion": "report-2024.pdf"}') == "report-2024.pdf"

    def test_strips_whitespace(self):
        """Test that surrounding whitespace is removed."""
        assert parse_suggestion('{"suggestion": "  report.pdf \\n"}') == "report.pdf"

    def test_extra_fields_ignored(self):
        """Test that unrelated properties do not invalidate the response."""
        assert parse_suggestion('{"suggestion": "a.txt", "reason": "lowercase"}') == "a.txt"

    def test_invalid_json(self):
        """Test non-JSON output."""
        with pytest.raises(SuggestionValidationError, match="invalid JSON response"):
            parse_suggestion("Sure! The new name is report.pdf")

    @pytest.mark.parametrize(
        "text",
        ['{"name": "a.txt"}', '{"suggestion": ""}', '{"suggestion": "   "}', '{"suggestion": 42}', '["a.txt"]', "null"],
    )
    def test_missing_or_unusable_suggestion(self, text: str):
        """Test JSON without a usable suggestion."""
        with pytest.raises(SuggestionValidationError, match="AI did not return a valid suggestion"):
            parse_suggestion(text)


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_cancel(self):
        token = CancellationToken()
        assert not token.cancelled

        token.cancel()

        assert token.cancelled


class TestSuggestOne:
    """Tests for single-entry suggestion with retries."""

    def test_success_first_attempt(self, pipeline, mock_client, mock_sleep):
        """Test a suggestion obtained on the first request."""
        mock_client.complete.return_value = '{"suggestion": "quarterly-report.pdf"}'
        entry = make_entry("Quarterly Report.pdf")

        failure = pipeline.suggest_one(entry)

        assert failure is None
        assert entry.suggested_name == "quarterly-report.pdf"
        assert mock_client.complete.call_count == 1
        mock_sleep.assert_not_called()

    def test_prompt_contains_rules_and_name(self, pipeline, mock_client):
        """Test the prompt sent to the model."""
        mock_client.complete.return_value = '{"suggestion": "a.txt"}'

        pipeline.suggest_one(make_entry("A.TXT"))

        prompt = mock_client.complete.call_args.args[0]
        assert "Use kebab-case" in prompt
        assert "A.TXT" in prompt

    def test_retry_bound_and_backoff(self, pipeline, mock_client, mock_sleep):
        """Test that a persistently failing entry gets three attempts with growing waits."""
        mock_client.complete.side_effect = ConnectionError("connection refused")
        entry = make_entry("a.txt")

        failure = pipeline.suggest_one(entry)

        assert mock_client.complete.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]
        assert entry.suggested_name is None
        assert failure.kind is FailureKind.TRANSPORT
        assert failure.attempts == 3
        assert failure.path == "docs/a.txt"
        assert "connection refused" in failure.message

    def test_invalid_json_then_valid(self, pipeline, mock_client, mock_sleep):
        """Test recovery after two invalid responses."""
        mock_client.complete.side_effect = ["not json", "{broken", '{"suggestion": "report.pdf"}']
        entry = make_entry("Report.PDF")

        failure = pipeline.suggest_one(entry)

        assert failure is None
        assert entry.suggested_name == "report.pdf"
        assert mock_client.complete.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    def test_validation_failure(self, pipeline, mock_client):
        """Test that exhausted validation failures are reported as such."""
        mock_client.complete.return_value = '{"name": "a.txt"}'

        failure = pipeline.suggest_one(make_entry("a.txt"))

        assert failure.kind is FailureKind.VALIDATION
        assert failure.message == "AI did not return a valid suggestion"

    def test_empty_response_is_retried(self, pipeline, mock_client):
        """Test that an empty answer counts as a failed attempt."""
        mock_client.complete.side_effect = [EmptyResponseError("No response from AI model"), '{"suggestion": "b.txt"}']
        entry = make_entry("a.txt")

        assert pipeline.suggest_one(entry) is None
        assert entry.suggested_name == "b.txt"

    def test_configuration_error_not_retried(self, pipeline, mock_client, mock_sleep):
        """Test that configuration errors abort immediately."""
        mock_client.complete.side_effect = ProviderConfigurationError("OpenAI is not configured")

        with pytest.raises(ProviderConfigurationError):
            pipeline.suggest_one(make_entry("a.txt"))

        assert mock_client.complete.call_count == 1
        mock_sleep.assert_not_called()

    def test_keyboard_interrupt_not_retried(self, pipeline, mock_client, mock_sleep):
        """Test that Ctrl-C during a request stops at once instead of retrying."""
        mock_client.complete.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            pipeline.suggest_one(make_entry("a.txt"))

        assert mock_client.complete.call_count == 1
        mock_sleep.assert_not_called()

    def test_clears_previous_suggestion(self, pipeline, mock_client):
        """Test that a failed regeneration does not leave the old suggestion behind."""
        mock_client.complete.side_effect = ConnectionError("down")
        entry = make_entry("a.txt")
        entry.suggested_name = "stale.txt"
        entry.mark(RenameStatus.ERROR, "old failure")

        pipeline.suggest_one(entry)

        assert entry.suggested_name is None
        assert entry.rename_status is None

    def test_custom_attempts(self, mock_client, mock_sleep):
        """Test a pipeline configured with a different retry budget."""
        mock_client.complete.side_effect = ConnectionError("down")
        pipeline = SuggestionPipeline(mock_client, "rules", max_attempts=2, backoff_seconds=0.5, sleep=mock_sleep)

        failure = pipeline.suggest_one(make_entry("a.txt"))

        assert failure.attempts == 2
        assert mock_sleep.call_args_list == [call(0.5)]


class TestRun:
    """Tests for whole-batch suggestion rounds."""

    def test_processes_entries_in_order(self, pipeline, mock_client):
        """Test that every entry gets one request, in order."""
        entries = [make_entry("a.txt"), make_entry("b.txt"), make_entry("c.txt")]
        mock_client.complete.side_effect = [
            '{"suggestion": "1.txt"}',
            '{"suggestion": "2.txt"}',
            '{"suggestion": "3.txt"}',
        ]
        updates = []

        result = pipeline.run(entries, on_update=lambda index, entry: updates.append((index, entry.original_name)))

        assert result.outcome is BatchOutcome.COMPLETED
        assert result.processed == 3
        assert result.suggested == 3
        assert result.failures == []
        assert [entry.suggested_name for entry in entries] == ["1.txt", "2.txt", "3.txt"]
        assert updates == [(0, "a.txt"), (1, "b.txt"), (2, "c.txt")]

    def test_failure_does_not_stop_batch(self, pipeline, mock_client, mock_sleep):
        """Test that a failing entry is skipped after its attempts."""
        entries = [make_entry("a.txt"), make_entry("b.txt")]
        mock_client.complete.side_effect = [
            ConnectionError("down"),
            ConnectionError("down"),
            ConnectionError("down"),
            '{"suggestion": "bee.txt"}',
        ]

        result = pipeline.run(entries)

        assert result.outcome is BatchOutcome.COMPLETED
        assert result.processed == 2
        assert result.suggested == 1
        assert [failure.path for failure in result.failures] == ["docs/a.txt"]
        assert entries[0].suggested_name is None
        assert entries[1].suggested_name == "bee.txt"

    def test_clears_stale_state_before_round(self, pipeline, mock_client):
        """Test that no suggestion from an earlier round survives."""
        entries = [make_entry("a.txt"), make_entry("b.txt")]
        for entry in entries:
            entry.suggested_name = "old.txt"
            entry.mark(RenameStatus.SUCCESS)
        mock_client.complete.side_effect = ['{"suggestion": "new.txt"}'] + [ConnectionError("down")] * 3

        pipeline.run(entries)

        assert entries[0].suggested_name == "new.txt"
        assert entries[1].suggested_name is None
        assert all(entry.rename_status is None for entry in entries)

    def test_cancellation(self, pipeline, mock_client):
        """Test cancelling after the second of five entries."""
        entries = [make_entry(f"{index}.txt") for index in range(5)]
        mock_client.complete.return_value = '{"suggestion": "renamed.txt"}'
        token = CancellationToken()

        def on_update(index: int, entry: FileEntry) -> None:
            if index == 1:
                token.cancel()

        result = pipeline.run(entries, token=token, on_update=on_update)

        assert result.cancelled
        assert result.processed == 2
        assert mock_client.complete.call_count == 2
        assert [entry.suggested_name for entry in entries] == ["renamed.txt", "renamed.txt", None, None, None]

    def test_cancelled_before_start(self, pipeline, mock_client):
        """Test that an already cancelled token sends nothing."""
        token = CancellationToken()
        token.cancel()

        result = pipeline.run([make_entry("a.txt")], token=token)

        assert result.cancelled
        assert result.processed == 0
        mock_client.complete.assert_not_called()

    def test_configuration_error_aborts_batch(self, pipeline, mock_client):
        """Test that configuration errors propagate out of the round."""
        mock_client.complete.side_effect = ProviderConfigurationError("not configured")

        with pytest.raises(ProviderConfigurationError):
            pipeline.run([make_entry("a.txt"), make_entry("b.txt")])

        assert mock_client.complete.call_count == 1
