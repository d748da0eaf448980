"""Exceptions raised by amv."""


class AmvError(Exception):
    """Base class for amv errors."""


class ProviderConfigurationError(AmvError, ValueError):
    """A model identifier cannot be turned into a working provider configuration.

    Raised before any request is made, so callers must not retry it.
    """

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class EmptyResponseError(AmvError, RuntimeError):
    """The model provider answered without any content."""


class SuggestionValidationError(AmvError, ValueError):
    """The model answered, but not with a usable suggestion."""
