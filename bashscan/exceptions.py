"""Shared exception types for bashscan."""


class BashscanError(Exception):
    """Base exception for all bashscan errors."""


class ShellParseError(BashscanError):
    """The shell command could not be parsed."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class HookInputError(BashscanError):
    """Hook payload is not valid JSON or has the wrong shape."""
