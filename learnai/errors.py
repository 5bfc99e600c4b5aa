from __future__ import annotations


class LearnAIError(Exception):
    pass


class InputError(LearnAIError, ValueError):
    """The caller gave nothing usable to generate from."""


class TransportError(LearnAIError):
    """An LLM or extraction call failed before any content came back."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedContentError(LearnAIError):
    """Model output could not be coerced into the expected JSON shape.

    Never leaves a service: callers catch it and substitute a fallback record.
    """


class PersistenceError(LearnAIError):
    pass
