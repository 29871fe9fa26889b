"""Typed failures raised by the conversion gateway."""

from __future__ import annotations


class ConversionError(Exception):
    """Base class for every failure surfaced as a conversion result."""

    label = "Conversion failed"

    def display(self) -> str:
        message = str(self)
        if not message or message == self.label:
            return self.label
        return f"{self.label}: {message}"


class EmptyInputError(ConversionError):
    label = "No input provided"

    def __init__(self, message: str = "No input provided") -> None:
        super().__init__(message)


class ConfigurationError(ConversionError):
    label = "Server misconfigured"


class ProviderError(ConversionError):
    """Provider answered with a non-success status or an error payload."""

    label = "AI Service Failed"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MalformedResponseError(ConversionError):
    """Provider text could not be decoded into a conversion result."""

    label = "AI Service Failed"

    def __init__(self, message: str, *, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text
