"""Conversion gateway, task registry and result models."""

from codeshift.conversion.errors import (
    ConfigurationError,
    ConversionError,
    EmptyInputError,
    MalformedResponseError,
    ProviderError,
)
from codeshift.conversion.gateway import ConversionGateway, GeminiConversionGateway
from codeshift.conversion.models import ConversionItem, ConversionResult
from codeshift.conversion.tasks import CSS_TO_TAILWIND, TaskConfig, get_task, list_tasks

__all__ = [
    "CSS_TO_TAILWIND",
    "ConfigurationError",
    "ConversionError",
    "ConversionGateway",
    "ConversionItem",
    "ConversionResult",
    "EmptyInputError",
    "GeminiConversionGateway",
    "MalformedResponseError",
    "ProviderError",
    "TaskConfig",
    "get_task",
    "list_tasks",
]
