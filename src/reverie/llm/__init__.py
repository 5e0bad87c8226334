"""Provider adapters and error classification for Reverie."""

from reverie.llm.adapters import (
    AzureResponsesAdapter,
    GeminiAdapter,
    OpenAIChatAdapter,
    ProviderAdapter,
    create_adapter,
)
from reverie.llm.errors import (
    ErrorClassifier,
    GenerationCancelled,
    GenerationError,
    ProviderError,
    ToolExecutionError,
)

__all__ = [
    "AzureResponsesAdapter",
    "ErrorClassifier",
    "GeminiAdapter",
    "GenerationCancelled",
    "GenerationError",
    "OpenAIChatAdapter",
    "ProviderAdapter",
    "ProviderError",
    "ToolExecutionError",
    "create_adapter",
]
