"""Reverie: multi-provider LLM generation with fallback and tool calling."""

from reverie.core.cancellation import CancellationToken
from reverie.core.orchestrator import GenerationOrchestrator, OrchestratorSettings
from reverie.llm.errors import GenerationCancelled, GenerationError
from reverie.service import ResearchModelService
from reverie.types import (
    EffortLevel,
    ErrorKind,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    ParadigmContext,
)

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "EffortLevel",
    "ErrorKind",
    "GenerationCancelled",
    "GenerationError",
    "GenerationMode",
    "GenerationOrchestrator",
    "GenerationRequest",
    "GenerationResult",
    "OrchestratorSettings",
    "ParadigmContext",
    "ResearchModelService",
]
