"""
Módulo de análisis con IA.

Califica listings candidatos por batch usando LLM (Gemini/Groq).
"""

from faro.analysis.llm_providers import (
    get_llm_provider,
    BaseLLMProvider,
    GeminiProvider,
    GroqProvider,
    LLMResponse,
)
from faro.analysis.prompt_template import (
    DEFAULT_BATCH_PROMPT,
    is_template,
    build_batch_prompt,
    requirements_from_criteria,
    validate_template,
)
from faro.analysis.response_parser import parse_batch_response, reconcile
from faro.analysis.batch_qualifier import BatchQualifier, BatchOutcome

__all__ = [
    # Calificador
    "BatchQualifier",
    "BatchOutcome",
    # Prompts
    "DEFAULT_BATCH_PROMPT",
    "is_template",
    "build_batch_prompt",
    "requirements_from_criteria",
    "validate_template",
    # Parseo
    "parse_batch_response",
    "reconcile",
    # Proveedores LLM
    "get_llm_provider",
    "BaseLLMProvider",
    "GeminiProvider",
    "GroqProvider",
    "LLMResponse",
]
