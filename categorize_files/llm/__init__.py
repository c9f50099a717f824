"""
LLM integration for content classification.

Provides:
- Classifier contract types
- Gemini-backed classifier
- Gemini API client and JSON parsing
"""

from .classifier import (
    CategoryDef,
    FileMeta,
    ClassifyRequest,
    ClassifyResult,
    Classifier,
    GeminiClassifier,
    fallback_result,
)
from .client import call_llm, configure_gemini, parse_llm_json
from .models import GEMINI_MODELS, DEFAULT_MODEL

__all__ = [
    "CategoryDef",
    "FileMeta",
    "ClassifyRequest",
    "ClassifyResult",
    "Classifier",
    "GeminiClassifier",
    "fallback_result",
    "call_llm",
    "configure_gemini",
    "parse_llm_json",
    "GEMINI_MODELS",
    "DEFAULT_MODEL",
]
