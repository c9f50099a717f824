"""
Classifier contract and the Gemini-backed implementation.

A classifier maps one file (metadata, extracted text, optional image) and
the category list to a chosen relPath with a confidence. It must never
raise for per-file problems: on any failure it returns a fallback result
with a blank path and confidence 0 so the plan builder routes the file to
the required category.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from ..errors import ClassificationFailure
from ..utils import print_warning
from .client import call_llm, parse_llm_json
from .models import DEFAULT_MODEL
from .prompts import build_system_prompt, build_classify_prompt

MAX_SUMMARY_CHARS = 50
MAX_TAGS = 5


@dataclass(frozen=True)
class CategoryDef:
    rel_path: str
    display: str
    keywords: list[str] = field(default_factory=list)
    ext_filter: str | None = None
    ai_hint: str | None = None


@dataclass(frozen=True)
class FileMeta:
    name: str
    ext: str
    full_path: str
    mtime: datetime
    size_bytes: int


@dataclass(frozen=True)
class ClassifyRequest:
    base_path: str
    uncategorized_rel_path: str
    categories: list[CategoryDef]
    file: FileMeta
    extracted_text: str
    image_bytes: bytes | None = None
    image_mime: str | None = None
    image_hint: str | None = None


@dataclass(frozen=True)
class ClassifyResult:
    rel_path: str
    confidence: float
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    reason: str = ""


class Classifier(Protocol):
    def classify(self, request: ClassifyRequest) -> ClassifyResult:
        ...


def fallback_result(reason: str) -> ClassifyResult:
    """Structurally valid result that sends the file to the required category."""
    return ClassifyResult(rel_path="", confidence=0.0, summary="", tags=[], reason=reason)


def parse_classify_response(data: dict) -> ClassifyResult:
    """
    Turn the model's JSON object into a ClassifyResult.

    Raises:
        ClassificationFailure: If "path" is missing or not a string.
    """
    path = data.get("path")
    if not isinstance(path, str):
        raise ClassificationFailure(f"Response has no usable 'path': {data!r}")

    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0
    confidence = min(max(confidence, 0.0), 1.0)

    summary = str(data.get("summary") or "")[:MAX_SUMMARY_CHARS]
    tags = data.get("tags") or []
    if not isinstance(tags, list):
        tags = [tags]
    tags = [str(t).strip() for t in tags if str(t).strip()][:MAX_TAGS]

    return ClassifyResult(
        rel_path=path.strip(),
        confidence=confidence,
        summary=summary,
        tags=tags,
        reason=str(data.get("reason") or ""),
    )


class GeminiClassifier:
    """Classifier that asks Gemini, attaching the image inline when present."""

    def __init__(
        self,
        api_key: str,
        model_name: str = DEFAULT_MODEL,
        attempts: int = 3,
        initial_delay: float = 0.2,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.attempts = attempts
        self.initial_delay = initial_delay

    def classify(self, request: ClassifyRequest) -> ClassifyResult:
        if not self.api_key:
            return fallback_result("ai-failed(no-api-key)")

        system_prompt = build_system_prompt()
        prompt = build_classify_prompt(request)

        delay = self.initial_delay
        last_error = None
        for attempt in range(1, self.attempts + 1):
            try:
                response_text = call_llm(
                    prompt,
                    self.api_key,
                    self.model_name,
                    system_instruction=system_prompt,
                    image_bytes=request.image_bytes,
                    image_mime=request.image_mime,
                )
                return parse_classify_response(parse_llm_json(response_text))
            except Exception as e:  # bad JSON, missing path, or SDK transport errors
                last_error = e

            if attempt < self.attempts:
                time.sleep(delay)
                delay *= 2

        print_warning(f"Classification failed for {request.file.name}: {str(last_error)[:80]}")
        return fallback_result("ai-failed")
