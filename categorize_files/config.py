"""
Runtime settings for the category-based file sorter.

Values come from environment variables; a `.env` file in the working
directory is loaded first. Command-line flags override these values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .llm.models import DEFAULT_MODEL

# Minimum classifier confidence accepted for a non-fallback category.
# Used by the plan builder, the workflow controller and the CLI.
DEFAULT_THRESHOLD = 0.55

# Cap on extracted text handed to the classifier.
DEFAULT_MAX_TEXT_BYTES = 8 * 1024

DEFAULT_INDEX_PATH = Path.home() / ".categorize_files" / "index.db"


@dataclass
class Settings:
    """Resolved configuration for one process."""
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_MODEL
    threshold: float = DEFAULT_THRESHOLD
    max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES
    index_path: Path = field(default_factory=lambda: DEFAULT_INDEX_PATH)
    log_dir: Path | None = None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")
    return value


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(dotenv: bool = True) -> Settings:
    """
    Build Settings from the environment.

    Args:
        dotenv: Load a .env file before reading variables.

    Returns:
        Populated Settings.

    Raises:
        ValueError: If a numeric variable cannot be parsed.
    """
    if dotenv:
        load_dotenv()

    index_path = os.environ.get("CATEGORIZE_INDEX_PATH", "").strip()
    log_dir = os.environ.get("CATEGORIZE_LOG_DIR", "").strip()

    return Settings(
        gemini_api_key=os.environ.get("GEMINI_API_KEY", "").strip(),
        gemini_model=os.environ.get("GEMINI_MODEL", "").strip() or DEFAULT_MODEL,
        threshold=_float_env("CATEGORIZE_THRESHOLD", DEFAULT_THRESHOLD),
        max_text_bytes=_int_env("CATEGORIZE_MAX_TEXT_BYTES", DEFAULT_MAX_TEXT_BYTES),
        index_path=Path(index_path).expanduser() if index_path else DEFAULT_INDEX_PATH,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
    )
