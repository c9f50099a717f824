"""
Text and image extraction for classification.

Every public method here returns an empty result instead of raising:
a file whose content cannot be read is still classified from its name.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from docx import Document
from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import TAGS
from pypdf import PdfReader

from .config import DEFAULT_MAX_TEXT_BYTES

TEXT_EXTENSIONS = {".txt", ".md", ".csv", ".log"}
IMAGE_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jfif": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".avif": "image/avif",
}
PDF_MAX_PAGES = 5
# Larger images are classified from text only.
MAX_IMAGE_BYTES = 8 * 1024 * 1024


@dataclass(frozen=True)
class ImageContent:
    data: bytes
    mime: str
    hint: str = ""


def looks_like_image(path: str | Path) -> bool:
    return Path(path).suffix.lower() in IMAGE_MIME_TYPES


def normalize_and_trim(text: str | None, max_bytes: int = DEFAULT_MAX_TEXT_BYTES) -> str:
    """
    Normalize whitespace and cap the UTF-8 size.

    Runs of spaces/tabs collapse to one space, line breaks are normalized
    (surrounding whitespace removed) and at most one blank line is kept.
    Truncation never splits a multi-byte character.
    """
    if not text or not text.strip():
        return ""
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"[ \t]*\r?\n[ \t]*", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()

    data = text.encode("utf-8")
    if len(data) <= max_bytes:
        return text
    return data[:max_bytes].decode("utf-8", errors="ignore")


def get_exif_date(image: Image.Image) -> str | None:
    """Return DateTimeOriginal (or DateTime) from EXIF as an ISO string."""
    exif = image.getexif()
    if not exif:
        return None

    by_name = {TAGS.get(tag_id, tag_id): value for tag_id, value in exif.items()}
    for tag in ("DateTimeOriginal", "DateTime"):
        date_str = by_name.get(tag)
        # Format is usually "YYYY:MM:DD HH:MM:SS"
        if isinstance(date_str, str) and len(date_str) >= 19:
            return date_str[:10].replace(":", "-") + "T" + date_str[11:19]
    return None


class TextExtractor:
    """Default extractor: plain text, .docx and .pdf, plus image payloads."""

    def __init__(self, max_bytes: int = DEFAULT_MAX_TEXT_BYTES):
        self.max_bytes = max_bytes

    def extract(self, path: str | Path) -> str:
        path = Path(path)
        ext = path.suffix.lower()
        try:
            if ext in TEXT_EXTENSIONS:
                raw = path.read_text(encoding="utf-8", errors="replace")
            elif ext == ".docx":
                raw = self._extract_docx(path)
            elif ext == ".pdf":
                raw = self._extract_pdf(path)
            else:
                return ""
        except Exception:  # corrupt archives raise parser-specific errors
            return ""
        return normalize_and_trim(raw, self.max_bytes)

    def extract_image(self, path: str | Path) -> ImageContent | None:
        path = Path(path)
        mime = IMAGE_MIME_TYPES.get(path.suffix.lower())
        if mime is None:
            return None
        try:
            if path.stat().st_size > MAX_IMAGE_BYTES:
                return None
            data = path.read_bytes()
        except OSError:
            return None
        return ImageContent(data=data, mime=mime, hint=self._image_hint(path))

    def _image_hint(self, path: Path) -> str:
        try:
            with Image.open(path) as img:
                parts = [f"{img.width}x{img.height}", img.format or ""]
                taken = get_exif_date(img)
                if taken:
                    parts.append(f"taken {taken}")
        except (UnidentifiedImageError, OSError, ValueError):
            return ""
        return ", ".join(p for p in parts if p)

    @staticmethod
    def _extract_docx(path: Path) -> str:
        document = Document(str(path))
        return "\n".join(p.text for p in document.paragraphs)

    @staticmethod
    def _extract_pdf(path: Path) -> str:
        reader = PdfReader(str(path))
        texts = []
        for page in reader.pages[:PDF_MAX_PAGES]:
            texts.append(page.extract_text() or "")
        return "\n".join(texts)
