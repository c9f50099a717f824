"""
Dry-run plan builder.

Classifies every target file and computes where it would go, without
touching the filesystem: no directory is created and no file is moved.
Per-file extraction and classification problems fall back to the
required category; only cancellation and target enumeration failures
propagate.
"""

import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Protocol

from ..config import DEFAULT_THRESHOLD, DEFAULT_MAX_TEXT_BYTES
from ..errors import CancelToken, FatalApplyError
from ..extraction import TextExtractor, ImageContent, looks_like_image, normalize_and_trim
from ..index import IndexStore, stable_file_key
from ..llm.classifier import Classifier, ClassifyRequest, FileMeta, fallback_result
from ..paths import normalize_rel_path, combine_base, to_rel_from_base, get_available_name
from ..utils import print_warning
from .types import (
    Plan, PlanStats, CreateDir, MoveItem, PlanError,
    REASON_CLASSIFIED, REASON_FALLBACK,
)

SNIPPET_CHARS = 200


class Extractor(Protocol):
    def extract(self, path: str | Path) -> str:
        ...


def expand_targets(targets: Iterable[str | Path]) -> Iterator[Path]:
    """
    Expand files and directories into a flat, sorted list of files.

    Directories are walked recursively; hidden entries and symlinks inside
    them are skipped, as are unreadable subtrees. Missing targets are
    skipped with a warning. Overlapping targets yield each file once.

    Raises:
        FatalApplyError: If a target directory itself cannot be listed.
    """
    seen: set[str] = set()
    for path in _walk_targets(targets):
        key = str(path).lower()
        if key not in seen:
            seen.add(key)
            yield path


def _walk_targets(targets: Iterable[str | Path]) -> Iterator[Path]:
    for target in targets:
        if not str(target).strip():
            continue
        path = Path(os.path.abspath(target))

        if path.is_file():
            yield path
            continue
        if not path.is_dir():
            print_warning(f"Target not found, skipping: {path}")
            continue

        try:
            os.listdir(path)
        except OSError as e:
            raise FatalApplyError(f"Cannot enumerate target {path}: {e}")

        for dirpath, dirnames, filenames in os.walk(path):
            dirnames[:] = sorted(
                d for d in dirnames
                if not d.startswith('.') and not os.path.islink(os.path.join(dirpath, d))
            )
            for filename in sorted(filenames):
                if filename.startswith('.'):
                    continue
                filepath = Path(dirpath) / filename
                if filepath.is_symlink():
                    continue
                yield filepath


def _clean_name(name: str) -> str:
    return re.sub(r"[-_()\[\]（）【】]", " ", name).strip()


def build_filename_context(path: Path) -> str:
    """
    Fallback text for files with no extractable content.

    Cleaned file stem plus the names of the two nearest ancestor folders.
    """
    parts = [_clean_name(path.stem)]
    parent = path.parent
    for _ in range(2):
        if parent == parent.parent:
            break
        parts.append(_clean_name(parent.name))
        parent = parent.parent
    return " ".join(p for p in parts if p)


def build_file_meta(path: Path) -> FileMeta:
    stat = path.stat()
    return FileMeta(
        name=path.name,
        ext=path.suffix.lstrip("."),
        full_path=str(path),
        mtime=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        size_bytes=stat.st_size,
    )


def _same_dir(a: Path, b: Path) -> bool:
    return os.path.normcase(os.path.abspath(a)).lower() == os.path.normcase(os.path.abspath(b)).lower()


def _append_classify_log(log_dir: Path, source: Path, model_path: str, chosen: str, confidence: float) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"classify_{datetime.now():%Y%m%d}.log"
    line = (f"{datetime.now().isoformat(timespec='seconds')}\tmodelPath={model_path}\t"
            f"chosen={chosen}\tconf={confidence:.3f}\t{source}\n")
    with open(log_path, "a", encoding="utf-8") as f:
        f.write(line)


class PlanBuilder:
    """
    Computes a Plan from targets, a category tree and a classifier.

    Args:
        classifier: Classifier contract implementation.
        extractor: Text extractor; defaults to TextExtractor.
        index: Optional index store for best-effort audit records.
        threshold: Minimum confidence for a non-fallback category.
        max_text_bytes: Cap on text sent to the classifier.
        log_dir: Optional folder for per-day classification logs.
    """

    def __init__(
        self,
        classifier: Classifier,
        extractor: Extractor | None = None,
        index: IndexStore | None = None,
        threshold: float = DEFAULT_THRESHOLD,
        max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES,
        log_dir: Path | None = None,
    ):
        self.classifier = classifier
        self.extractor = extractor or TextExtractor(max_text_bytes)
        self.index = index
        self.threshold = threshold
        self.max_text_bytes = max_text_bytes
        self.log_dir = log_dir

    def build(self, targets, tree, base_path, cancel_token: CancelToken | None = None) -> Plan:
        base_path = Path(os.path.abspath(base_path))
        unc_rel = normalize_rel_path(tree.uncategorized.rel_path)
        categories = tree.category_defs()
        known = {c.rel_path.lower(): c.rel_path for c in categories}

        moves: list[MoveItem] = []
        unresolved: list[str] = []
        errors: list[PlanError] = []
        claimed: set[str] = set()

        for source in expand_targets(targets):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            try:
                meta = build_file_meta(source)
            except OSError as e:
                errors.append(PlanError(str(source), f"Cannot read file: {e}"))
                continue

            text, image = self._extract(source)
            request = ClassifyRequest(
                base_path=str(base_path),
                uncategorized_rel_path=unc_rel,
                categories=categories,
                file=meta,
                extracted_text=text,
                image_bytes=image.data if image else None,
                image_mime=image.mime if image else None,
                image_hint=image.hint if image else None,
            )
            result = self._classify(request)

            model_path = normalize_rel_path(result.rel_path)
            if not (result.confidence >= self.threshold) or model_path.lower() not in known:
                chosen_rel = unc_rel
            else:
                chosen_rel = known[model_path.lower()]
            reason = REASON_FALLBACK if chosen_rel == unc_rel else REASON_CLASSIFIED

            self._audit(source, result, model_path, chosen_rel, text)

            dest_dir = combine_base(base_path, chosen_rel)
            if _same_dir(source.parent, dest_dir):
                destination = source
            else:
                destination = get_available_name(dest_dir, source.name, claimed)
                claimed.add(str(destination).lower())

            if destination != source:
                moves.append(MoveItem(str(source), str(destination), reason))
            if reason == REASON_FALLBACK:
                unresolved.append(str(source))

        create_dirs: list[CreateDir] = []
        seen_dirs: set[str] = set()
        for move in moves:
            rel = to_rel_from_base(base_path, Path(move.destination).parent)
            if rel and rel.lower() not in seen_dirs:
                seen_dirs.add(rel.lower())
                create_dirs.append(CreateDir(rel))

        return Plan(
            create_dirs=tuple(create_dirs),
            rename_dirs=(),
            moves=tuple(moves),
            unresolved=tuple(unresolved),
            errors=tuple(errors),
            stats=PlanStats(
                create_count=len(create_dirs),
                rename_count=0,
                move_count=len(moves),
                unresolved_count=len(unresolved),
                error_count=len(errors),
            ),
        )

    def _extract(self, source: Path) -> tuple[str, ImageContent | None]:
        try:
            text = self.extractor.extract(source) or ""
        except Exception as e:  # extractor contract says never raise; tolerate ones that do
            print_warning(f"Extraction failed for {source.name}: {e}")
            text = ""
        if not text.strip():
            text = build_filename_context(source)

        image = None
        extract_image = getattr(self.extractor, "extract_image", None)
        if extract_image is not None and looks_like_image(source):
            try:
                image = extract_image(source)
            except Exception as e:
                print_warning(f"Image read failed for {source.name}: {e}")

        return normalize_and_trim(text, self.max_text_bytes), image

    def _classify(self, request: ClassifyRequest):
        try:
            return self.classifier.classify(request)
        except Exception as e:  # classifier contract says never raise; tolerate ones that do
            print_warning(f"Classifier error for {request.file.name}: {e}")
            return fallback_result("ai-failed")

    def _audit(self, source: Path, result, model_path: str, chosen_rel: str, text: str) -> None:
        """Write index and log records. Failures never affect the plan."""
        if self.index is not None:
            try:
                key = stable_file_key(source)
                self.index.upsert_classification_suggestion(key, chosen_rel, result.confidence)
                self.index.update_summary_snippet_tags(
                    key, source, result.summary, text[:SNIPPET_CHARS], list(result.tags)
                )
            except Exception as e:
                print_warning(f"Index update failed for {source.name}: {e}")

        if self.log_dir is not None:
            try:
                _append_classify_log(self.log_dir, source, model_path, chosen_rel, result.confidence)
            except OSError as e:
                print_warning(f"Classification log write failed: {e}")


def build_plan(
    targets,
    tree,
    base_path,
    threshold: float = DEFAULT_THRESHOLD,
    classifier: Classifier | None = None,
    extractor: Extractor | None = None,
    index: IndexStore | None = None,
    cancel_token: CancelToken | None = None,
) -> Plan:
    """
    Build a dry-run Plan.

    Args:
        targets: Files and/or directories to classify.
        tree: CategoryTree whose relPaths are already recomputed.
        base_path: Classification base directory.
        threshold: Minimum confidence in [0, 1].
        classifier: Classifier contract implementation.
        extractor: Text extractor (defaults to TextExtractor).
        index: Optional index store for audit records.
        cancel_token: Checked before each file.

    Returns:
        The immutable Plan.
    """
    if classifier is None:
        raise ValueError("A classifier is required to build a plan")
    builder = PlanBuilder(classifier, extractor=extractor, index=index, threshold=threshold)
    return builder.build(targets, tree, base_path, cancel_token)
