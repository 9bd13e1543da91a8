"""Storage utilities for deterministic staging and artifact locations."""

import hashlib
import re
import shutil
from pathlib import Path
from typing import Optional

from src.utils.logger import logger as LOGGER


ARCHIVE_EXTENSION = "cbz"
PART_SUFFIX = ".part"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_component(value: str) -> str:
    """Return a filesystem-safe path component for a source-side identifier.

    Identifiers such as "/manga/123/solo-leveling" are flattened; when any
    character had to be replaced, a short hash of the original is appended so
    distinct ids never collapse onto the same directory.
    """
    cleaned = _UNSAFE_CHARS.sub("_", value).strip("._")
    if cleaned == value and cleaned:
        return cleaned

    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()[:8]
    if not cleaned:
        return digest
    return f"{cleaned[:80]}-{digest}"


def get_staging_root(root: Path) -> Path:
    """Return the directory holding every job's staging directory."""
    return root / "staging"


def get_chapters_root(root: Path) -> Path:
    """Return the directory holding packaged chapters."""
    return root / "chapters"


def get_staging_path(root: Path, source_id: str, manga_id: str, chapter_id: str) -> Path:
    """Return deterministic staging directory for a chapter download."""
    return (
        get_staging_root(root)
        / safe_component(source_id)
        / safe_component(manga_id)
        / safe_component(chapter_id)
    )


def get_artifact_path(root: Path, source_id: str, manga_id: str, chapter_id: str) -> Path:
    """Return deterministic archive path for a chapter."""
    return (
        get_chapters_root(root)
        / safe_component(source_id)
        / safe_component(manga_id)
        / f"{safe_component(chapter_id)}.{ARCHIVE_EXTENSION}"
    )


def sequence_width(page_count: int) -> int:
    """Return zero-padding width so names sort in page order."""
    return max(3, len(str(page_count)))


def get_page_stem(sequence: int, page_count: int) -> str:
    """Return the staged file name (without extension) for a 1-based sequence number."""
    return f"{sequence:0{sequence_width(page_count)}d}"


def list_staged_pages(staging_dir: Path) -> list[Path]:
    """Return completed page files in ascending sequence order.

    Temporary ``.part`` files are never returned.
    """
    if not staging_dir.is_dir():
        return []

    staged = []
    for path in staging_dir.iterdir():
        if not path.is_file() or path.name.endswith(PART_SUFFIX):
            continue
        if not path.stem.isdigit():
            continue
        staged.append(path)

    return sorted(staged, key=lambda p: int(p.stem))


def list_artifacts(root: Path) -> list[dict]:
    """Return every packaged chapter under ``root``, sorted by path.

    Directory names are the filesystem-safe forms of the ids, so they are
    reported as such rather than mapped back.
    """
    chapters_root = get_chapters_root(root)
    if not chapters_root.is_dir():
        return []

    artifacts = []
    for path in sorted(chapters_root.glob(f"*/*/*.{ARCHIVE_EXTENSION}")):
        stat = path.stat()
        artifacts.append({
            "source_dir": path.parent.parent.name,
            "manga_dir": path.parent.name,
            "chapter": path.stem,
            "artifact_path": str(path),
            "size_bytes": stat.st_size,
            "modified_at": stat.st_mtime,
        })
    return artifacts

def remove_tree(path: Optional[Path]) -> None:
    """Remove a staging directory and its contents if it exists."""
    if path is None or not path.exists():
        return

    try:
        shutil.rmtree(path)
    except OSError as e:
        LOGGER.warning(f"Failed to remove {path}: {e}")
