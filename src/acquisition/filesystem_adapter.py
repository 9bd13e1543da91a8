"""Filesystem-based source adapter for testing and local chapter libraries."""

from pathlib import Path

from .adapter import ChapterInfo, MangaInfo, PageRef
from src.errors import NotFoundError, ParseError


PAGE_PATTERNS = ("*.png", "*.jpg", "*.jpeg", "*.webp")


class FilesystemAdapter:
    """Adapter that reads chapters from ``<root>/<series>/<chapter>/<page>`` on disk."""

    name = "Local filesystem"

    def __init__(self, source_id: str, root_path: Path):
        """Initialize filesystem adapter with source ID and root directory."""
        self.source_id = source_id
        self.root_path = Path(root_path)

    def _inside_root(self, *parts: str) -> Path:
        """Join ids onto the root, refusing paths that escape it."""
        root = self.root_path.resolve()
        path = root.joinpath(*parts).resolve()
        if path == root or root not in path.parents:
            raise NotFoundError(f"Not found: {'/'.join(parts)}")
        return path

    def search(self, query: str, page: int = 1) -> list[MangaInfo]:
        """Search for series by matching directory names.

        All matches fit on the first page.
        """
        results = []
        if page > 1 or not self.root_path.exists():
            return results

        for series_dir in sorted(self.root_path.iterdir()):
            if series_dir.is_dir() and query.lower() in series_dir.name.lower():
                results.append(
                    MangaInfo(
                        source_id=self.source_id,
                        manga_id=series_dir.name,
                        title=series_dir.name,
                    )
                )
        return results

    def manga(self, manga_id: str) -> MangaInfo:
        series_path = self._inside_root(manga_id)
        if not series_path.is_dir():
            raise NotFoundError(f"Series not found: {manga_id}")

        return MangaInfo(source_id=self.source_id, manga_id=manga_id, title=series_path.name)

    def chapters(self, manga_id: str) -> list[ChapterInfo]:
        """List all chapters in a series directory."""
        series_path = self._inside_root(manga_id)
        if not series_path.is_dir():
            raise NotFoundError(f"Series not found: {manga_id}")

        return [
            ChapterInfo(
                source_id=self.source_id,
                manga_id=manga_id,
                chapter_id=chapter_dir.name,
                title=chapter_dir.name,
            )
            for chapter_dir in sorted(series_path.iterdir())
            if chapter_dir.is_dir()
        ]

    def pages(self, manga_id: str, chapter_id: str) -> list[PageRef]:
        """Return ``file://`` URIs for the chapter's images in filename order."""
        chapter_path = self._inside_root(manga_id, chapter_id)
        if not chapter_path.is_dir():
            raise NotFoundError(f"Chapter not found: {manga_id}/{chapter_id}")

        page_files = sorted(
            {path for pattern in PAGE_PATTERNS for path in chapter_path.glob(pattern)},
            key=lambda p: p.name,
        )
        if not page_files:
            raise ParseError(f"No page images in {chapter_path}")

        return [
            PageRef(index=idx, url=path.resolve().as_uri())
            for idx, path in enumerate(page_files)
        ]
