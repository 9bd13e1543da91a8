"""Tests for filesystem adapter."""

import tempfile
from pathlib import Path

import pytest
from PIL import Image

from src.acquisition.filesystem_adapter import FilesystemAdapter
from src.errors import NotFoundError, ParseError


@pytest.fixture
def temp_source_dir():
    """Create temporary source directory with test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir_path = Path(tmpdir)

        # Create test chapter
        chapter_path = tmpdir_path / "test-series" / "ch001"
        chapter_path.mkdir(parents=True)

        # Create test pages
        for i in range(3):
            img = Image.new("RGB", (100, 200), color=(255, 0, 0))
            img.save(chapter_path / f"page_{i:03d}.png")

        # Empty chapter
        (tmpdir_path / "test-series" / "ch002").mkdir()

        yield tmpdir_path


def test_search(temp_source_dir):
    """Test discovering series from filesystem."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)
    results = adapter.search("test")

    assert len(results) == 1
    assert results[0].manga_id == "test-series"
    assert results[0].title == "test-series"
    assert results[0].source_id == "filesystem"


def test_search_no_match(temp_source_dir):
    """Test discovering series with no matches."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)

    assert adapter.search("nonexistent") == []


def test_chapters(temp_source_dir):
    """Test listing chapters for a series."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)
    chapters = adapter.chapters("test-series")

    assert [c.chapter_id for c in chapters] == ["ch001", "ch002"]


def test_chapters_nonexistent_series(temp_source_dir):
    """Test listing chapters for nonexistent series."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)

    with pytest.raises(NotFoundError):
        adapter.chapters("nonexistent")


def test_pages_are_file_uris_in_name_order(temp_source_dir):
    """Test page list resolution."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)
    pages = adapter.pages("test-series", "ch001")

    assert [p.index for p in pages] == [0, 1, 2]
    assert all(p.url.startswith("file://") for p in pages)
    assert [p.url.rsplit("/", 1)[-1] for p in pages] == ["page_000.png", "page_001.png", "page_002.png"]


def test_pages_missing_chapter(temp_source_dir):
    """Test resolving a chapter that does not exist."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)

    with pytest.raises(NotFoundError):
        adapter.pages("test-series", "ch999")


def test_pages_empty_chapter(temp_source_dir):
    """Test resolving a chapter without images."""
    adapter = FilesystemAdapter("filesystem", temp_source_dir)

    with pytest.raises(ParseError):
        adapter.pages("test-series", "ch002")


def test_manga_details(temp_source_dir):
    adapter = FilesystemAdapter("filesystem", temp_source_dir)
    info = adapter.manga("test-series")

    assert info.title == "test-series"
    assert info.source_id == "filesystem"

    with pytest.raises(NotFoundError):
        adapter.manga("nonexistent")


def test_search_later_pages_are_empty(temp_source_dir):
    adapter = FilesystemAdapter("filesystem", temp_source_dir)

    assert adapter.search("test", page=2) == []


def test_ids_cannot_escape_root(temp_source_dir):
    """Test ids that resolve outside the library root are treated as missing."""
    # Root one level below a readable chapter, so "../ch001" would otherwise resolve
    adapter = FilesystemAdapter("filesystem", temp_source_dir / "test-series" / "ch002")

    with pytest.raises(NotFoundError):
        adapter.pages("..", "ch001")
    with pytest.raises(NotFoundError):
        adapter.pages("x", "../../ch001")
    with pytest.raises(NotFoundError):
        adapter.chapters("..")
    with pytest.raises(NotFoundError):
        adapter.manga(str(temp_source_dir / "test-series"))
