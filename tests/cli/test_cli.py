"""End-to-end tests for the chapterdl command line."""

import tempfile
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from src.acquisition.registry import load_sources
from src.cli.main import main
from src.config import HOME_ENV_VAR


@pytest.fixture
def library(monkeypatch):
    """Create a CHAPTERDL_HOME and a local library with one chapter."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir_path = Path(tmpdir)
        monkeypatch.setenv(HOME_ENV_VAR, str(tmpdir_path / "home"))

        chapter = tmpdir_path / "library" / "test-series" / "ch001"
        chapter.mkdir(parents=True)
        for i in range(3):
            Image.new("RGB", (20, 30), color=(i * 80, 0, 0)).save(chapter / f"page_{i:02d}.png")

        yield tmpdir_path


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_source_management(library, capsys):
    assert main(["add-source", "local", "--type", "filesystem", "--path", str(library / "library")]) == 0
    assert "local" in load_sources()

    main(["sources"])
    out = capsys.readouterr().out
    assert "local (filesystem" in out
    assert "en.mangapill (mangapill)" in out

    assert main(["remove-source", "local"]) == 0
    assert main(["remove-source", "local"]) == 1


def test_add_filesystem_source_requires_path(library, capsys):
    assert main(["add-source", "local", "--type", "filesystem"]) == 1
    assert "Error" in capsys.readouterr().out


def test_search_and_chapters(library, capsys):
    main(["add-source", "local", "--type", "filesystem", "--path", str(library / "library")])
    capsys.readouterr()

    assert main(["search", "local", "series"]) == 0
    assert "test-series" in capsys.readouterr().out

    assert main(["chapters", "local", "test-series"]) == 0
    assert "ch001" in capsys.readouterr().out

    assert main(["search", "missing", "series"]) == 1


def test_download_chapter(library, capsys):
    main(["add-source", "local", "--type", "filesystem", "--path", str(library / "library")])
    storage = library / "storage"

    code = main(["--storage-path", str(storage), "download", "local", "test-series", "ch001", "--quiet"])

    assert code == 0
    artifact = storage / "chapters" / "local" / "test-series" / "ch001.cbz"
    assert str(artifact) in capsys.readouterr().out
    with zipfile.ZipFile(artifact) as zf:
        assert zf.namelist() == ["001.png", "002.png", "003.png"]
    assert list((storage / "staging").rglob("*.png")) == []


def test_download_missing_chapter(library, capsys):
    main(["add-source", "local", "--type", "filesystem", "--path", str(library / "library")])

    code = main(["--storage-path", str(library / "storage"), "download", "local", "test-series", "ch999", "--quiet"])

    assert code == 1
    assert "ch999" in capsys.readouterr().out


def test_clean_removes_staging(library, capsys):
    leftover = library / "storage" / "staging" / "local" / "test-series" / "ch001"
    leftover.mkdir(parents=True)
    (leftover / "001.png").write_bytes(b"x")

    assert main(["--storage-path", str(library / "storage"), "clean"]) == 0

    assert not (library / "storage" / "staging").exists()
    assert "Removed 1 staging" in capsys.readouterr().out


def test_info_and_search_page(library, capsys):
    main(["add-source", "local", "--type", "filesystem", "--path", str(library / "library")])
    capsys.readouterr()

    assert main(["info", "local", "test-series"]) == 0
    assert "test-series" in capsys.readouterr().out

    assert main(["info", "local", "missing"]) == 1

    assert main(["search", "local", "series", "--page", "2"]) == 0
    assert "No results" in capsys.readouterr().out


def test_library_lists_downloaded_chapters(library, capsys):
    main(["add-source", "local", "--type", "filesystem", "--path", str(library / "library")])
    storage = str(library / "storage")

    assert main(["--storage-path", storage, "library"]) == 0
    assert "No downloaded chapters" in capsys.readouterr().out

    main(["--storage-path", storage, "download", "local", "test-series", "ch001", "--quiet"])
    capsys.readouterr()

    assert main(["--storage-path", storage, "library"]) == 0
    assert "local/test-series/ch001" in capsys.readouterr().out
