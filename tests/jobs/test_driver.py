"""Tests for the job driver state machine."""

import struct
import tempfile
import zlib
import zipfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

from src.acquisition.adapter import PageRef
from src.acquisition.archiver import Archiver
from src.acquisition.downloader import Downloader
from src.errors import ArchiveWriteError, NotFoundError
from src.jobs.driver import JobDriver
from src.jobs.job import Job


@pytest.fixture
def workspace():
    """Create temp page images and a storage root."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir_path = Path(tmpdir)
        images = tmpdir_path / "images"
        images.mkdir()

        pages = []
        for i, name in enumerate(("a.png", "b.png", "c.png")):
            path = images / name
            Image.new("RGB", (8, 8), color=(i * 40, 0, 0)).save(path)
            pages.append(PageRef(i, path.as_uri()))

        yield tmpdir_path / "storage", tuple(pages)


def make_driver(storage_root, pages=None, resolve_error=None, max_page_failure_ratio=1.0, archiver=None):
    resolver = MagicMock()
    resolver.resolve.return_value = pages
    resolver.resolve.side_effect = resolve_error
    driver = JobDriver(
        resolver=resolver,
        downloader=Downloader(),
        archiver=archiver or Archiver(),
        storage_root=storage_root,
        max_page_failure_ratio=max_page_failure_ratio,
    )
    return driver, resolver


def new_job():
    return Job(job_id="job1", source_id="local", manga_id="series", chapter_id="ch1")


def test_resolve_step(workspace):
    """Test PENDING resolves pages and creates the staging dir."""
    storage_root, pages = workspace
    driver, resolver = make_driver(storage_root, pages=pages)

    job = driver.advance(new_job())

    resolver.resolve.assert_called_once_with("local", "series", "ch1")
    assert job.status == "DOWNLOADING"
    assert job.pages == pages
    assert job.cursor == 0
    assert job.staging_path == storage_root / "staging" / "local" / "series" / "ch1"
    assert job.staging_path.is_dir()


def test_resolve_clears_stale_staging(workspace):
    """Test leftovers from an earlier run are removed before downloading."""
    storage_root, pages = workspace
    driver, _ = make_driver(storage_root, pages=pages)
    stale = driver.staging_path_for(new_job())
    stale.mkdir(parents=True)
    (stale / "009.jpg").write_bytes(b"old")

    job = driver.advance(new_job())

    assert list(job.staging_path.iterdir()) == []


def test_resolve_failure(workspace):
    """Test resolution errors fail the job without staging anything."""
    storage_root, _ = workspace
    driver, _ = make_driver(storage_root, resolve_error=NotFoundError("Chapter not found"))

    job = driver.advance(new_job())

    assert job.status == "FAILED"
    assert job.error == "Chapter not found"
    assert not (storage_root / "staging").exists()


def test_full_run_one_step_per_call(workspace):
    """Test each call does exactly one unit of work until COMPLETED."""
    storage_root, pages = workspace
    driver, _ = make_driver(storage_root, pages=pages)

    job = new_job()
    history = []
    for _ in range(5):
        job = driver.advance(job)
        history.append((job.status, job.cursor))

    assert history == [
        ("DOWNLOADING", 0),
        ("DOWNLOADING", 1),
        ("DOWNLOADING", 2),
        ("PACKAGING", 3),
        ("COMPLETED", 3),
    ]
    assert job.artifact_path == storage_root / "chapters" / "local" / "series" / "ch1.cbz"
    assert job.staging_path is None
    assert not driver.staging_path_for(job).exists()

    with zipfile.ZipFile(job.artifact_path) as zf:
        assert zf.namelist() == ["001.png", "002.png", "003.png"]


def test_terminal_jobs_are_unchanged(workspace):
    storage_root, pages = workspace
    driver, resolver = make_driver(storage_root, pages=pages)
    failed = Job(job_id="job1", source_id="local", manga_id="series", chapter_id="ch1", status="FAILED", error="x")

    assert driver.advance(failed) is failed
    resolver.resolve.assert_not_called()


def test_skipped_page_is_recorded(workspace):
    """Test a failed page is skipped with a warning and later pages keep their slots."""
    storage_root, pages = workspace
    broken = (pages[0], PageRef(1, (storage_root.parent / "images" / "missing.png").as_uri()), pages[2])
    driver, _ = make_driver(storage_root, pages=broken)

    job = new_job()
    for _ in range(5):
        job = driver.advance(job)

    assert job.status == "COMPLETED"
    assert job.failed_pages == 1
    assert len(job.warnings) == 1
    assert job.warnings[0].startswith("Page 2/3 skipped")

    with zipfile.ZipFile(job.artifact_path) as zf:
        assert zf.namelist() == ["001.png", "003.png"]


def test_failure_ratio_exceeded(workspace):
    """Test the job fails once too many pages were skipped."""
    storage_root, pages = workspace
    missing = (storage_root.parent / "images" / "missing.png").as_uri()
    broken = (PageRef(0, missing), pages[1], pages[2])
    driver, _ = make_driver(storage_root, pages=broken, max_page_failure_ratio=0.2)

    job = driver.advance(new_job())
    staging_path = job.staging_path
    job = driver.advance(job)

    assert job.status == "FAILED"
    assert "Too many pages failed" in job.error
    assert not staging_path.exists()


def test_all_pages_failed_fails_packaging(workspace):
    """Test packaging an empty staging directory is a failure."""
    storage_root, _ = workspace
    missing = (storage_root.parent / "images" / "missing.png").as_uri()
    driver, _ = make_driver(storage_root, pages=(PageRef(0, missing),))

    job = new_job()
    for _ in range(3):
        job = driver.advance(job)

    assert job.status == "FAILED"
    assert job.artifact_path is None
    assert not (storage_root / "chapters" / "local" / "series" / "ch1.cbz").exists()


def test_packaging_error(workspace):
    """Test archive errors fail the job and clean staging."""
    storage_root, pages = workspace
    archiver = MagicMock()
    archiver.pack.side_effect = ArchiveWriteError("disk full")
    driver, _ = make_driver(storage_root, pages=pages[:1], archiver=archiver)

    job = new_job()
    job = driver.advance(job)
    staging_path = job.staging_path
    job = driver.advance(job)
    assert job.status == "PACKAGING"
    job = driver.advance(job)

    assert job.status == "FAILED"
    assert job.error == "disk full"
    assert not staging_path.exists()


def huge_png_bytes(width=20000, height=20000):
    """PNG header claiming an image far beyond Pillow's pixel limit."""
    def chunk(kind, data):
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IEND", b"")


def test_oversized_image_is_skipped(workspace):
    """Test a page Pillow refuses to decode is skipped like any other bad page."""
    storage_root, pages = workspace
    bomb = storage_root.parent / "images" / "bomb.png"
    bomb.write_bytes(huge_png_bytes())
    driver, _ = make_driver(storage_root, pages=(pages[0], PageRef(1, bomb.as_uri()), pages[2]))

    job = new_job()
    for _ in range(5):
        job = driver.advance(job)

    assert job.status == "COMPLETED"
    assert len(job.warnings) == 1
    assert job.warnings[0].startswith("Page 2/3 skipped")
    with zipfile.ZipFile(job.artifact_path) as zf:
        assert zf.namelist() == ["001.png", "003.png"]


def test_unexpected_download_error_skips_page(workspace):
    """Test a non-download exception on one page does not end the job."""
    storage_root, pages = workspace
    driver, _ = make_driver(storage_root, pages=pages)
    real_download = driver.downloader.download_page
    driver.downloader = MagicMock()
    calls = []

    def download_page(url, staging_dir, stem, referer=None):
        calls.append(url)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return real_download(url, staging_dir, stem, referer=referer)

    driver.downloader.download_page.side_effect = download_page

    job = new_job()
    for _ in range(5):
        job = driver.advance(job)

    assert job.status == "COMPLETED"
    assert job.failed_pages == 1
    assert "boom" in job.warnings[0]


def test_page_referer_is_sent(workspace):
    storage_root, pages = workspace
    driver, _ = make_driver(storage_root, pages=(PageRef(0, pages[0].url, referer="https://site.example/"),))
    driver.downloader = MagicMock()

    driver.advance(driver.advance(new_job()))

    assert driver.downloader.download_page.call_args.kwargs["referer"] == "https://site.example/"


def test_unexpected_error_fails_job(workspace):
    """Test unexpected exceptions outside page downloads become FAILED instead of escaping."""
    storage_root, _ = workspace
    driver, _ = make_driver(storage_root, resolve_error=RuntimeError("boom"))

    job = driver.advance(new_job())

    assert job.status == "FAILED"
    assert "boom" in job.error
