"""Job driver: the poll-driven state machine for chapter downloads."""

from dataclasses import replace
from pathlib import Path

from src.acquisition.archiver import Archiver
from src.acquisition.downloader import Downloader
from src.acquisition.resolver import PageResolver
from src.acquisition.storage import (
    get_artifact_path,
    get_page_stem,
    get_staging_path,
    list_staged_pages,
    remove_tree,
)
from src.errors import DownloadError, PackagingError, ResolutionError
from src.utils.logger import logger as LOGGER

from .job import Job


class JobDriver:
    """Advance a job by exactly one bounded unit of work per call.

    PENDING resolves the page list, DOWNLOADING fetches the page at the
    cursor, PACKAGING builds the archive. Terminal jobs are returned as is.
    """

    def __init__(self, resolver: PageResolver, downloader: Downloader, archiver: Archiver,
                 storage_root: Path, max_page_failure_ratio: float = 1.0):
        self.resolver = resolver
        self.downloader = downloader
        self.archiver = archiver
        self.storage_root = Path(storage_root)
        self.max_page_failure_ratio = max_page_failure_ratio

    def staging_path_for(self, job: Job) -> Path:
        return get_staging_path(self.storage_root, job.source_id, job.manga_id, job.chapter_id)

    def artifact_path_for(self, job: Job) -> Path:
        return get_artifact_path(self.storage_root, job.source_id, job.manga_id, job.chapter_id)

    def advance(self, job: Job) -> Job:
        if job.is_terminal:
            return job

        steps = {
            "PENDING": self._resolve,
            "DOWNLOADING": self._download_next,
            "PACKAGING": self._package,
        }
        step = steps[job.status]

        try:
            return step(job)
        except Exception as e:
            LOGGER.exception(f"Job {job.job_id}: unexpected error while {job.status.lower()}")
            remove_tree(job.staging_path)
            return self._fail(job, f"Unexpected error during {job.status.lower()}: {e}")

    def _fail(self, job: Job, message: str) -> Job:
        return replace(job, status="FAILED", error=message, staging_path=None, artifact_path=None)

    def _resolve(self, job: Job) -> Job:
        try:
            pages = self.resolver.resolve(job.source_id, job.manga_id, job.chapter_id)
        except ResolutionError as e:
            LOGGER.warning(f"Job {job.job_id}: resolution failed: {e}")
            return self._fail(job, str(e))

        staging_path = self.staging_path_for(job)
        # Leftovers from an abandoned run must not end up in this archive
        remove_tree(staging_path)
        staging_path.mkdir(parents=True, exist_ok=True)

        return replace(job, status="DOWNLOADING", pages=pages, cursor=0, staging_path=staging_path)

    def _download_next(self, job: Job) -> Job:
        total = len(job.pages)
        if job.cursor >= total:
            return replace(job, status="PACKAGING")

        page = job.pages[job.cursor]
        sequence = job.cursor + 1
        stem = get_page_stem(sequence, total)

        try:
            self.downloader.download_page(page.url, job.staging_path, stem, referer=page.referer)
        except Exception as e:
            # One bad page never ends the job by itself
            if not isinstance(e, DownloadError):
                LOGGER.exception(f"Job {job.job_id}: unexpected error fetching page {sequence}/{total}")
            warning = f"Page {sequence}/{total} skipped: {e}"
            LOGGER.warning(f"Job {job.job_id}: {warning}")

            failed_pages = job.failed_pages + 1
            job = replace(
                job,
                cursor=job.cursor + 1,
                failed_pages=failed_pages,
                warnings=job.warnings + (warning,),
            )
            if failed_pages / total > self.max_page_failure_ratio:
                remove_tree(job.staging_path)
                return self._fail(
                    job,
                    f"Too many pages failed to download ({failed_pages}/{total}); last error: {e}",
                )
        else:
            job = replace(job, cursor=job.cursor + 1)

        if job.cursor == total:
            LOGGER.info(f"Job {job.job_id}: all {total} pages processed, {job.failed_pages} skipped")
            job = replace(job, status="PACKAGING")
        return job

    def _package(self, job: Job) -> Job:
        staged = list_staged_pages(job.staging_path)
        target = self.artifact_path_for(job)

        try:
            artifact = self.archiver.pack(staged, target)
        except PackagingError as e:
            LOGGER.warning(f"Job {job.job_id}: packaging failed: {e}")
            remove_tree(job.staging_path)
            return self._fail(job, str(e))

        remove_tree(job.staging_path)
        return replace(job, status="COMPLETED", artifact_path=artifact, staging_path=None)
