"""Application wiring: build every component once and hand back the router."""

from pathlib import Path
from typing import Optional

from src.acquisition.archiver import Archiver
from src.acquisition.downloader import Downloader
from src.acquisition.registry import SourceRegistry
from src.acquisition.resolver import PageResolver
from src.acquisition.storage import remove_tree
from src.config import Settings, load_settings
from src.jobs.driver import JobDriver
from src.jobs.job import Job
from src.jobs.registry import JobRegistry
from src.utils.logger import logger as LOGGER

from .router import Router


def _cleanup_staging(job: Job) -> None:
    # Artifacts of completed jobs belong to the user and are kept
    remove_tree(job.staging_path)


def create_app(settings: Optional[Settings] = None, sources: Optional[SourceRegistry] = None,
               sources_path: Optional[Path] = None, downloader: Optional[Downloader] = None,
               settings_path: Optional[Path] = None) -> Router:
    """Construct the registry, driver and router for one process.

    Args:
        settings: Runtime settings, loaded from disk when omitted
        sources: Pre-built source registry, built from sources.json when omitted
        sources_path: Registry file used when ``sources`` is omitted
        downloader: Downloader override (tests inject a mocked session here)
        settings_path: Settings file read at startup and rewritten by PUT /settings

    Returns:
        Router ready to serve enqueue/poll calls
    """
    settings = settings or load_settings(settings_path)
    sources = sources or SourceRegistry.from_config(settings, sources_path)
    storage_root = settings.storage_root()

    downloader = downloader or Downloader(
        timeout=settings.download_timeout,
        user_agent=settings.user_agent,
        verify_images=settings.verify_images,
    )
    driver = JobDriver(
        resolver=PageResolver(sources),
        downloader=downloader,
        archiver=Archiver(),
        storage_root=storage_root,
        max_page_failure_ratio=settings.max_page_failure_ratio,
    )
    registry = JobRegistry(ttl_seconds=settings.job_ttl_seconds, on_evict=_cleanup_staging)

    LOGGER.debug(f"Storage root: {storage_root}")
    return Router(registry, driver, sources, settings=settings, settings_path=settings_path)
