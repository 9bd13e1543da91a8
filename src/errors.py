"""Exception hierarchy for chapter resolution, page download, and packaging.

Resolution and packaging failures end a job. Download failures are absorbed
by the driver's skip policy and only surface as warnings.
"""

from typing import Optional


class ChapterDLError(RuntimeError):
    """Base exception for all chapterdl failures."""


class ConfigurationError(ChapterDLError):
    """Raised when settings or source configuration are invalid."""


class ResolutionError(ChapterDLError):
    """Raised when a chapter's page list could not be obtained."""


class NotFoundError(ResolutionError):
    """Raised when the source does not know the manga or chapter."""


class RateLimitedError(ResolutionError):
    """Raised when the source refuses the request with a rate limit."""


class ParseError(ResolutionError):
    """Raised when the source answered but its markup could not be parsed."""


class DownloadError(ChapterDLError):
    """Raised when a single page could not be fetched or staged."""


class DownloadTimeoutError(DownloadError):
    """Raised when fetching a page exceeded the configured timeout."""


class HttpError(DownloadError):
    """Raised when the image host answered with a non-success status."""

    def __init__(self, status_code: int, url: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        message = f"HTTP {status_code}"
        if url:
            message = f"{message} for {url}"
        super().__init__(message)


class PackagingError(ChapterDLError):
    """Raised when the chapter archive could not be created."""


class EmptyInputError(PackagingError):
    """Raised when there are no staged pages to package."""


class ArchiveWriteError(PackagingError):
    """Raised when writing or moving the archive into place failed."""


class UnknownJobError(ChapterDLError):
    """Raised when a job id is not present in the registry."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Unknown job: {job_id}")
