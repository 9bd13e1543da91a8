"""Source adapter protocol and data structures for chapter acquisition."""

from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests
from bs4 import BeautifulSoup

from src.errors import NotFoundError, RateLimitedError, ResolutionError
from src.utils.logger import logger as LOGGER


@dataclass(frozen=True)
class PageRef:
    """One page of a chapter, in the order declared by the source."""
    index: int
    url: str
    # Referer header for the image request
    referer: Optional[str] = None

    def to_dict(self) -> dict:
        return {"index": self.index, "url": self.url, "referer": self.referer}


@dataclass
class MangaInfo:
    """Information about a series from a source."""
    source_id: str
    manga_id: str
    title: str
    cover_url: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.manga_id,
            "source_id": self.source_id,
            "title": self.title,
            "cover_url": self.cover_url,
            "author": self.author,
            "description": self.description,
            "status": self.status,
            "tags": list(self.tags),
        }


@dataclass
class ChapterInfo:
    """Basic information about a chapter before acquisition."""
    source_id: str
    manga_id: str
    chapter_id: str
    title: str
    number: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.chapter_id,
            "manga_id": self.manga_id,
            "source_id": self.source_id,
            "title": self.title,
            "number": self.number,
        }


class SourceAdapter(Protocol):
    """Protocol for implementing manga source adapters."""

    @property
    def source_id(self) -> str:
        """Return unique identifier for this source."""
        ...

    @property
    def name(self) -> str:
        """Return display name for this source."""
        ...

    def search(self, query: str, page: int = 1) -> list[MangaInfo]:
        """Search for series by query string, one result page at a time."""
        ...

    def manga(self, manga_id: str) -> MangaInfo:
        """Return details (author, description, status, tags) for a series."""
        ...

    def chapters(self, manga_id: str) -> list[ChapterInfo]:
        """List all available chapters for a series."""
        ...

    def pages(self, manga_id: str, chapter_id: str) -> list[PageRef]:
        """Return the ordered page list of a chapter."""
        ...


class HtmlSourceAdapter:
    """Base class for sources scraped over HTTP.

    Subclasses set ``source_id``, ``name`` and ``base_url`` and use
    ``_get_soup`` for every request so timeouts and status codes map onto
    the resolution error hierarchy the same way for every source.
    """

    source_id = ""
    name = ""
    base_url = ""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0,
                 user_agent: Optional[str] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    def _get(self, url: str, referer: Optional[str] = None) -> requests.Response:
        headers = {"Referer": referer} if referer else None
        LOGGER.debug(f"[{self.source_id}] GET {url}")

        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise ResolutionError(f"{self.name}: request timed out after {self.timeout:g}s ({url})") from e
        except requests.RequestException as e:
            raise ResolutionError(f"{self.name}: request failed ({e})") from e

        if response.status_code == 404:
            raise NotFoundError(f"{self.name}: not found ({url})")
        if response.status_code == 429:
            raise RateLimitedError(f"{self.name}: rate limited, try again later")

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise ResolutionError(f"{self.name}: HTTP {response.status_code} ({url})") from e

        return response

    def _get_soup(self, url: str, referer: Optional[str] = None) -> BeautifulSoup:
        response = self._get(url, referer=referer)
        return BeautifulSoup(response.text, "html.parser")

    def _absolute(self, href: str) -> str:
        if href.startswith("http://") or href.startswith("https://"):
            return href
        return f"{self.base_url}{href}"

    def _relative(self, url: str) -> str:
        """Strip the source host so ids stay stable across mirrors."""
        if url.startswith(self.base_url):
            return url[len(self.base_url):]
        return url

    def _page_ref(self, index: int, url: str) -> PageRef:
        return PageRef(index=index, url=url, referer=f"{self.base_url}/")


# Site wording -> normalized publication status, first match wins
STATUS_KEYWORDS = (
    ("complete", "completed"),
    ("ongoing", "ongoing"),
    ("publishing", "ongoing"),
    ("hiatus", "hiatus"),
    ("cancel", "canceled"),
)


def parse_status(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lowered = text.lower()
    for keyword, status in STATUS_KEYWORDS:
        if keyword in lowered:
            return status
    return None
