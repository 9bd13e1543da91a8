"""Page list resolution across registered sources."""

from src.errors import NotFoundError, ParseError, ResolutionError
from src.utils.logger import logger as LOGGER

from .adapter import PageRef
from .registry import SourceRegistry


class PageResolver:
    """Resolve a chapter reference into its ordered page list."""

    def __init__(self, sources: SourceRegistry):
        self.sources = sources

    def resolve(self, source_id: str, manga_id: str, chapter_id: str) -> tuple[PageRef, ...]:
        """Return the chapter's pages in the order the source declares them.

        Raises:
            NotFoundError: unknown source, manga or chapter
            RateLimitedError: the source throttled the request
            ParseError: the source answered with something unusable
            ResolutionError: any other failure to obtain the list
        """
        adapter = self.sources.get(source_id)
        if adapter is None:
            raise NotFoundError(f"Unknown source: {source_id}")

        try:
            pages = adapter.pages(manga_id, chapter_id)
        except ResolutionError:
            raise
        except (ValueError, KeyError, AttributeError) as e:
            raise ParseError(f"Failed to parse pages from {source_id}: {e}") from e

        if not pages:
            raise ParseError(f"No pages found for {manga_id}/{chapter_id} on {source_id}")

        for page in pages:
            if not isinstance(page, PageRef) or not page.url:
                raise ParseError(f"Invalid page entry from {source_id}: {page!r}")

        LOGGER.info(f"Resolved {len(pages)} pages for {source_id}:{manga_id}/{chapter_id}")
        return tuple(pages)
