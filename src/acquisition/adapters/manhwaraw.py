"""ManhwaRaw source adapter for Korean manhwa.

Site: https://manhwaraw.com
Type: Madara WordPress theme
Auth: None required
"""

import re
from typing import List, Optional
from urllib.parse import quote, urljoin

from ..adapter import ChapterInfo, HtmlSourceAdapter, MangaInfo, PageRef, parse_status
from src.errors import ParseError


def _series_id_from_url(url: str) -> str:
    # Expected: https://manhwaraw.com/manhwa-raw/series-name/
    match = re.search(r"/manhwa-raw/([^/]+)/?$", url)
    if match:
        return match.group(1)
    return url.rstrip("/").split("/")[-1]


def _chapter_number(title: str, chapter_id: str) -> Optional[float]:
    # Try patterns: "Chapter 123", "Ch. 123", "123화"
    match = re.search(r"(?:chapter|ch\.?)\s*(\d+(?:\.\d+)?)|(\d+(?:\.\d+)?)\s*화", title, re.IGNORECASE)
    if match:
        return float(match.group(1) or match.group(2))

    match = re.search(r"(\d+)", chapter_id)
    if match:
        return float(match.group(1))
    return None


class ManhwaRawAdapter(HtmlSourceAdapter):
    """Adapter for manhwaraw.com (Madara-based site)."""

    source_id = "manhwaraw"
    name = "ManhwaRaw"
    base_url = "https://manhwaraw.com"

    def search(self, query: str, page: int = 1) -> List[MangaInfo]:
        """Search for series by title.

        Args:
            query: Search term (series title)
            page: 1-based result page

        Returns:
            List of matching series
        """
        # Madara search: [/page/N]/?s=query&post_type=wp-manga
        prefix = f"/page/{page}" if page > 1 else ""
        soup = self._get_soup(f"{self.base_url}{prefix}/?s={quote(query)}&post_type=wp-manga")

        results = []

        # Current site structure
        for link_elem in soup.select("a.block-wrapper"):
            url = link_elem.get("href", "")
            title_elem = link_elem.select_one(".movie-title-1")
            if not url or "/manhwa-raw/" not in url or title_elem is None:
                continue

            img_elem = link_elem.select_one("img")
            results.append(MangaInfo(
                source_id=self.source_id,
                manga_id=_series_id_from_url(url),
                title=title_elem.get_text(strip=True),
                cover_url=(img_elem.get("data-src") or img_elem.get("src")) if img_elem else None,
            ))

        # Older Madara structure
        if not results:
            for item in soup.select(".c-tabs-item__content, .post-title"):
                title_elem = item.select_one(".post-title h3 a, .post-title a, h3 a, a")
                if title_elem is None or not title_elem.get("href"):
                    continue

                img_elem = item.select_one("img")
                results.append(MangaInfo(
                    source_id=self.source_id,
                    manga_id=_series_id_from_url(title_elem["href"]),
                    title=title_elem.get_text(strip=True),
                    cover_url=(img_elem.get("data-src") or img_elem.get("src")) if img_elem else None,
                ))

        return results

    def manga(self, manga_id: str) -> MangaInfo:
        """Read the Madara series summary block."""
        soup = self._get_soup(f"{self.base_url}/manhwa-raw/{manga_id}/")

        title_elem = soup.select_one(".post-title h1, .post-title h3, h1")
        if title_elem is None:
            raise ParseError(f"{self.name}: no title on series page {manga_id}")

        img_elem = soup.select_one(".summary_image img")
        desc_elem = soup.select_one(".description-summary, .summary__content")
        status_elem = soup.select_one(".post-status .summary-content")

        return MangaInfo(
            source_id=self.source_id,
            manga_id=manga_id,
            title=title_elem.get_text(strip=True),
            cover_url=(img_elem.get("data-src") or img_elem.get("src")) if img_elem else None,
            author=", ".join(a.get_text(strip=True) for a in soup.select(".author-content a")) or None,
            description=desc_elem.get_text(" ", strip=True) if desc_elem else None,
            status=parse_status(status_elem.get_text(strip=True)) if status_elem else None,
            tags=[a.get_text(strip=True) for a in soup.select(".genres-content a")],
        )

    def chapters(self, manga_id: str) -> List[ChapterInfo]:
        """Get all chapters for a series.

        Args:
            manga_id: Series identifier (e.g., "solo-leveling")

        Returns:
            List of chapters in reading order (oldest first)
        """
        soup = self._get_soup(f"{self.base_url}/manhwa-raw/{manga_id}/")

        chapters = []
        for elem in soup.select(".wp-manga-chapter a, .version-chap li a, .listing-chapters_wrap li a"):
            chapter_url = elem.get("href", "")
            if not chapter_url:
                continue

            # Expected: https://manhwaraw.com/manhwa-raw/series/chapter-123/
            match = re.search(r"/manhwa-raw/[^/]+/([^/]+)/?$", chapter_url)
            chapter_id = match.group(1) if match else chapter_url.rstrip("/").split("/")[-1]
            title = elem.get_text(strip=True)

            chapters.append(ChapterInfo(
                source_id=self.source_id,
                manga_id=manga_id,
                chapter_id=chapter_id,
                title=title or chapter_id,
                number=_chapter_number(title, chapter_id),
            ))

        # Madara lists newest first, reverse for reading order
        chapters.reverse()
        return chapters

    def pages(self, manga_id: str, chapter_id: str) -> List[PageRef]:
        """Get all pages for a chapter.

        Args:
            manga_id: Series identifier
            chapter_id: Chapter identifier

        Returns:
            Page references in reader order
        """
        # Madara: use ?style=list to get all images in one page load
        chapter_url = f"{self.base_url}/manhwa-raw/{manga_id}/{chapter_id}/?style=list"
        soup = self._get_soup(chapter_url, referer=self.base_url)

        pages = []
        for img in soup.select(".wp-manga-chapter-img, .reading-content img, .page-break img"):
            # Lazy-loaded images keep the real URL in data-src
            image_url = (img.get("data-src") or img.get("src") or "").strip()
            if not image_url:
                continue

            image_url = urljoin(chapter_url, image_url)
            if "loading" in image_url.lower() or "placeholder" in image_url.lower():
                continue
            if any(page.url == image_url for page in pages):
                continue

            pages.append(self._page_ref(len(pages), image_url))

        if not pages:
            raise ParseError(f"{self.name}: no pages found for {manga_id}/{chapter_id}")

        return pages
