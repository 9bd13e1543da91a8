"""MangaPill source adapter.

Site: https://www.mangapill.com
Auth: None required
"""

import re
from typing import List, Optional
from urllib.parse import quote

from ..adapter import ChapterInfo, HtmlSourceAdapter, MangaInfo, PageRef, parse_status
from src.errors import ParseError


AUTHOR_PATTERN = re.compile(r"Authors?:\s*([^\n]+?)\s*(?:\n|$)")


def _labelled(soup, *names) -> Optional[str]:
    """Return the text next to a `<label>` whose text is one of ``names``."""
    for label in soup.select("label"):
        if label.get_text(strip=True).rstrip(":").lower() in names:
            value = label.find_next_sibling()
            if value is not None:
                return value.get_text(" ", strip=True) or None
    return None


class MangaPillAdapter(HtmlSourceAdapter):
    """Adapter for mangapill.com.

    Manga ids are site paths such as ``/manga/2/one-piece`` and chapter ids
    are paths such as ``/chapters/2-11000000/one-piece-chapter-1``.
    """

    source_id = "en.mangapill"
    name = "MangaPill"
    base_url = "https://www.mangapill.com"

    def search(self, query: str, page: int = 1) -> List[MangaInfo]:
        """Search for series by title.

        An empty query returns the latest updates instead.
        """
        if query:
            url = f"{self.base_url}/search?q={quote(query)}&page={page}"
        else:
            url = f"{self.base_url}/updates?page={page}"

        soup = self._get_soup(url)

        results = []
        seen = set()
        for link in soup.select('a[href^="/manga/"]'):
            manga_id = link.get("href", "")
            if not manga_id or manga_id in seen:
                continue

            title_elem = link.select_one("h3") or link.find_next("div", class_="font-bold")
            if title_elem is None:
                continue
            title = title_elem.get_text(strip=True)
            if not title:
                continue

            img = link.select_one("img")
            cover_url = (img.get("data-src") or img.get("src")) if img else None

            seen.add(manga_id)
            results.append(MangaInfo(
                source_id=self.source_id,
                manga_id=manga_id,
                title=title,
                cover_url=cover_url,
            ))

        return results

    def manga(self, manga_id: str) -> MangaInfo:
        """Read the series page: title, cover, author, description, status and genres."""
        soup = self._get_soup(self._absolute(manga_id))

        title_elem = soup.select_one("h1")
        if title_elem is None:
            raise ParseError(f"{self.name}: no title on series page {manga_id}")

        desc_elem = soup.select_one('[class*="description"]') or soup.select_one("p.text--secondary")
        cover_elem = soup.select_one('img[class*="cover"]') or soup.select_one("img[data-src]")

        author = _labelled(soup, "author", "authors")
        if author is None:
            match = AUTHOR_PATTERN.search(soup.get_text("\n"))
            author = match.group(1).strip() if match else None

        return MangaInfo(
            source_id=self.source_id,
            manga_id=manga_id,
            title=title_elem.get_text(strip=True),
            cover_url=(cover_elem.get("data-src") or cover_elem.get("src")) if cover_elem else None,
            author=author,
            description=desc_elem.get_text(" ", strip=True) if desc_elem else None,
            status=parse_status(_labelled(soup, "status")),
            tags=[a.get_text(strip=True) for a in soup.select('a[href*="genre="]') if a.get_text(strip=True)],
        )

    def chapters(self, manga_id: str) -> List[ChapterInfo]:
        """List chapters as the site lists them (newest first)."""
        soup = self._get_soup(self._absolute(manga_id))

        chapters = []
        for link in soup.select('a[href^="/chapters/"]'):
            chapter_id = link.get("href", "")
            title = link.get_text(" ", strip=True)

            match = re.search(r"Chapter\s*(\d+(?:\.\d+)?)", title, re.IGNORECASE)
            number = float(match.group(1)) if match else None

            chapters.append(ChapterInfo(
                source_id=self.source_id,
                manga_id=manga_id,
                chapter_id=chapter_id,
                title=title or chapter_id,
                number=number,
            ))

        return chapters

    def pages(self, manga_id: str, chapter_id: str) -> List[PageRef]:
        """Return page image URLs in reader order."""
        soup = self._get_soup(self._absolute(chapter_id), referer=self.base_url)

        pages = []
        for img in soup.select("img[data-src]"):
            url = img.get("data-src", "")
            if "cdn" not in url:
                continue
            pages.append(self._page_ref(len(pages), url))

        if not pages:
            raise ParseError(f"{self.name}: no page images found for {chapter_id}")

        return pages
