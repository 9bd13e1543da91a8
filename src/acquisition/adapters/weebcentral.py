"""WeebCentral source adapter.

Site: https://weebcentral.com
Auth: None required
"""

from typing import List
from urllib.parse import quote

from ..adapter import ChapterInfo, HtmlSourceAdapter, MangaInfo, PageRef, parse_status
from src.errors import ParseError


FETCH_LIMIT = 24
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


def _field(soup, label: str):
    """Return the `<li>` of the details list whose `<strong>` caption starts with ``label``."""
    for caption in soup.select("li strong"):
        if caption.get_text(strip=True).startswith(label):
            return caption.find_parent("li")
    return None


class WeebCentralAdapter(HtmlSourceAdapter):
    """Adapter for weebcentral.com (htmx endpoints returning HTML fragments)."""

    source_id = "en.weebcentral"
    name = "WeebCentral"
    base_url = "https://weebcentral.com"

    def search(self, query: str, page: int = 1) -> List[MangaInfo]:
        """Search for series by title, or list latest updates for an empty query."""
        offset = (max(page, 1) - 1) * FETCH_LIMIT
        url = (
            f"{self.base_url}/search/data?limit={FETCH_LIMIT}&offset={offset}"
            "&display_mode=Full%20Display"
        )
        if query:
            url += f"&text={quote(query)}&sort=Relevance&order=Descending"
        else:
            url += "&sort=Latest%20Updates&order=Descending"

        soup = self._get_soup(url)

        results = []
        for article in soup.select("article"):
            link = article.select_one('a[href*="/series/"]')
            if link is None:
                continue

            title = link.get_text(strip=True)
            if title.startswith("Official "):
                title = title[len("Official "):].strip()
            if not title:
                continue

            img = article.select_one("img")
            results.append(MangaInfo(
                source_id=self.source_id,
                manga_id=self._relative(link.get("href", "")),
                title=title,
                cover_url=img.get("src") if img else None,
            ))

        return results

    def manga(self, manga_id: str) -> MangaInfo:
        """Read the series page details."""
        soup = self._get_soup(self._absolute(manga_id))

        title_elem = soup.select_one("h1")
        if title_elem is None:
            raise ParseError(f"{self.name}: no title on series page {manga_id}")

        cover_elem = soup.select_one("picture img") or soup.select_one("img[src]")

        authors = _field(soup, "Author")
        tags = _field(soup, "Tag")
        status = _field(soup, "Status")
        description = _field(soup, "Description")
        desc_elem = description.select_one("p") if description else None
        author_names = [a.get_text(strip=True) for a in authors.select("a")] if authors else []

        return MangaInfo(
            source_id=self.source_id,
            manga_id=manga_id,
            title=title_elem.get_text(strip=True),
            cover_url=cover_elem.get("src") if cover_elem else None,
            author=", ".join(author_names) or None,
            description=desc_elem.get_text(strip=True) if desc_elem else None,
            status=parse_status(status.get_text(" ", strip=True)) if status else None,
            tags=[a.get_text(strip=True) for a in tags.select("a")] if tags else [],
        )

    def chapters(self, manga_id: str) -> List[ChapterInfo]:
        """List chapters from the full chapter list fragment (newest first)."""
        # /series/<id>/<slug> -> /series/<id>/full-chapter-list
        base = manga_id.rstrip("/")
        if base.count("/") > 2:
            base = base.rsplit("/", 1)[0]

        soup = self._get_soup(f"{self.base_url}{base}/full-chapter-list")

        chapters = []
        for link in soup.select('a[href*="/chapters/"]'):
            chapter_id = self._relative(link.get("href", ""))
            span = link.select_one("span")
            title = span.get_text(strip=True) if span else link.get_text(" ", strip=True)

            number = None
            if title and " " in title:
                try:
                    number = float(title.rsplit(" ", 1)[1])
                except ValueError:
                    number = None

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
        url = f"{self._absolute(chapter_id)}/images?is_prev=False&reading_style=long_strip"
        soup = self._get_soup(url, referer=self.base_url)

        pages = []
        for img in soup.select("img[src]"):
            src = img.get("src", "")
            if src.lower().split("?", 1)[0].endswith(IMAGE_EXTENSIONS):
                pages.append(self._page_ref(len(pages), src))

        if not pages:
            raise ParseError(f"{self.name}: no page images found for {chapter_id}")

        return pages
