"""Single-page downloader writing atomically into a staging directory."""

import io
import os
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests
from PIL import Image

from src.errors import DownloadError, DownloadTimeoutError, HttpError
from src.utils.logger import logger as LOGGER

from .storage import PART_SUFFIX


DEFAULT_EXTENSION = "jpg"
KNOWN_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "avif", "bmp"}

# Pillow format name -> file extension
FORMAT_EXTENSIONS = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
    "BMP": "bmp",
    "AVIF": "avif",
}


def extension_from_url(url: str) -> Optional[str]:
    suffix = Path(unquote(urlparse(url).path)).suffix.lower().lstrip(".")
    if suffix in KNOWN_EXTENSIONS:
        return "jpg" if suffix == "jpeg" else suffix
    return None


class Downloader:
    """Fetch page images and stage them for packaging."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60.0,
                 user_agent: Optional[str] = None, verify_images: bool = True):
        self.timeout = timeout
        self.verify_images = verify_images
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    def fetch(self, url: str, referer: Optional[str] = None) -> bytes:
        """Return the bytes behind ``url``.

        Raises:
            DownloadTimeoutError: the request exceeded the timeout
            HttpError: the host answered with a non-success status
            DownloadError: any other transport or read failure
        """
        parsed = urlparse(url)

        if parsed.scheme == "file":
            path = Path(url2pathname(unquote(parsed.path)))
            try:
                return path.read_bytes()
            except OSError as e:
                raise DownloadError(f"Failed to read {path}: {e}") from e

        if parsed.scheme not in ("http", "https"):
            raise DownloadError(f"Unsupported URL scheme: {url}")

        headers = {"Referer": referer} if referer else None
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise DownloadTimeoutError(f"Timed out after {self.timeout:g}s fetching {url}") from e
        except requests.RequestException as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise HttpError(response.status_code, url)

        data = response.content
        if not data:
            raise DownloadError(f"Empty response body for {url}")
        return data

    def detect_extension(self, data: bytes, url: str) -> str:
        """Return the file extension for downloaded image bytes.

        With ``verify_images`` on, bytes Pillow cannot decode are rejected.
        """
        try:
            with Image.open(io.BytesIO(data)) as img:
                image_format = img.format
                if self.verify_images:
                    img.verify()
        except Exception as e:
            # Malformed input surfaces as UnidentifiedImageError, DecompressionBombError,
            # struct.error and others depending on the plugin
            if self.verify_images:
                raise DownloadError(f"Not a valid image: {url} ({e})") from e
            image_format = None

        return FORMAT_EXTENSIONS.get(image_format or "") or extension_from_url(url) or DEFAULT_EXTENSION

    def stage(self, data: bytes, staging_dir: Path, stem: str, url: str) -> Path:
        """Write ``data`` as ``<stem>.<ext>`` inside ``staging_dir``.

        The bytes go to a ``.part`` file first and are renamed into place, so a
        half-written page is never picked up by the archiver.
        """
        output_path = staging_dir / f"{stem}.{self.detect_extension(data, url)}"
        part_file = output_path.with_name(output_path.name + PART_SUFFIX)

        try:
            staging_dir.mkdir(parents=True, exist_ok=True)
            with open(part_file, "wb") as f:
                f.write(data)
            os.replace(part_file, output_path)
        except OSError as e:
            part_file.unlink(missing_ok=True)
            raise DownloadError(f"Failed to write {output_path.name}: {e}") from e

        return output_path

    def download_page(self, url: str, staging_dir: Path, stem: str, referer: Optional[str] = None) -> Path:
        """Fetch one page and stage it; raises DownloadError on any failure."""
        data = self.fetch(url, referer=referer)
        path = self.stage(data, staging_dir, stem, url)
        LOGGER.debug(f"Staged {url} as {path.name} ({len(data)} bytes)")
        return path
