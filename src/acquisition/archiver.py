"""CBZ packaging of staged chapter pages."""

import os
import tempfile
import zipfile
from pathlib import Path
from typing import Sequence

from src.errors import ArchiveWriteError, EmptyInputError
from src.utils.logger import logger as LOGGER

from .storage import PART_SUFFIX


def create_archive(target_path: Path, ordered_source_paths: Sequence[Path]) -> None:
    """Write a zip archive containing the given files in order.

    Entries are stored uncompressed (page images are already compressed) and
    named by their file basename.
    """
    with zipfile.ZipFile(target_path, "w", compression=zipfile.ZIP_STORED) as zf:
        for source_path in ordered_source_paths:
            zf.write(source_path, arcname=Path(source_path).name)


class Archiver:
    """Package staged pages into a chapter archive at a target path."""

    def pack(self, ordered_file_paths: Sequence[Path], target_path: Path) -> Path:
        """Create ``target_path`` from the given pages.

        The archive is written under a temporary name next to the target and
        renamed only once complete, so a failure never leaves a partial file
        at ``target_path``.

        Raises:
            EmptyInputError: no pages to package
            ArchiveWriteError: the archive could not be written or moved
        """
        if not ordered_file_paths:
            raise EmptyInputError("No pages were downloaded, nothing to package")

        target_path = Path(target_path)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target_path.stem}-", suffix=PART_SUFFIX, dir=target_path.parent
            )
            os.close(fd)
        except OSError as e:
            raise ArchiveWriteError(f"Cannot create archive in {target_path.parent}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            create_archive(tmp_path, ordered_file_paths)
            os.replace(tmp_path, target_path)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise ArchiveWriteError(f"Failed to write archive {target_path.name}: {e}") from e

        LOGGER.info(f"Packaged {len(ordered_file_paths)} pages into {target_path}")
        return target_path
