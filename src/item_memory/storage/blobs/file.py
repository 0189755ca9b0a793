"""
File-backed blob storage implementation.

Each blob lives in its own file under a directory. Writes are atomic: the
full blob goes to a temporary file in the same directory which then replaces
the previous file, so a crash mid-write leaves the last saved blob intact.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileBlobStore:
    """File implementation of the BlobStore protocol."""

    def __init__(self, directory: Union[str, Path], suffix: str = ".json"):
        """
        Initialize the file store.

        Args:
            directory: Directory holding the blobs (created if missing)
            suffix: File name suffix for blobs
        """
        self._directory = Path(directory)
        self._suffix = suffix
        self._directory.mkdir(parents=True, exist_ok=True)

        logger.info(f"FileBlobStore initialized (directory={self._directory})")

    def path_for(self, key: str) -> Path:
        return self._directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}{self._suffix}"

    def read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, key: str, blob: str) -> None:
        path = self.path_for(key)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=self._directory)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                tmp_file.write(blob)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())

            # Atomic replace (works on Windows and POSIX)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.debug(f"Wrote blob {key} to {path} ({len(blob)} chars)")

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return False
        return True
