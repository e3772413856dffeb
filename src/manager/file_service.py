"""Readable sources for uploaded subtitle files."""

import asyncio
import logging
from pathlib import Path
from typing import Protocol, Union

from common.errors import SubtitleReadError

logger = logging.getLogger(__name__)


class SubtitleSource(Protocol):
    """Anything the orchestrator can read a subtitle document from."""

    name: str

    async def read_text(self) -> str:
        """Return the document text or raise SubtitleReadError."""
        ...


def decode_subtitle_bytes(filename: str, data: bytes) -> str:
    """
    Decode uploaded bytes as UTF-8, keeping a BOM if present.

    Raises:
        SubtitleReadError: If the bytes are not valid UTF-8
    """
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SubtitleReadError(filename, f"not valid UTF-8 ({e.reason})") from e


class UploadedSubtitleFile:
    """Subtitle file received through the API, held in memory."""

    def __init__(self, name: str, data: bytes):
        self.name = name
        self._data = data

    async def read_text(self) -> str:
        return decode_subtitle_bytes(self.name, self._data)


class LocalSubtitleFile:
    """Subtitle file on disk, read off the event loop."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.name = self.path.name

    async def read_text(self) -> str:
        try:
            data = await asyncio.to_thread(self.path.read_bytes)
        except OSError as e:
            logger.error(f"Failed to read subtitle file {self.path}: {e}")
            raise SubtitleReadError(self.name, str(e)) from e

        logger.debug(f"Read {len(data)} bytes from {self.path}")
        return decode_subtitle_bytes(self.name, data)
