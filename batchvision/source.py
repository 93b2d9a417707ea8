"""Enumerate and read input images from a directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional
import logging

from .errors import SourceUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageItem:
    """One input image: its identifier and raw payload."""

    identifier: str
    payload: bytes


class ImageSource:
    """Directory backed source of :class:`ImageItem` objects.

    Only regular, non-hidden files are listed, sorted by name so that job
    ordering is stable across runs. ``extensions`` optionally restricts the
    listing to a set of case-insensitive suffixes such as ``{".jpg"}``.
    """

    def __init__(self, extensions: Optional[Iterable[str]] = None):
        self.extensions = (
            {e.lower() if e.startswith(".") else "." + e.lower() for e in extensions}
            if extensions
            else None
        )

    def list(self, directory) -> List[str]:
        root = Path(directory)
        if not root.is_dir():
            raise SourceUnavailable(f"source directory not found: {root}")
        try:
            entries = sorted(p for p in root.iterdir())
        except OSError as e:
            raise SourceUnavailable(f"cannot list {root}: {e}") from e
        names = []
        for p in entries:
            if p.name.startswith(".") or not p.is_file():
                continue
            if self.extensions is not None and p.suffix.lower() not in self.extensions:
                continue
            names.append(p.name)
        logger.debug("listed %d items in %s", len(names), root)
        return names

    def read_bytes(self, directory, identifier: str) -> bytes:
        path = Path(directory) / identifier
        try:
            return path.read_bytes()
        except OSError as e:
            raise SourceUnavailable(f"cannot read {path}: {e}") from e

    def read(self, directory, identifier: str) -> ImageItem:
        return ImageItem(identifier=identifier, payload=self.read_bytes(directory, identifier))
