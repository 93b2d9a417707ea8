"""Persist analysis artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import os

from .errors import WriteFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputArtifact:
    path: str
    size: int


class ArtifactWriter:
    """Write each artifact once, through a temporary sibling and a rename.

    A job that fails half way never leaves a truncated artifact behind.
    """

    def write(self, path, payload: bytes) -> OutputArtifact:
        dest = Path(path)
        tmp = dest.with_name(f".{dest.name}.tmp")
        try:
            tmp.write_bytes(payload)
            os.replace(tmp, dest)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise WriteFailure(f"cannot write {dest}: {e}") from e
        return OutputArtifact(path=str(dest), size=len(payload))
