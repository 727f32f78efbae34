"""Writes generated files to disk."""

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel

from .errors import OutputError

logger = logging.getLogger(__name__)


class OutputFile(BaseModel):
    path: Path
    content: str


class FileWriter:
    """Writes files with ``pathlib``, creating parent directories as needed.

    Args:
        encoding: Text encoding for every file.
        overwrite: When False, an existing file raises ``OutputError``.
    """

    def __init__(self, encoding: str = "utf-8", overwrite: bool = True):
        self.encoding = encoding
        self.overwrite = overwrite

    def write(self, path: str | Path, content: str) -> Path:
        target = Path(path)
        if target.exists() and not self.overwrite:
            raise OutputError(f"Refusing to overwrite existing file {target}.")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding=self.encoding)
        except OSError as exc:
            raise OutputError(f"Failed to write {target}: {exc}") from exc
        return target

    def write_batch(self, files: Iterable[OutputFile]) -> list[Path]:
        written = [self.write(f.path, f.content) for f in files]
        logger.info("Wrote %d files", len(written))
        return written


def clean_directory(path: str | Path) -> Path:
    """Remove ``path`` recursively; a filesystem root is never removed."""
    target = Path(path).expanduser().resolve()
    if target == Path(target.anchor):
        raise OutputError("Refusing to remove root output directory.")
    if target.is_dir():
        logger.debug("Removing %s", target)
        shutil.rmtree(target)
    elif target.exists():
        raise OutputError(f"Output path {target} is not a directory.")
    return target
