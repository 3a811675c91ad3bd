"""Small filesystem helpers used while building the fixture tree."""

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(f"certfixtures.{__name__}")


def create_file(path: os.PathLike[str], data: bytes) -> None:
    """Create or truncate ``path`` and write ``data`` to it."""
    with Path(path).open("wb") as f:
        f.write(data)


def touch(path: os.PathLike[str]) -> None:
    """Create ``path`` as an empty file unless it already exists."""
    Path(path).touch(exist_ok=True)


def read_tail_trimmed(path: os.PathLike[str], trim_count: int) -> bytes:
    """Return the content of ``path`` without its last ``trim_count`` bytes.

    Args:
        path: The file to read
        trim_count: The number of bytes to leave out at the end

    Returns:
        The remaining bytes

    Raises:
        ValueError: If trim_count is negative or larger than the file
    """
    with Path(path).open("rb") as f:
        data = f.read()
    if not 0 <= trim_count <= len(data):
        raise ValueError(f"Unable to trim {trim_count} bytes from {path} which is {len(data)} bytes")
    return data[: len(data) - trim_count]


def concat_files(paths: Iterable[os.PathLike[str]], output_path: os.PathLike[str]) -> None:
    """Write the content of each input file to ``output_path``, in order."""
    with Path(output_path).open("wb") as out:
        for path in paths:
            with Path(path).open("rb") as f:
                shutil.copyfileobj(f, out)


def purge_matching(root: os.PathLike[str], pattern: str) -> list[Path]:
    """Recursively delete every file under ``root`` with a name matching ``pattern``.

    Returns:
        The list of deleted paths
    """
    removed = []
    for path in sorted(Path(root).rglob(pattern)):
        if path.is_file():
            path.unlink()
            removed.append(path)
    logger.debug(f"Removed {len(removed)} files matching {pattern} under {root}")
    return removed
