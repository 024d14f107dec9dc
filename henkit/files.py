"""Small file helpers: sizes, whole-file reads and writes, marker files."""

from __future__ import annotations

import logging
import os
from pathlib import Path

TEMP_DIR = "/user/temp"
MAX_PATH = 260

logger = logging.getLogger(__name__)

_ASCII_UPPER = str.maketrans("abcdefghijklmnopqrstuvwxyz", "ABCDEFGHIJKLMNOPQRSTUVWXYZ")

PathLike = str | os.PathLike


def get_file_size(path: PathLike) -> int:
    """Return the size of a file in bytes."""
    return os.stat(path).st_size


def read_file(path: PathLike, size: int) -> bytes:
    """Read up to ``size`` bytes, zero-padded to exactly ``size`` bytes."""
    with open(path, "rb") as handle:
        data = handle.read(size)
    return data.ljust(size, b"\0")


def write_file(path: PathLike, data: bytes) -> None:
    """Replace the file's contents with ``data``."""
    with open(path, "wb") as handle:
        handle.write(data)


def file_exists(path: PathLike) -> bool:
    """Tell whether ``path`` exists."""
    return os.access(path, os.F_OK)


def touch(path: PathLike) -> None:
    """Create ``path`` as an empty file, truncating it if it exists."""
    with open(path, "w"):
        pass


def _temp_path(name: str, temp_dir: PathLike) -> str:
    return f"{os.fspath(temp_dir)}/{name}"[: MAX_PATH - 1]


def touch_temp(name: str, temp_dir: PathLike = TEMP_DIR) -> str:
    """Create an empty marker file named ``name`` in ``temp_dir``; return its path."""
    path = _temp_path(name, temp_dir)
    touch(path)
    logger.info("touched %s", path)
    return path


def file_exists_temp(name: str, temp_dir: PathLike = TEMP_DIR) -> bool:
    """Tell whether the marker file ``name`` exists in ``temp_dir``."""
    path = _temp_path(name, temp_dir)
    exists = file_exists(path)
    logger.info("%s exists: %s", path, exists)
    return exists


def ends_with(text: str, suffix: str) -> str | None:
    """Return the tail of ``text`` matching ``suffix`` ignoring ASCII case, else None."""
    if len(text) < len(suffix):
        return None
    tail = text[len(text) - len(suffix) :]
    if tail.translate(_ASCII_UPPER) != suffix.translate(_ASCII_UPPER):
        return None
    return tail


__all__ = [
    "Path",
    "ends_with",
    "file_exists",
    "file_exists_temp",
    "get_file_size",
    "read_file",
    "touch",
    "touch_temp",
    "write_file",
]