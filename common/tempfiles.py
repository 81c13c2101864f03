"""Scoped temporary files and directories, removed on every exit path."""

import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from common.constants import DEFAULT_TEMP_ROOT, TEMP_PREFIX
from common.logging_config import get_logger
from common.multipart import random_boundary

logger = get_logger(__name__)


def temp_root() -> Path:
    """
    Directory holding temporary files.

    Returns:
        TMPDIR if set, /var/tmp otherwise
    """
    return Path(os.environ.get("TMPDIR") or DEFAULT_TEMP_ROOT)


def temp_path(root: Optional[Path] = None) -> Path:
    """
    Build a fresh, unpredictable path under the temp root.

    Args:
        root: Override for the temp root directory

    Returns:
        Path that does not exist yet
    """
    return (root or temp_root()) / f"{TEMP_PREFIX}{random_boundary()}"


@contextmanager
def scoped_file(root: Optional[Path] = None) -> Iterator[Path]:
    """
    Reserve a temporary file path; the file is deleted on exit if it exists.

    Yields:
        Path of the temporary file (not created)
    """
    path = temp_path(root)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove temporary file {path}: {e}")


@contextmanager
def scoped_dir(root: Optional[Path] = None) -> Iterator[Path]:
    """
    Create a temporary directory, removed recursively on exit.

    Yields:
        Path of the created directory

    Raises:
        OSError: If the directory cannot be created
    """
    path = temp_path(root)
    path.mkdir()
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
