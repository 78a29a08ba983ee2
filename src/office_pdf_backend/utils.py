"""
Utility functions for file system operations, subprocesses and archives.

This module provides helper functions for:
- Sanitizing user-provided filenames for safe filesystem usage
- Ensuring directory creation
- Running external binaries under a cancellation token
- Bundling several artifacts into a single zip archive
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Collection, Iterable, Sequence, Tuple

from .errors import RequestCancelledError

if TYPE_CHECKING:
    from .request_scope import CancellationToken

logger = logging.getLogger(__name__)

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")

# Interval at which a running subprocess is checked against the token
POLL_INTERVAL = 0.1


def sanitize_filename(filename: str, fallback: str = "document") -> str:
    """
    Generate a filesystem-safe filename from an uploaded filename.

    Directory components are dropped and unsafe characters replaced, while the
    extension is kept (lower-cased) so the converter can still recognize it.

    Example:
        >>> sanitize_filename("../My Report!.DOCX")
        "My-Report.docx"
        >>> sanitize_filename("@#$.odt")
        "document.odt"
    """
    name = Path(filename.replace("\\", "/")).name
    stem, extension = split_extension(name)
    cleaned = SANITIZE_PATTERN.sub("-", stem.strip()).strip("-_.")
    return f"{cleaned or fallback}{extension.lower()}"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def unique_filename(filename: str, taken: Collection[str]) -> str:
    """
    Return ``filename``, suffixed with ``-2``, ``-3``... when it is already taken.

    Example:
        >>> unique_filename("report.docx", {"report.docx"})
        "report-2.docx"
    """
    if filename not in taken:
        return filename
    stem, extension = split_extension(filename)
    counter = 2
    while f"{stem}-{counter}{extension}" in taken:
        counter += 1
    return f"{stem}-{counter}{extension}"


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    Example:
        >>> split_extension("document.docx")
        ("document", ".docx")
    """
    path = Path(filename)
    return path.stem, path.suffix


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


def run_command(
    command: Sequence[str],
    token: "CancellationToken",
    command_logger: logging.Logger | logging.LoggerAdapter = logger,
) -> CommandResult:
    """
    Run an external binary, killing it as soon as the token fires.

    Raises:
        RequestCancelledError: If the token fires before the process exits.
        OSError: If the binary cannot be started.
    """
    token.raise_if_cancelled()
    command_logger.debug(f"Running command: {' '.join(command)}")

    process = subprocess.Popen(
        list(command),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    while True:
        try:
            stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if token.cancelled:
                process.kill()
                process.communicate()
                command_logger.warning(f"Killed {command[0]}: {token.reason}")
                raise RequestCancelledError(token.reason)

    command_logger.debug(f"{command[0]} exited with code {process.returncode}")
    return CommandResult(returncode=process.returncode, stdout=stdout or "", stderr=stderr or "")


def create_zip_archive(entries: Iterable[Tuple[str, Path]], destination: Path) -> Path:
    """
    Bundle ``(name, path)`` entries into ``destination`` (a ``.zip`` path) and return it.

    The files are staged in a sibling directory so the archive holds them
    flat, under their entry names; repeated names get a numeric suffix.
    """
    staging_dir = ensure_directory(destination.with_suffix(""))
    taken: set[str] = set()
    for name, path in entries:
        name = unique_filename(name, taken)
        taken.add(name)
        shutil.copy2(path, staging_dir / name)

    logger.info(f"Creating zip archive: {destination} from {staging_dir}")
    archive_path = shutil.make_archive(str(destination.with_suffix("")), "zip", root_dir=staging_dir)
    shutil.rmtree(staging_dir, ignore_errors=True)
    return Path(archive_path)
