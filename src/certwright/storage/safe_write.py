"""Crash-safe text file replacement.

:func:`safe_write` is the only way certwright writes durable state
(renewal records, cached keys and certificates, the secret vault).
The transaction is::

    1. refuse if <path>.new or <path>.previous exists
    2. write <path>.new, fsync, read back and compare
    3. copy the current <path> to <path>.previous (if it exists)
    4. atomically replace <path> with <path>.new
    5. read <path> back and compare
    6. delete <path>.previous

A crash at any point leaves either the old or the new content at
``path`` plus leftover files that block further writes until an
operator has inspected them.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from certwright.core.errors import InterruptedWriteError, PersistenceError

log = logging.getLogger(__name__)

NEW_SUFFIX = ".new"
PREVIOUS_SUFFIX = ".previous"
_ENCODING = "utf-8"


def _sibling(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def _write_synced(path: Path, content: str, mode: int | None) -> None:
    flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL
    fd = os.open(path, flags, 0o600 if mode is None else mode)
    with os.fdopen(fd, "w", encoding=_ENCODING, newline="") as fh:
        fh.write(content)
        fh.flush()
        os.fsync(fh.fileno())


def _read(path: Path) -> str:
    with path.open(encoding=_ENCODING, newline="") as fh:
        return fh.read()


def _replace(target: Path, new: Path, previous: Path, content: str, mode: int | None) -> None:
    existed = target.exists()
    if existed and mode is None:
        mode = target.stat().st_mode & 0o777

    _write_synced(new, content, mode)
    if _read(new) != content:
        msg = f"Verification of {new} failed; original {target} left untouched"
        raise PersistenceError(msg)

    if existed:
        shutil.copy2(target, previous)
    os.replace(new, target)

    if _read(target) != content:
        msg = (
            f"Overwrite of {target} failed. "
            f"A backup should be available in {previous.name}"
            if existed
            else f"Write of {target} could not be verified"
        )
        raise PersistenceError(msg)

    if existed:
        previous.unlink()


def safe_write(path: str | Path, content: str, *, mode: int | None = None) -> None:
    """Atomically replace the text content of *path*.

    Parameters
    ----------
    path:
        Destination file.  Its parent directory must exist.
    content:
        Full new content, written as UTF-8.
    mode:
        Permission bits for a newly created file (default ``0o600``).
        An existing file's mode is preserved.

    Raises
    ------
    InterruptedWriteError
        If ``.new`` or ``.previous`` files from an earlier write exist.
    PersistenceError
        If the file system refuses the write or the written data cannot
        be verified.  When the failure happens after the original was
        replaced, the old content is available in the ``.previous`` file.

    """
    target = Path(path)
    new = _sibling(target, NEW_SUFFIX)
    previous = _sibling(target, PREVIOUS_SUFFIX)

    leftovers = [p.name for p in (new, previous) if p.exists()]
    if leftovers:
        log.error("Refusing to write %s: found %s", target, ", ".join(leftovers))
        raise InterruptedWriteError(str(target), leftovers)

    try:
        _replace(target, new, previous, content, mode)
    except OSError as exc:
        msg = f"Unable to write {target}: {exc}"
        raise PersistenceError(msg) from exc
    log.debug("Wrote %s (%d chars)", target, len(content))


def safe_delete(path: str | Path) -> bool:
    """Delete *path* unless an interrupted write is pending on it.

    Returns ``True`` if a file was removed.
    """
    target = Path(path)
    leftovers = [
        p.name for p in (_sibling(target, NEW_SUFFIX), _sibling(target, PREVIOUS_SUFFIX)) if p.exists()
    ]
    if leftovers:
        raise InterruptedWriteError(str(target), leftovers)
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        msg = f"Unable to delete {target}: {exc}"
        raise PersistenceError(msg) from exc
    return True
