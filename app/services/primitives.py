# app/services/primitives.py
"""
Filesystem mutations on already-resolved paths.

Exclusive create and rename are the only race-safe steps. Anything the
resolver checked earlier may have changed since, so the errors raised by the
syscalls themselves are what get mapped to failures.
"""
from __future__ import annotations

import errno
import logging
import os
import stat
from pathlib import Path
from typing import BinaryIO, Optional

from app.services.outcome import (
    Failure,
    FailureKind,
    Outcome,
    Success,
    conflict,
    forbidden,
    internal,
    not_found,
)

logger = logging.getLogger(__name__)

FILE_MODE = 0o644
DIR_MODE = 0o755
CHUNK_SIZE = 1024 * 1024

_CREATE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_NOFOLLOW", 0)


class _TooLarge(Exception):
    pass


def _discard(path: Path) -> None:
    try:
        os.unlink(path)
    except OSError as exc:
        logger.warning("failed to remove partial file %s: %s", path, exc)


def atomic_create_write(
    dest: Path,
    stream: BinaryIO,
    max_bytes: Optional[int] = None,
    chunk_size: int = CHUNK_SIZE,
) -> Outcome[int]:
    """
    Create `dest` exclusively and stream `stream` into it.

    Never overwrites: if another writer created the file after the caller's
    existence check, the exclusive open fails with CONFLICT. On any failure
    after the open, the partial file is removed.
    """
    try:
        fd = os.open(dest, _CREATE_FLAGS, FILE_MODE)
    except FileExistsError:
        return conflict("file already exists")
    except PermissionError as exc:
        return forbidden("permission denied", exc)
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            return conflict("file already exists")
        return internal("failed to create destination file", exc)

    written = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while True:
                chunk = stream.read(chunk_size)
                if not chunk:
                    break
                written += len(chunk)
                if max_bytes is not None and written > max_bytes:
                    raise _TooLarge()
                out.write(chunk)
            out.flush()
            os.fsync(out.fileno())
    except _TooLarge:
        _discard(dest)
        return Failure(FailureKind.PAYLOAD_TOO_LARGE, "upload size exceeds limit")
    except OSError as exc:
        _discard(dest)
        return internal("failed to write file", exc)
    except BaseException:
        _discard(dest)
        raise
    return Success(written)


def ensure_dir(path: Path) -> Outcome[Path]:
    """Create an upload target directory, including missing parents."""
    try:
        os.makedirs(path, mode=DIR_MODE, exist_ok=True)
    except PermissionError as exc:
        return forbidden("permission denied", exc)
    except (FileExistsError, NotADirectoryError):
        return conflict("target path is not a directory")
    except OSError as exc:
        return internal("failed to create target directory", exc)
    return Success(path)


def _dir_is_empty(path: Path) -> bool:
    with os.scandir(path) as it:
        return next(it, None) is None


def delete_path(path: Path) -> Outcome[Path]:
    """Remove a file or an empty directory. No recursion."""
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return not_found("path does not exist")
    except OSError as exc:
        return internal("failed to stat path", exc)

    is_dir = stat.S_ISDIR(st.st_mode)
    try:
        if is_dir:
            if not _dir_is_empty(path):
                return conflict("directory is not empty")
            os.rmdir(path)
        else:
            os.unlink(path)
    except FileNotFoundError:
        return not_found("path does not exist")
    except PermissionError as exc:
        return forbidden("permission denied", exc)
    except OSError as exc:
        if exc.errno in (errno.ENOTEMPTY, errno.EEXIST):
            return conflict("directory is not empty")
        return internal(f"failed to delete {'directory' if is_dir else 'file'}", exc)
    return Success(path)


def make_dir(path: Path) -> Outcome[Path]:
    """Create exactly one directory level; the parent must already exist."""
    try:
        os.mkdir(path, DIR_MODE)
    except FileExistsError:
        return conflict("directory already exists")
    except FileNotFoundError:
        return not_found("parent directory does not exist")
    except PermissionError as exc:
        return forbidden("permission denied", exc)
    except OSError as exc:
        return internal("failed to create directory", exc)
    return Success(path)


def rename_path(source: Path, dest: Path) -> Outcome[Path]:
    """Single rename syscall shared by rename and move."""
    try:
        os.rename(source, dest)
    except FileNotFoundError:
        return not_found("source path does not exist")
    except PermissionError as exc:
        return forbidden("permission denied", exc)
    except (FileExistsError, IsADirectoryError, NotADirectoryError):
        return conflict("destination already exists")
    except OSError as exc:
        if exc.errno == errno.ENOTEMPTY:
            return conflict("destination already exists")
        return internal("rename failed", exc)
    return Success(dest)

