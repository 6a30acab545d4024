# app/services/resolver.py
"""
Turn validated virtual paths into resolved filesystem paths.

Every function takes the canonical root explicitly and returns an Outcome.
Targets are probed with lstat (never followed); only ancestor directories
are canonicalized, and their canonical form must stay inside the root.

A resolved path is only proven contained at the time of the check. An
ancestor swapped for a symlink between the check and the mutation is not
detected here.
"""
from __future__ import annotations

import os
import posixpath
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.services.outcome import (
    Failure,
    Outcome,
    Success,
    bad_request,
    conflict,
    forbidden,
    internal,
    not_found,
)
from app.services.paths import clean_virtual_path, relative_within, validate_name


@dataclass(frozen=True)
class ResolvedPath:
    path: Path
    virtual: str


@dataclass(frozen=True)
class ResolvedPair:
    source: Path
    dest: Path
    virtual_source: str
    virtual_dest: str


# ---------- probes ----------

def _canonical_root(root: Path) -> Outcome[Path]:
    try:
        return Success(root.resolve(strict=True))
    except (OSError, RuntimeError) as exc:
        return internal("base directory resolution failed", exc)


def _lstat(path: Path, missing: str) -> Outcome[os.stat_result]:
    try:
        return Success(os.lstat(path))
    except (FileNotFoundError, NotADirectoryError):
        return not_found(missing)
    except OSError as exc:
        return internal("failed to stat path", exc)


def _join(real_root: Path, cleaned: str, escape_message: str) -> Outcome[Path]:
    full = real_root / cleaned
    if relative_within(real_root, full) is None:
        return bad_request(escape_message)
    return Success(full)


def _contained_parent(real_root: Path, full: Path) -> Outcome[Path]:
    """Canonical parent of `full`, which must still lie inside the root."""
    try:
        real_parent = full.parent.resolve(strict=True)
    except (FileNotFoundError, NotADirectoryError):
        return not_found("parent directory does not exist")
    except (OSError, RuntimeError) as exc:
        return internal("failed to resolve parent directory", exc)
    if relative_within(real_root, real_parent, allow_base=True) is None:
        return forbidden("parent directory escapes base directory")
    return Success(real_parent)


def _ensure_absent(path: Path) -> Optional[Failure]:
    try:
        os.lstat(path)
    except FileNotFoundError:
        return None
    except OSError as exc:
        return internal("failed to check destination", exc)
    return conflict("destination already exists")


def _check_dir_parent(full: Path, *, missing: str, symlink: str, not_dir: str) -> Optional[Failure]:
    probe = _lstat(full.parent, missing)
    if isinstance(probe, Failure):
        return probe
    mode = probe.value.st_mode
    if stat.S_ISLNK(mode):
        return forbidden(symlink)
    if not stat.S_ISDIR(mode):
        return bad_request(not_dir)
    return None


# ---------- per-operation resolution ----------

def resolve_target_dir(root: Path, virtual: str) -> Outcome[ResolvedPath]:
    """
    Resolve an upload target directory. The root itself is a valid target and
    the directory does not need to exist yet.
    """
    real_root = _canonical_root(root)
    if isinstance(real_root, Failure):
        return real_root
    real_root = real_root.value

    cleaned = clean_virtual_path(virtual)
    if isinstance(cleaned, Failure):
        return cleaned
    cleaned = cleaned.value

    target = real_root / cleaned
    try:
        real_target = target.resolve(strict=True)
    except FileNotFoundError:
        # Not created yet: resolve the existing prefix and check where it lands.
        try:
            candidate = target.resolve()
        except (OSError, RuntimeError):
            return not_found("invalid target path")
        if relative_within(real_root, candidate, allow_base=True) is None:
            return bad_request("invalid path: escapes base directory")
        return Success(ResolvedPath(candidate, cleaned))
    except (OSError, RuntimeError):
        return not_found("invalid target path")

    if relative_within(real_root, real_target, allow_base=True) is None:
        return bad_request("invalid path: escapes base directory")
    if not real_target.is_dir():
        return bad_request("target path is not a directory")
    return Success(ResolvedPath(real_target, cleaned))


def resolve_delete(root: Path, virtual: str) -> Outcome[ResolvedPath]:
    real_root = _canonical_root(root)
    if isinstance(real_root, Failure):
        return real_root
    real_root = real_root.value

    cleaned = clean_virtual_path(virtual, root_action="delete")
    if isinstance(cleaned, Failure):
        return cleaned
    cleaned = cleaned.value

    target = _join(real_root, cleaned, "invalid path: escapes base directory")
    if isinstance(target, Failure):
        return target
    target = target.value

    probe = _lstat(target, "path does not exist")
    if isinstance(probe, Failure):
        return probe
    if stat.S_ISLNK(probe.value.st_mode):
        return bad_request("cannot delete symlinks")

    parent = _contained_parent(real_root, target)
    if isinstance(parent, Failure):
        return parent
    return Success(ResolvedPath(parent.value / target.name, cleaned))


def resolve_mkdir(root: Path, virtual: str) -> Outcome[ResolvedPath]:
    real_root = _canonical_root(root)
    if isinstance(real_root, Failure):
        return real_root
    real_root = real_root.value

    cleaned = clean_virtual_path(virtual, root_action="create")
    if isinstance(cleaned, Failure):
        return cleaned
    cleaned = cleaned.value

    dir_name = posixpath.basename(cleaned)
    failure = validate_name(dir_name, "directory name")
    if failure:
        return failure

    target = _join(real_root, cleaned, "invalid path: escapes base directory")
    if isinstance(target, Failure):
        return forbidden(target.message)
    target = target.value

    failure = _check_dir_parent(
        target,
        missing="parent directory does not exist",
        symlink="cannot create directory under symlink",
        not_dir="parent path is not a directory",
    )
    if failure:
        return failure

    # The direct parent is not a symlink, but one of its ancestors may be.
    parent = _contained_parent(real_root, target)
    if isinstance(parent, Failure):
        return parent
    resolved = parent.value / dir_name

    try:
        st = os.lstat(resolved)
    except FileNotFoundError:
        return Success(ResolvedPath(resolved, cleaned))
    except OSError as exc:
        return internal("failed to check target path", exc)
    if stat.S_ISDIR(st.st_mode):
        return conflict("directory already exists")
    if stat.S_ISLNK(st.st_mode):
        return conflict("path exists as symlink")
    return conflict("path already exists as file")


def resolve_rename(root: Path, virtual: str, new_name: str) -> Outcome[ResolvedPair]:
    """Rename within the same parent directory; `new_name` is a bare name."""
    if virtual in ("", "."):
        return bad_request("source path is required")
    if not new_name:
        return bad_request("new name is required")

    real_root = _canonical_root(root)
    if isinstance(real_root, Failure):
        return real_root
    real_root = real_root.value

    cleaned = clean_virtual_path(virtual, context="source path")
    if isinstance(cleaned, Failure):
        return cleaned
    cleaned = cleaned.value
    if cleaned == ".":
        return bad_request("source path is required")

    failure = validate_name(new_name, "new name")
    if failure:
        return failure

    source = _join(real_root, cleaned, "invalid source path: escapes base directory")
    if isinstance(source, Failure):
        return source
    source = source.value

    probe = _lstat(source, "source path does not exist")
    if isinstance(probe, Failure):
        return probe
    if stat.S_ISLNK(probe.value.st_mode):
        return bad_request("cannot rename symlinks")

    parent = _contained_parent(real_root, source)
    if isinstance(parent, Failure):
        return parent
    dest = parent.value / new_name
    if relative_within(real_root, dest) is None:
        return bad_request("invalid new name: would escape base directory")

    failure = _ensure_absent(dest)
    if failure:
        return failure

    virtual_dest = posixpath.join(posixpath.dirname(cleaned), new_name)
    return Success(ResolvedPair(parent.value / source.name, dest, cleaned, virtual_dest))


def resolve_move(root: Path, source: str, dest: str) -> Outcome[ResolvedPair]:
    """Move between any two directories inside the root, never overwriting."""
    if source in ("", "."):
        return bad_request("source path is required")
    if dest in ("", "."):
        return bad_request("destination path is required")

    real_root = _canonical_root(root)
    if isinstance(real_root, Failure):
        return real_root
    real_root = real_root.value

    clean_source = clean_virtual_path(source, context="source path")
    if isinstance(clean_source, Failure):
        return clean_source
    clean_dest = clean_virtual_path(dest, context="destination path")
    if isinstance(clean_dest, Failure):
        return clean_dest
    clean_source, clean_dest = clean_source.value, clean_dest.value
    if clean_source == ".":
        return bad_request("source path is required")
    if clean_dest == ".":
        return bad_request("destination path is required")

    source_full = _join(real_root, clean_source, "invalid source path: escapes base directory")
    if isinstance(source_full, Failure):
        return source_full
    dest_full = _join(real_root, clean_dest, "invalid destination path: escapes base directory")
    if isinstance(dest_full, Failure):
        return dest_full
    source_full, dest_full = source_full.value, dest_full.value

    probe = _lstat(source_full, "source path does not exist")
    if isinstance(probe, Failure):
        return probe
    if stat.S_ISLNK(probe.value.st_mode):
        return bad_request("cannot move symlinks")

    source_parent = _contained_parent(real_root, source_full)
    if isinstance(source_parent, Failure):
        return source_parent

    failure = _check_dir_parent(
        dest_full,
        missing="destination parent directory does not exist",
        symlink="cannot move to directory under symlink",
        not_dir="destination parent is not a directory",
    )
    if failure:
        return failure
    dest_parent = _contained_parent(real_root, dest_full)
    if isinstance(dest_parent, Failure):
        return dest_parent

    resolved_source = source_parent.value / source_full.name
    resolved_dest = dest_parent.value / dest_full.name
    if relative_within(resolved_source, resolved_dest) is not None:
        return bad_request("cannot move a directory into itself")

    failure = _ensure_absent(resolved_dest)
    if failure:
        return failure

    return Success(ResolvedPair(resolved_source, resolved_dest, clean_source, clean_dest))


def resolve_publish(root: Path, virtual: str) -> Outcome[ResolvedPath]:
    """Only existing regular files can be shared."""
    real_root = _canonical_root(root)
    if isinstance(real_root, Failure):
        return real_root
    real_root = real_root.value

    cleaned = clean_virtual_path(virtual, root_action="share")
    if isinstance(cleaned, Failure):
        return cleaned
    cleaned = cleaned.value

    target = _join(real_root, cleaned, "invalid path: escapes base directory")
    if isinstance(target, Failure):
        return target
    target = target.value

    probe = _lstat(target, "path does not exist")
    if isinstance(probe, Failure):
        return probe
    mode = probe.value.st_mode
    if stat.S_ISLNK(mode):
        return bad_request("cannot share symlinks")
    if not stat.S_ISREG(mode):
        return bad_request("only regular files can be shared publicly")

    parent = _contained_parent(real_root, target)
    if isinstance(parent, Failure):
        return parent
    return Success(ResolvedPath(parent.value / target.name, cleaned))
