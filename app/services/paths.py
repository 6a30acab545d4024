# app/services/paths.py
"""
Lexical validation of client-supplied virtual paths.

Nothing in this module touches the filesystem; the resolver builds on it.
"""
from __future__ import annotations

import os
import posixpath
from pathlib import Path
from typing import Optional

from app.services.outcome import Failure, Outcome, Success, bad_request, forbidden

NAME_SEPARATORS = ("/", "\\")


def has_parent_reference(path: str) -> bool:
    return ".." in path.split("/")


def clean_virtual_path(
    raw: str,
    *,
    root_action: Optional[str] = None,
    context: str = "path",
) -> Outcome[str]:
    """
    Normalize a virtual path and reject traversal, absolute paths and null bytes.

    When `root_action` is set the operation may not target the root itself,
    and an empty or "." path fails with FORBIDDEN rather than BAD_REQUEST.
    """
    if root_action and raw in ("", "."):
        return forbidden(f"cannot {root_action} base directory")
    if "\x00" in raw:
        return bad_request(f"invalid {context}: contains null byte")
    if has_parent_reference(raw):
        return bad_request(f"invalid {context}: contains parent directory reference")

    cleaned = posixpath.normpath(raw) if raw else "."
    if posixpath.isabs(cleaned):
        return bad_request(f"invalid {context}: absolute paths not allowed")
    if has_parent_reference(cleaned):
        return bad_request(f"invalid {context}: contains parent directory reference")
    if root_action and cleaned == ".":
        return forbidden(f"cannot {root_action} base directory")
    return Success(cleaned)


def validate_name(name: str, context: str = "name") -> Optional[Failure]:
    """Check a bare file or directory name (no separators, not . or ..)."""
    if "\x00" in name:
        return bad_request(f"invalid {context}: contains null byte")
    if any(sep in name for sep in NAME_SEPARATORS):
        return bad_request(f"invalid {context}: must be a simple name without path separators")
    if name in ("", ".", ".."):
        return bad_request(f"invalid {context}")
    return None


def validate_filename(filename: str) -> Outcome[str]:
    """Reduce an upload filename to its base name and refuse hidden files."""
    if "\x00" in filename:
        return bad_request("invalid filename: contains null byte")
    # Browsers on Windows may send the full client-side path.
    base = posixpath.basename(filename.replace("\\", "/"))
    if base in ("", ".", ".."):
        return bad_request("invalid filename")
    if base.startswith("."):
        return bad_request("hidden files not allowed")
    return Success(base)


def relative_within(base: Path, target: Path, *, allow_base: bool = False) -> Optional[str]:
    """
    Containment check: the relative path from `base` to `target`, or None
    when `target` escapes `base` (or is `base` itself and that is not allowed).
    """
    try:
        rel = os.path.relpath(target, base)
    except ValueError:
        return None
    if rel == ".." or rel.startswith("../") or os.path.isabs(rel):
        return None
    if rel == "." and not allow_base:
        return None
    return rel
