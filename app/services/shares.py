# app/services/shares.py
from __future__ import annotations

import base64
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from app.config import Roots
from app.logging import log_failure, log_operation
from app.services import resolver
from app.services.outcome import (
    Failure,
    FailureKind,
    Outcome,
    Success,
    bad_request,
    conflict,
    forbidden,
    internal,
    not_found,
)
from app.services.paths import clean_virtual_path, relative_within

logger = logging.getLogger(__name__)

DIR_MODE = 0o755


def encode_share_id(path: str) -> str:
    return base64.urlsafe_b64encode(path.encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class ShareLink:
    share_id: str
    path: str


def prune_empty_parents(deleted: Path, stop_at: Path) -> int:
    """
    Remove now-empty ancestors of `deleted`, walking upward and stopping
    strictly below `stop_at`. Stops at the first directory that is not
    empty or cannot be read/removed. Never raises; returns how many
    directories were removed.
    """
    removed = 0
    current = deleted.parent
    while True:
        rel = relative_within(stop_at, current)
        if rel is None:
            return removed
        try:
            with os.scandir(current) as it:
                if next(it, None) is not None:
                    return removed
            os.rmdir(current)
        except OSError as e:
            logger.debug("stopped pruning at %s: %s", current, e)
            return removed
        removed += 1
        current = current.parent


class PublicShareService:
    """
    Maintains the public tree: one symlink per shared file, at the same
    relative path as the file under the base root.
    """

    def __init__(self, roots: Roots):
        self.roots = roots

    @property
    def enabled(self) -> bool:
        return self.roots.public is not None

    def _unavailable(self) -> Failure:
        return Failure(
            FailureKind.UNAVAILABLE,
            "public sharing is not enabled (public-base-dir not configured)",
        )

    # ---------- Publish ----------

    def publish(self, virtual: str) -> Outcome[ShareLink]:
        if not self.enabled:
            return self._unavailable()
        public_root: Path = self.roots.public

        target = resolver.resolve_publish(self.roots.base, virtual)
        if isinstance(target, Failure):
            log_failure(logger, "publish", target, {"path": virtual})
            return target
        source, rel = target.value.path, target.value.virtual

        link = public_root / rel
        if relative_within(public_root, link) is None:
            return bad_request("invalid path: escapes public base directory")

        outcome = self._link(str(source), link)
        if isinstance(outcome, Failure):
            log_failure(logger, "publish", outcome, {"path": rel, "link": link})
            return outcome
        log_operation(logger, "publish", {"source": source, "link": link})
        return Success(ShareLink(share_id=encode_share_id(rel), path=rel))

    def _link(self, source: str, link: Path) -> Outcome[Path]:
        try:
            os.makedirs(link.parent, mode=DIR_MODE, exist_ok=True)
        except PermissionError as e:
            return forbidden("permission denied creating public directory", e)
        except (FileExistsError, NotADirectoryError):
            return conflict("path already exists in public directory")
        except OSError as e:
            return internal("failed to create public directory structure", e)

        # makedirs follows symlinks; the directory it landed in must still be ours.
        try:
            real_parent = link.parent.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            return internal("failed to resolve public directory", e)
        if relative_within(self.roots.public, real_parent, allow_base=True) is None:
            return forbidden("public directory escapes public base directory")

        existing = self._existing_link(link, source)
        if existing is not None:
            return existing

        try:
            os.symlink(source, link)
        except FileExistsError:
            # Lost a race with a concurrent publish; same target is still fine.
            existing = self._existing_link(link, source)
            return existing if existing is not None else conflict("public share already exists")
        except PermissionError as e:
            return forbidden("permission denied creating symlink", e)
        except OSError as e:
            return internal("failed to create symlink", e)
        return Success(link)

    def _existing_link(self, link: Path, source: str) -> Optional[Outcome[Path]]:
        """None if nothing is at `link`; Success if it already points at `source`."""
        try:
            st = os.lstat(link)
        except FileNotFoundError:
            return None
        except OSError as e:
            return internal("failed to check link path", e)
        if not stat.S_ISLNK(st.st_mode):
            return conflict("path already exists in public directory")
        try:
            current = os.readlink(link)
        except OSError:
            current = None
        if current == source:
            return Success(link)
        return conflict("public share already exists with different target")

    # ---------- Unpublish ----------

    def unpublish(self, virtual: str) -> Outcome[str]:
        if not self.enabled:
            return self._unavailable()
        public_root: Path = self.roots.public

        if not virtual:
            return bad_request("path is required")
        cleaned = clean_virtual_path(virtual)
        if isinstance(cleaned, Failure):
            return cleaned
        rel = cleaned.value
        if rel == ".":
            return bad_request("invalid path: cannot delete base directory")

        link = public_root / rel
        if relative_within(public_root, link) is None:
            return bad_request("invalid path: escapes public base directory")

        try:
            st = os.lstat(link)
        except (FileNotFoundError, NotADirectoryError):
            return not_found("path does not exist")
        except OSError as e:
            return self._fail("unpublish", internal("failed to stat path", e), rel)
        if not stat.S_ISLNK(st.st_mode):
            if stat.S_ISDIR(st.st_mode):
                return bad_request("path is a directory, not a symlink")
            return bad_request("path is not a symlink")

        try:
            real_parent = link.parent.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            return self._fail("unpublish", internal("failed to resolve link directory", e), rel)
        if relative_within(public_root, real_parent, allow_base=True) is None:
            return forbidden("link directory escapes public base directory")

        try:
            os.unlink(link)
        except FileNotFoundError:
            return not_found("path does not exist")
        except PermissionError as e:
            return forbidden("permission denied", e)
        except OSError as e:
            return self._fail("unpublish", internal("failed to delete symlink", e), rel)

        # The unlink has committed; pruning is best-effort and never fails the call.
        pruned = prune_empty_parents(link, public_root)
        log_operation(logger, "unpublish", {"link": link, "pruned": pruned})
        return Success(rel)

    def _fail(self, name: str, failure: Failure, path: str) -> Failure:
        log_failure(logger, name, failure, {"path": path})
        return failure

    # ---------- List ----------

    def list(self) -> Outcome[List[str]]:
        """
        Relative, slash-separated paths of every shared file, sorted.
        Regular files and symlinks to regular files count; directories,
        broken links, links to directories and special files do not.
        """
        if not self.enabled:
            return self._unavailable()
        public_root: Path = self.roots.public

        files: List[str] = []
        pending = [public_root]
        while pending:
            current = pending.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logger.debug("skipping unreadable directory %s: %s", current, e)
                continue
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        pending.append(Path(entry.path))
                        continue
                    if entry.is_symlink():
                        if not stat.S_ISREG(os.stat(entry.path).st_mode):
                            continue
                    elif not entry.is_file(follow_symlinks=False):
                        continue
                except OSError:
                    # Broken symlink or vanished entry.
                    continue
                rel = relative_within(public_root, Path(entry.path))
                if rel is None:
                    continue
                files.append(rel.replace(os.sep, "/"))

        files.sort()
        return Success(files)
