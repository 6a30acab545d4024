# app/services/filesystem.py
from __future__ import annotations

import io
import logging
import os
import posixpath
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterable, List, Optional, Tuple

from app.config import Roots
from app.logging import log_failure, log_operation, sanitize_str
from app.services import primitives, resolver
from app.services.outcome import (
    Failure,
    FailureKind,
    Outcome,
    Success,
    bad_request,
    conflict,
)
from app.services.paths import relative_within, validate_filename

logger = logging.getLogger(__name__)


@dataclass
class UploadReport:
    uploaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MoveResult:
    source: str
    dest: str


class FileSystemService:
    """
    All file mutations, confined to roots.base.

    Each public method resolves its virtual path(s), performs one primitive,
    and returns an Outcome. This is also where operations get logged.
    """

    def __init__(self, roots: Roots, max_upload_bytes: Optional[int] = None):
        self.roots = roots
        self.max_upload_bytes = max_upload_bytes

    @property
    def root(self):
        return self.roots.base

    def _finish(self, name: str, outcome: Outcome, /, **args) -> Outcome:
        if isinstance(outcome, Failure):
            log_failure(logger, name, outcome, args)
        else:
            log_operation(logger, name, args)
        return outcome

    # ---------- Upload ----------

    def resolve_upload_target(self, virtual_dir: str) -> Outcome[resolver.ResolvedPath]:
        target = resolver.resolve_target_dir(self.root, virtual_dir)
        if isinstance(target, Failure):
            log_failure(logger, "upload", target, {"path": virtual_dir})
        return target

    def upload(
        self,
        virtual_dir: str,
        files: Iterable[Tuple[str, BinaryIO]],
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> Outcome[UploadReport]:
        """
        Write a batch of files into one target directory, never overwriting.

        Per-file problems land in the report (`skipped` for existing names,
        `errors` for invalid ones); only target resolution and the size
        ceiling fail the whole batch.
        """
        target = self.resolve_upload_target(virtual_dir)
        if isinstance(target, Failure):
            return target
        target_dir = target.value.path

        report = UploadReport()
        created = primitives.ensure_dir(target_dir)
        if isinstance(created, Failure):
            log_failure(logger, "upload", created, {"path": virtual_dir})
            report.errors.append("failed to create target directory")
            return Success(report)

        budget = self.max_upload_bytes
        for raw_name, stream in files:
            if is_cancelled is not None and is_cancelled():
                logger.info("upload cancelled by caller after %d file(s)", len(report.uploaded))
                break

            filename = validate_filename(raw_name)
            if isinstance(filename, Failure):
                report.errors.append(f"{sanitize_str(raw_name)}: {filename.message}")
                continue
            filename = filename.value

            dest = target_dir / filename
            if relative_within(self.root, dest) is None:
                report.errors.append(f"{filename}: invalid destination path")
                continue
            if os.path.lexists(dest):
                report.skipped.append(filename)
                continue

            written = primitives.atomic_create_write(dest, stream, max_bytes=budget)
            if isinstance(written, Failure):
                if written.kind is FailureKind.PAYLOAD_TOO_LARGE:
                    return self._finish("upload", written, path=virtual_dir, file=filename)
                if written.kind is FailureKind.CONFLICT:
                    report.skipped.append(filename)
                    continue
                log_failure(logger, "upload", written, {"path": virtual_dir, "file": filename})
                message = "failed to write file" if written.kind is FailureKind.INTERNAL else written.message
                report.errors.append(f"{filename}: {message}")
                continue

            if budget is not None:
                budget -= written.value
            report.uploaded.append(filename)
            log_operation(logger, "upload", {"file": dest, "bytes": written.value})

        return Success(report)

    def write_text(self, virtual_path: str, content: str) -> Outcome[str]:
        """Create a single new UTF-8 text file."""
        directory, name = posixpath.split(virtual_path)
        target = self.resolve_upload_target(directory)
        if isinstance(target, Failure):
            return target
        # Checked up front so a rejected name never leaves a new directory behind.
        filename = validate_filename(name)
        if isinstance(filename, Failure):
            return filename
        if filename.value != name:
            return bad_request("invalid filename")

        outcome = self.upload(directory, [(name, io.BytesIO(content.encode("utf-8")))])
        if isinstance(outcome, Failure):
            return outcome
        report = outcome.value
        if report.uploaded:
            cleaned_dir = target.value.virtual
            if cleaned_dir == ".":
                return Success(report.uploaded[0])
            return Success(posixpath.join(cleaned_dir, report.uploaded[0]))
        if report.skipped:
            return conflict("file already exists")
        return bad_request(report.errors[0] if report.errors else "invalid filename")

    # ---------- Delete / mkdir ----------

    def delete(self, virtual: str) -> Outcome[str]:
        target = resolver.resolve_delete(self.root, virtual)
        if isinstance(target, Failure):
            return self._finish("delete", target, path=virtual)
        removed = primitives.delete_path(target.value.path)
        if isinstance(removed, Failure):
            return self._finish("delete", removed, path=target.value.path)
        return self._finish("delete", Success(target.value.virtual), path=target.value.path)

    def mkdir(self, virtual: str) -> Outcome[str]:
        target = resolver.resolve_mkdir(self.root, virtual)
        if isinstance(target, Failure):
            return self._finish("mkdir", target, path=virtual)
        created = primitives.make_dir(target.value.path)
        if isinstance(created, Failure):
            return self._finish("mkdir", created, path=target.value.path)
        return self._finish("mkdir", Success(target.value.virtual + "/"), path=target.value.path)

    # ---------- Rename / move ----------

    def rename(self, virtual: str, new_name: str) -> Outcome[MoveResult]:
        pair = resolver.resolve_rename(self.root, virtual, new_name)
        if isinstance(pair, Failure):
            return self._finish("rename", pair, path=virtual, name=new_name)
        return self._rename("rename", pair.value)

    def move(self, source: str, dest: str) -> Outcome[MoveResult]:
        pair = resolver.resolve_move(self.root, source, dest)
        if isinstance(pair, Failure):
            return self._finish("move", pair, source=source, dest=dest)
        return self._rename("move", pair.value)

    def _rename(self, name: str, pair: resolver.ResolvedPair) -> Outcome[MoveResult]:
        moved = primitives.rename_path(pair.source, pair.dest)
        if isinstance(moved, Failure):
            return self._finish(name, moved, source=pair.source, dest=pair.dest)
        result = MoveResult(source=pair.virtual_source, dest=pair.virtual_dest)
        return self._finish(name, Success(result), source=pair.source, dest=pair.dest)
