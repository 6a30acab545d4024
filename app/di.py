# app/di.py
from dataclasses import dataclass
from typing import Optional

from app.config import Roots, Settings, load_roots
from app.services.filesystem import FileSystemService
from app.services.shares import PublicShareService


@dataclass
class Container:
    settings: Settings
    roots: Roots
    fs_service: FileSystemService
    share_service: PublicShareService


def build_container(settings: Optional[Settings] = None) -> Container:
    s = settings or Settings()
    roots = load_roots(s)

    fs = FileSystemService(roots, max_upload_bytes=s.MAX_UPLOAD_SIZE)
    shares = PublicShareService(roots)

    return Container(s, roots, fs, shares)
