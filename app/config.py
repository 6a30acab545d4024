# app/config.py
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Confined root for all file operations
    UPLOAD_BASE_DIR: Path = Path("/srv/files")

    # Mirror tree of share symlinks; sharing is disabled when unset
    PUBLIC_BASE_DIR: Optional[str] = None

    # Upload ceiling per request (bytes)
    MAX_UPLOAD_SIZE: int = 2 * 1024 * 1024 * 1024

    # HTTP transport
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8080

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_prefix = "FILES_SVC_"
        env_file = ".env"


@dataclass(frozen=True)
class Roots:
    """Canonical bounding directories, fixed for the process lifetime."""
    base: Path
    public: Optional[Path] = None


def _canonical_dir(path: Path, label: str) -> Path:
    try:
        resolved = path.expanduser().resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise ValueError(f"{label} error: {e}") from e
    if not resolved.is_dir():
        raise ValueError(f"{label} is not a directory: {resolved}")
    return resolved


def load_roots(settings: Settings) -> Roots:
    base = _canonical_dir(settings.UPLOAD_BASE_DIR, "base directory")
    public = None
    if settings.PUBLIC_BASE_DIR:
        public = _canonical_dir(Path(settings.PUBLIC_BASE_DIR), "public base directory")
    return Roots(base=base, public=public)
