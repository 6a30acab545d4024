# tests/conftest.py
from pathlib import Path

import pytest

from app.config import Roots


@pytest.fixture
def base(tmp_path: Path) -> Path:
    d = tmp_path / "base"
    d.mkdir()
    return d.resolve()


@pytest.fixture
def public(tmp_path: Path) -> Path:
    d = tmp_path / "public"
    d.mkdir()
    return d.resolve()


@pytest.fixture
def outside(tmp_path: Path) -> Path:
    d = tmp_path / "outside"
    d.mkdir()
    (d / "victim.txt").write_text("secret")
    return d.resolve()


@pytest.fixture
def roots(base: Path, public: Path) -> Roots:
    return Roots(base=base, public=public)
