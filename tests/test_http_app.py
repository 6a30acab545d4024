# tests/test_http_app.py
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.di import build_container
from server.http_app import create_http_app


def _client(base: Path, public=None, max_upload=1024) -> TestClient:
    settings = Settings(
        UPLOAD_BASE_DIR=base,
        PUBLIC_BASE_DIR=str(public) if public else None,
        MAX_UPLOAD_SIZE=max_upload,
    )
    return TestClient(create_http_app(build_container(settings)))


@pytest.fixture
def client(base: Path, public: Path) -> TestClient:
    return _client(base, public)


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.text == "OK"


# ---------- upload ----------

def test_upload_files(client, base: Path):
    r = client.put(
        "/api/files",
        params={"path": "docs"},
        files=[("file", ("a.txt", b"aaa")), ("file", ("b.txt", b"bbb"))],
    )
    assert r.status_code == 201
    assert r.json() == {"uploaded": ["a.txt", "b.txt"], "skipped": []}
    assert (base / "docs" / "b.txt").read_bytes() == b"bbb"


def test_upload_mixed_collision_is_created(client, base: Path):
    (base / "docs").mkdir()
    (base / "docs" / "existing.txt").write_text("old")
    r = client.put(
        "/api/files",
        params={"path": "docs"},
        files=[("file", ("existing.txt", b"new")), ("file", ("fresh.txt", b"fresh"))],
    )
    assert r.status_code == 201
    assert r.json() == {"uploaded": ["fresh.txt"], "skipped": ["existing.txt"]}
    assert (base / "docs" / "existing.txt").read_text() == "old"


def test_upload_only_collisions_is_conflict(client, base: Path):
    (base / "a.txt").write_text("old")
    r = client.put("/api/files", files=[("file", ("a.txt", b"new"))])
    assert r.status_code == 409
    assert r.json()["skipped"] == ["a.txt"]


def test_upload_only_errors_is_bad_request(client, base: Path):
    r = client.put("/api/files", files=[("file", (".hidden", b"x"))])
    assert r.status_code == 400
    assert r.json()["errors"] == [".hidden: hidden files not allowed"]


def test_upload_rejects_traversal_target(client, tmp_path: Path):
    r = client.put("/api/files", params={"path": "../evil"}, files=[("file", ("a.txt", b"x"))])
    assert r.status_code == 400
    assert "error" in r.json()
    assert not (tmp_path / "evil").exists()


def test_upload_requires_multipart(client):
    r = client.put("/api/files", content=b"raw", headers={"content-type": "application/octet-stream"})
    assert r.status_code == 400
    assert r.json() == {"error": "content-type must be multipart/form-data"}


def test_upload_too_large(base: Path):
    client = _client(base, max_upload=16)
    r = client.put("/api/files", files=[("file", ("big.bin", b"x" * 64))])
    assert r.status_code == 413
    assert r.json() == {"error": "upload size exceeds limit"}
    assert not (base / "big.bin").exists()


BOUNDARY = "files-svc-boundary"


def _chunked_form(note_size: int):
    """Multipart body as a generator, so the client sends it chunked with no Content-Length."""
    yield f"--{BOUNDARY}\r\nContent-Disposition: form-data; name=\"note\"\r\n\r\n".encode()
    yield b"n" * note_size
    yield (
        f"\r\n--{BOUNDARY}\r\n"
        f"Content-Disposition: form-data; name=\"file\"; filename=\"a.txt\"\r\n"
        f"Content-Type: text/plain\r\n\r\n"
    ).encode()
    yield b"data"
    yield f"\r\n--{BOUNDARY}--\r\n".encode()


def _put_chunked(client: TestClient, note_size: int, path: str = ""):
    return client.put(
        "/api/files",
        params={"path": path},
        content=_chunked_form(note_size),
        headers={"content-type": f"multipart/form-data; boundary={BOUNDARY}"},
    )


def test_chunked_upload_within_limit(base: Path):
    client = _client(base, max_upload=4096)
    r = _put_chunked(client, 100)
    assert r.status_code == 201
    assert r.json() == {"uploaded": ["a.txt"], "skipped": []}
    assert (base / "a.txt").read_bytes() == b"data"


def test_chunked_upload_over_limit(base: Path):
    client = _client(base, max_upload=16)
    r = _put_chunked(client, 100_000)
    assert r.status_code == 413
    assert r.json() == {"error": "upload size exceeds limit"}
    assert list(base.iterdir()) == []


def test_upload_target_checked_before_body_is_read(base: Path, tmp_path: Path):
    client = _client(base, max_upload=16)
    r = _put_chunked(client, 100_000, path="../evil")
    assert r.status_code == 400
    assert not (tmp_path / "evil").exists()


# ---------- delete / move / rename / mkdir ----------

def test_delete(client, base: Path):
    (base / "a.txt").write_text("x")
    r = client.delete("/api/files", params={"path": "a.txt"})
    assert r.status_code == 204
    assert not (base / "a.txt").exists()


def test_delete_errors(client, base: Path):
    (base / "non-empty-dir").mkdir()
    (base / "non-empty-dir" / "f.txt").write_text("x")

    assert client.delete("/api/files").status_code == 400
    assert client.delete("/api/files", params={"path": ""}).status_code == 403
    assert client.delete("/api/files", params={"path": "missing"}).status_code == 404
    r = client.delete("/api/files", params={"path": "non-empty-dir"})
    assert r.status_code == 409
    assert r.json() == {"error": "directory is not empty"}


def test_move(client, base: Path):
    (base / "a.txt").write_text("x")
    (base / "dst").mkdir()
    r = client.post("/api/files/move", json={"from": "a.txt", "to": "dst/a.txt"})
    assert r.status_code == 200
    assert r.json() == {"from": "a.txt", "to": "dst/a.txt", "success": True}
    assert (base / "dst" / "a.txt").exists()


def test_move_symlink_is_bad_request(client, base: Path):
    (base / "target.txt").write_text("t")
    os.symlink(base / "target.txt", base / "link.txt")
    r = client.post("/api/files/move", json={"from": "link.txt", "to": "moved.txt"})
    assert r.status_code == 400
    assert r.json() == {"error": "cannot move symlinks"}
    assert os.path.islink(base / "link.txt")


def test_rename(client, base: Path):
    (base / "file.txt").write_text("one")
    (base / "existing.txt").write_text("two")

    r = client.post("/api/files/rename", json={"path": "file.txt", "name": "existing.txt"})
    assert r.status_code == 409

    r = client.post("/api/files/rename", json={"path": "file.txt", "name": "renamed.txt"})
    assert r.status_code == 200
    assert r.json() == {"from": "file.txt", "to": "renamed.txt", "success": True}


def test_invalid_json_body(client):
    r = client.post("/api/files/rename", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "invalid JSON body"}

    r = client.post("/api/folders", json={})
    assert r.status_code == 400


def test_create_folder(client, base: Path):
    r = client.post("/api/folders", json={"path": "parent/child"})
    assert r.status_code == 404
    assert r.json() == {"error": "parent directory does not exist"}

    r = client.post("/api/folders", json={"path": "parent"})
    assert r.status_code == 201
    assert r.json() == {"created": "parent/"}
    assert (base / "parent").is_dir()


# ---------- public shares ----------

def test_share_lifecycle(client, base: Path, public: Path):
    (base / "docs").mkdir()
    (base / "docs" / "report.pdf").write_bytes(b"%PDF")

    assert client.get("/api/public-shares").json() == []

    r = client.post("/api/public-shares", json={"path": "docs/report.pdf"})
    assert r.status_code == 201
    assert r.json()["path"] == "docs/report.pdf"
    assert (public / "docs" / "report.pdf").is_symlink()

    assert client.get("/api/public-shares").json() == ["docs/report.pdf"]

    r = client.delete("/api/public-shares", params={"path": "docs/report.pdf"})
    assert r.status_code == 204
    assert not (public / "docs").exists()
    assert client.delete("/api/public-shares", params={"path": "docs/report.pdf"}).status_code == 404
    assert client.delete("/api/public-shares").status_code == 400


def test_share_directory_is_bad_request(client, base: Path):
    (base / "dir").mkdir()
    r = client.post("/api/public-shares", json={"path": "dir"})
    assert r.status_code == 400


def test_shares_disabled(base: Path):
    client = _client(base)
    assert client.get("/api/public-shares").status_code == 501
    r = client.post("/api/public-shares", json={"path": "a.txt"})
    assert r.status_code == 501
    assert "not enabled" in r.json()["error"]
