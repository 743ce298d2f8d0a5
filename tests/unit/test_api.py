import pytest
from fastapi.testclient import TestClient

from filerelay.config import Settings
from filerelay.main import create_app
from filerelay.schemas.files import RawEntry
from filerelay.services.errors import ListError, ObjectNotFound, UploadError
from filerelay.services.storage import LocalStorage
from filerelay.services.upload import UploadService


@pytest.fixture
def local_client(tmp_path):
    settings = Settings(storage_backend="local", storage_root=str(tmp_path / "data"))
    app = create_app(settings, LocalStorage(settings.storage_root))
    return TestClient(app)


@pytest.fixture
def remote_client(memory_storage):
    settings = Settings(storage_backend="s3", s3_bucket="files")
    return TestClient(create_app(settings, memory_storage))


# ------------------------------------------------------------------ #
# misc endpoints
# ------------------------------------------------------------------ #
def test_health(local_client):
    r = local_client.get("/health")
    assert r.status_code == 200
    assert r.text == "ok"
    assert r.headers["content-type"].startswith("text/plain")


def test_root_redirects_to_login(local_client):
    r = local_client.get("/", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/login.html"


def test_login_page_is_served(local_client):
    r = local_client.get("/login.html")
    assert r.status_code == 200
    assert "<form" in r.text


def test_env_reports_backend_without_secrets(remote_client):
    assert remote_client.get("/api/env").json() == {"backend": "s3", "bucket": "files"}


# ------------------------------------------------------------------ #
# local variant: upload -> list -> fetch
# ------------------------------------------------------------------ #
def test_upload_list_and_fetch_local(local_client):
    r = local_client.post("/api/upload", files=[
        ("file", ("My Report.pdf", b"%PDF-1.4", "application/pdf")),
        ("file", ("notes.txt", b"hello", "text/plain")),
    ])
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["count"] == 2
    assert body["files"][0].startswith("uploads/My_Report__")

    listing = local_client.get("/api/files").json()
    assert {it["name"] for it in listing} == {"My_Report.pdf", "notes.txt"}
    for it in listing:
        assert set(it) == {"name", "url", "type", "size", "uploadedAt"}
        assert it["url"].startswith("/files/uploads/")

    report = next(it for it in listing if it["name"] == "My_Report.pdf")
    assert report["type"] == "application/pdf"
    assert report["size"] == 8
    assert local_client.get(report["url"]).content == b"%PDF-1.4"


def test_upload_without_files(local_client):
    r = local_client.post("/api/upload")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "count": 0, "files": []}


def test_upload_part_without_filename_is_not_renamed(mocker, local_client):
    # browsers send filename="" for an unnamed part; httpx would drop the attribute
    body = (
        b"--xyz\r\n"
        b'Content-Disposition: form-data; name="file"; filename=""\r\n'
        b"Content-Type: text/plain\r\n\r\n"
        b"x\r\n"
        b"--xyz--\r\n"
    )
    handle = mocker.spy(UploadService, "handle")
    r = local_client.post("/api/upload", content=body,
                          headers={"content-type": "multipart/form-data; boundary=xyz"})
    assert r.status_code == 200
    (files,) = handle.call_args.args[1:]
    assert [f.filename for f in files] == [""]
    assert r.json()["files"][0].startswith("uploads/__")


def test_upload_too_many_files(local_client):
    files = [("file", (f"f{i}.txt", b"x", "text/plain")) for i in range(21)]
    r = local_client.post("/api/upload", files=files)
    assert r.status_code == 400
    assert r.json()["ok"] is False
    assert local_client.get("/api/files").json() == []


def test_listing_is_sorted_newest_first(local_client):
    for name in ("a.txt", "b.txt", "c.txt"):
        assert local_client.post("/api/upload", files=[("file", (name, b"x", "text/plain"))]).status_code == 200
    stamps = [it["uploadedAt"] for it in local_client.get("/api/files").json()]
    assert stamps == sorted(stamps, reverse=True)


def test_download_not_available_locally(local_client):
    r = local_client.get("/api/dl", params={"key": "uploads/a__1.txt"}, follow_redirects=False)
    assert r.status_code == 404


# ------------------------------------------------------------------ #
# remote variant (storage stubbed in memory)
# ------------------------------------------------------------------ #
def test_remote_listing_includes_key_and_dl(remote_client, memory_storage):
    memory_storage.tree = {"uploads": [RawEntry(name="report__1700000000000.pdf", size=3, modified_at_ms=1700000000000)]}
    (item,) = remote_client.get("/api/files").json()
    assert item == {
        "name": "report.pdf",
        "url": "https://cdn.example.test/uploads/report__1700000000000.pdf",
        "type": "application/pdf",
        "size": 3,
        "uploadedAt": 1700000000000,
        "key": "uploads/report__1700000000000.pdf",
        "dl": "/api/dl?key=uploads/report__1700000000000.pdf",
    }


def test_listing_error_is_500(mocker, remote_client, memory_storage):
    mocker.patch.object(memory_storage, "list_page", side_effect=ListError("backend down"))
    r = remote_client.get("/api/files")
    assert r.status_code == 500
    assert r.json() == {"error": "backend down"}


def test_upload_error_is_500(mocker, remote_client, memory_storage):
    mocker.patch.object(memory_storage, "put", side_effect=UploadError("bucket full"))
    r = remote_client.post("/api/upload", files=[("file", ("a.txt", b"x", "text/plain"))])
    assert r.status_code == 500
    assert r.json() == {"ok": False, "error": "bucket full"}


def test_download_redirects_to_signed_url(remote_client):
    r = remote_client.get("/api/dl", params={"key": "uploads/report__1700000000000.pdf"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"].startswith("https://signed.example.test/uploads/report__1700000000000.pdf")
    assert "name=report.pdf" in r.headers["location"]


def test_download_missing_key(remote_client):
    r = remote_client.get("/api/dl", follow_redirects=False)
    assert r.status_code == 400


def test_download_deleted_object(mocker, remote_client, memory_storage):
    mocker.patch.object(memory_storage, "signed_url", side_effect=ObjectNotFound("uploads/report__1.pdf"))
    r = remote_client.get("/api/dl", params={"key": "uploads/report__1.pdf"}, follow_redirects=False)
    assert r.status_code == 404
