"""
API tests for the upload and download endpoints.

Runs the full FastAPI app against the in-memory storage backend.
"""

import re
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from filegateway.core.files.keys import ObjectKeyGenerator
from filegateway.infrastructure.storage.client import MockStorageClient, StorageError
from filegateway.main import create_app

FIELD = "FileUploadKey"

# 2024-01-01T00:00:00Z
NEW_YEAR_NS = 1_704_067_200_000_000_000


def _upload(client: TestClient, *files, field: str = FIELD):
    return client.post(
        "/upload",
        files=[(field, f) for f in files],
    )


def _chunked_multipart(boundary: str, parts, field: str = FIELD):
    """Yield a multipart body piece by piece so no Content-Length is sent."""
    for filename, data in parts:
        yield (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        ).encode()
        for start in range(0, len(data), 64 * 1024):
            yield data[start:start + 64 * 1024]
        yield b"\r\n"
    yield f"--{boundary}--\r\n".encode()


class FlakyStorageClient(MockStorageClient):
    """Fails any write whose key mentions 'broken'."""

    async def upload_stream(self, key, stream, content_type="application/octet-stream"):
        if "broken" in key:
            raise StorageError("Upload failed: backend rejected write")
        return await super().upload_stream(key, stream, content_type)


class UnreadableStorageClient(MockStorageClient):
    async def download(self, key):
        raise StorageError("Download failed: connection reset")


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class TestUpload:
    """Tests for POST /upload."""

    def test_single_file_key_follows_layout(self, app, client):
        """A 10-byte a.txt on 2024-01-01 lands at 01-01-2024/a.txt<digits>_a.txt."""
        app.state.key_generator = ObjectKeyGenerator(clock=lambda: NEW_YEAR_NS)

        response = _upload(client, ("a.txt", b"0123456789", "text/plain"))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["message"] == "Files Uploaded Successfully"
        assert body["links"] == [f"01-01-2024/a.txt{NEW_YEAR_NS}_a.txt"]

    def test_key_pattern_with_real_clock(self, client):
        response = _upload(client, ("a.txt", b"0123456789", "text/plain"))

        [key] = response.json()["links"]
        assert re.fullmatch(r"\d{2}-\d{2}-\d{4}/a\.txt\d+_a\.txt", key)

    def test_n_files_create_n_distinct_objects(self, client, storage):
        response = _upload(
            client,
            ("a.txt", b"first", "text/plain"),
            ("a.txt", b"second", "text/plain"),
            ("b.png", b"\x89PNG", "image/png"),
        )

        links = response.json()["links"]
        assert response.status_code == 200
        assert len(links) == 3
        assert len(set(links)) == 3
        assert sorted(storage.keys) == sorted(links)

    def test_reuploading_same_filename_never_collides(self, client, storage):
        first = _upload(client, ("same.txt", b"v1", "text/plain")).json()["links"]
        second = _upload(client, ("same.txt", b"v2", "text/plain")).json()["links"]

        assert first != second
        assert len(storage.keys) == 2

    def test_client_path_is_stripped_from_key(self, client):
        response = _upload(client, ("C:\\docs\\notes.txt", b"x", "text/plain"))

        [key] = response.json()["links"]
        assert key.count("/") == 1
        assert key.endswith("_notes.txt")

    def test_missing_field_returns_400(self, client, storage):
        response = _upload(client, ("a.txt", b"x", "text/plain"), field="other")

        assert response.status_code == 400
        assert FIELD in response.json()["detail"]
        assert storage.keys == []

    def test_non_multipart_body_returns_400(self, client):
        response = client.post("/upload", json={"file": "a.txt"})

        assert response.status_code == 400

    def test_oversized_upload_rejected_before_any_write(self, settings, storage):
        settings.max_upload_size_mb = 1
        app = create_app(settings, storage_factory=lambda: storage)

        with TestClient(app) as client:
            response = _upload(
                client,
                ("small.txt", b"ok", "text/plain"),
                ("big.bin", b"\0" * (2 * 1024 * 1024), "application/octet-stream"),
            )

        assert response.status_code == 413
        assert storage.keys == []

    def test_oversized_chunked_upload_rejected_by_part_size(self, settings, storage):
        settings.max_upload_size_mb = 1
        app = create_app(settings, storage_factory=lambda: storage)
        boundary = "gatewayboundary"
        body = _chunked_multipart(
            boundary,
            [("small.txt", b"ok"), ("big.bin", b"\0" * (2 * 1024 * 1024))],
        )

        with TestClient(app) as client:
            response = client.post(
                "/upload",
                content=body,
                headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            )
            sent = response.request.headers

        assert "content-length" not in sent
        assert sent["transfer-encoding"] == "chunked"
        assert response.status_code == 413
        assert storage.keys == []

    def test_write_failure_stops_processing_and_returns_502(self, settings):
        storage = FlakyStorageClient()
        app = create_app(settings, storage_factory=lambda: storage)

        with TestClient(app) as client:
            response = _upload(
                client,
                ("good.txt", b"1", "text/plain"),
                ("broken.txt", b"2", "text/plain"),
                ("later.txt", b"3", "text/plain"),
            )

        assert response.status_code == 502
        assert "broken.txt" in response.json()["detail"]
        # the first file stays, the third is never attempted
        assert len(storage.keys) == 1
        assert storage.keys[0].endswith("_good.txt")

    def test_storage_initialization_failure_returns_503(self, settings):
        def factory():
            raise RuntimeError("no credentials")

        app = create_app(settings, storage_factory=factory)

        with TestClient(app) as client:
            response = _upload(client, ("a.txt", b"x", "text/plain"))

        assert response.status_code == 503

    def test_custom_field_name(self, settings, storage):
        settings.upload_field_name = "files"
        app = create_app(settings, storage_factory=lambda: storage)

        with TestClient(app) as client:
            response = _upload(client, ("a.txt", b"x", "text/plain"), field="files")

        assert response.status_code == 200
        assert len(storage.keys) == 1


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

class TestDownload:
    """Tests for GET /file/{dir}/{filename}."""

    def test_round_trip_returns_identical_bytes(self, app, client):
        app.state.key_generator = ObjectKeyGenerator(clock=lambda: NEW_YEAR_NS)
        [key] = _upload(client, ("a.txt", b"0123456789", "text/plain")).json()["links"]

        response = client.get(f"/file/{key}")

        filename = f"a.txt{NEW_YEAR_NS}_a.txt"
        assert response.status_code == 200
        assert response.content == b"0123456789"
        assert response.headers["content-type"] == "text/plain"
        assert response.headers["content-disposition"] == f"attachment; filename={filename}"

    def test_non_latin1_filename_round_trip(self, client):
        payload = "你好".encode("utf-8")
        [key] = _upload(client, ("文件.txt", payload, "text/plain")).json()["links"]

        response = client.get(f"/file/{quote(key)}")

        assert response.status_code == 200
        assert response.content == payload
        disposition = response.headers["content-disposition"]
        assert disposition.startswith("attachment; filename*=UTF-8''")
        assert disposition.endswith(quote("_文件.txt", safe=""))

    def test_binary_round_trip(self, client):
        payload = bytes(range(256)) * 64
        [key] = _upload(client, ("blob.bin", payload, "application/octet-stream")).json()["links"]

        response = client.get(f"/file/{key}")

        assert response.content == payload

    def test_gzip_body_has_matching_content_length(self, client):
        [key] = _upload(client, ("a.txt", b"a" * 1000, "text/plain")).json()["links"]

        # stream=True keeps the raw compressed bytes available
        with client.stream("GET", f"/file/{key}", headers={"Accept-Encoding": "gzip"}) as response:
            raw = b"".join(response.iter_raw())

        assert response.headers["content-encoding"] == "gzip"
        assert int(response.headers["content-length"]) == len(raw)
        assert len(raw) < 1000

    def test_identity_encoding_sends_raw_bytes(self, client):
        [key] = _upload(client, ("a.txt", b"0123456789", "text/plain")).json()["links"]

        response = client.get(f"/file/{key}", headers={"Accept-Encoding": "identity"})

        assert "content-encoding" not in response.headers
        assert response.headers["content-length"] == "10"
        assert response.content == b"0123456789"

    def test_gzip_can_be_disabled(self, settings, storage):
        settings.download_gzip = False
        app = create_app(settings, storage_factory=lambda: storage)

        with TestClient(app) as client:
            [key] = _upload(client, ("a.txt", b"0123456789", "text/plain")).json()["links"]
            response = client.get(f"/file/{key}", headers={"Accept-Encoding": "gzip"})

        assert "content-encoding" not in response.headers
        assert response.headers["content-length"] == "10"

    @pytest.mark.parametrize(
        "name, content_type, disposition",
        [
            ("photo.png", "image/png", "inline"),
            ("doc.pdf", "application/pdf", "inline"),
            ("notes.txt", "text/plain", "attachment"),
        ],
    )
    def test_disposition_by_content_type(self, client, name, content_type, disposition):
        [key] = _upload(client, (name, b"data", content_type)).json()["links"]

        response = client.get(f"/file/{key}")

        assert response.headers["content-disposition"].startswith(f"{disposition}; filename=")

    def test_cors_headers(self, client):
        [key] = _upload(client, ("a.txt", b"x", "text/plain")).json()["links"]

        response = client.get(f"/file/{key}")

        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "POST, GET, OPTIONS, PUT, DELETE"

    def test_missing_object_returns_404(self, client):
        response = client.get("/file/01-01-2024/nope.txt1_nope.txt")

        assert response.status_code == 404
        assert response.json()["detail"] == "File not found"

    def test_read_failure_returns_502(self, settings):
        storage = UnreadableStorageClient()
        app = create_app(settings, storage_factory=lambda: storage)

        with TestClient(app) as client:
            response = client.get("/file/01-01-2024/a.txt1_a.txt")

        assert response.status_code == 502
