"""Tests for the FastAPI surface: auth, ingest, reconciliation and serving."""

from __future__ import annotations

import re
import shutil

import pytest
from fastapi.testclient import TestClient

from ContentHub.api.app import create_app
from ContentHub.catalog.bootstrap import ContentHubBootstrap


@pytest.fixture
def hub(hub_config):
    with ContentHubBootstrap(hub_config) as bootstrap:
        yield bootstrap


@pytest.fixture
def client(hub):
    return TestClient(create_app(bootstrap=hub))


def _upload(client, headers, archive, title="Grammar Quiz", **form):
    with archive.open("rb") as handle:
        return client.post(
            "/api/admin/upload",
            data={"title": title, **form},
            files={"file": (archive.name, handle, "application/zip")},
            headers=headers,
        )


class TestAuth:
    """Role claims gate admin routes."""

    def test_missing_token(self, client):
        response = client.get("/api/admin/content")
        assert response.status_code == 401
        assert response.json()["reason"] == "unauthorized"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_unknown_token(self, client):
        response = client.get("/api/admin/content", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_non_admin_role(self, client, viewer_headers):
        response = client.get("/api/admin/content", headers=viewer_headers)
        assert response.status_code == 403
        assert response.json()["reason"] == "forbidden"

    def test_admin(self, client, admin_headers):
        response = client.get("/api/admin/content", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == []


class TestIngestEndpoint:
    """POST /api/admin/upload."""

    def test_success(self, client, admin_headers, make_package, hub_config):
        response = _upload(client, admin_headers, make_package())
        assert response.status_code == 201
        body = response.json()
        assert re.fullmatch(r"grammar-quiz-[0-9a-f]{8}", body["slug"])
        assert body["storagePath"] == f"packages/{body['slug']}"
        assert body["contentType"] == "H5P.QuestionSet"
        assert isinstance(body["contentId"], int)
        assert (hub_config.storage.public_root / body["storagePath"] / "manifest.json").is_file()

    def test_missing_title(self, client, admin_headers, make_package):
        response = _upload(client, admin_headers, make_package(), title="")
        assert response.status_code == 400
        assert response.json()["reason"] == "missing-fields"

    def test_missing_file(self, client, admin_headers):
        response = client.post(
            "/api/admin/upload", data={"title": "Quiz"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["reason"] == "missing-fields"

    def test_invalid_archive(self, client, admin_headers, make_package, hub_config):
        response = _upload(client, admin_headers, make_package(manifest=None))
        assert response.status_code == 400
        assert response.json()["reason"] == "invalid-archive"
        assert list(hub_config.storage.served_root.iterdir()) == []

    def test_extraction_failure(self, client, admin_headers, make_package):
        response = _upload(client, admin_headers, make_package(files={"../x.txt": b"x"}))
        assert response.status_code == 500
        assert response.json()["reason"] == "extraction-failed"

    @pytest.mark.parametrize("kind", ["corrupt", "encrypted"])
    def test_damaged_archive(self, client, admin_headers, damaged_package, hub_config, kind):
        response = _upload(client, admin_headers, damaged_package(kind))
        assert response.status_code == 500
        assert response.json()["reason"] == "extraction-failed"
        assert list(hub_config.storage.served_root.iterdir()) == []

    def test_upload_size_limit(self, hub_config, make_package, admin_headers):
        hub_config.api.max_upload_bytes = 10
        with ContentHubBootstrap(hub_config) as hub:
            client = TestClient(create_app(bootstrap=hub))
            response = _upload(client, admin_headers, make_package())
        assert response.status_code == 413

    def test_with_cover_and_password(self, client, admin_headers, make_package, hub_config):
        archive = make_package()
        with archive.open("rb") as handle:
            response = client.post(
                "/api/admin/upload",
                data={"title": "Quiz", "password": "pw"},
                files={
                    "file": (archive.name, handle, "application/zip"),
                    "coverImage": ("cover.jpg", b"\xff\xd8cover", "image/jpeg"),
                },
                headers=admin_headers,
            )
        assert response.status_code == 201
        content_id = response.json()["contentId"]
        detail = client.get(f"/api/admin/content/{content_id}", headers=admin_headers).json()
        assert detail["isPasswordProtected"] is True
        assert "password" not in detail
        cover = hub_config.storage.public_root / detail["coverImagePath"]
        assert cover.read_bytes() == b"\xff\xd8cover"


class TestContentEndpoints:
    """Read, edit and delete."""

    def test_get_unknown(self, client, admin_headers):
        response = client.get("/api/admin/content/999", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["reason"] == "not-found"

    def test_update(self, client, admin_headers, make_package):
        content_id = _upload(client, admin_headers, make_package()).json()["contentId"]
        response = client.put(
            f"/api/admin/content/{content_id}",
            json={"title": "Renamed", "password": "secret"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Renamed"
        assert response.json()["isPasswordProtected"] is True

    def test_update_cover(self, client, admin_headers, make_package, hub_config):
        content_id = _upload(client, admin_headers, make_package()).json()["contentId"]
        response = client.post(
            f"/api/admin/content/{content_id}/cover",
            files={"coverImage": ("c.jpg", b"img", "image/jpeg")},
            headers=admin_headers,
        )
        assert response.status_code == 200
        path = hub_config.storage.public_root / response.json()["coverImagePath"]
        assert path.read_bytes() == b"img"

    def test_delete(self, client, admin_headers, make_package, hub_config):
        body = _upload(client, admin_headers, make_package()).json()
        response = client.delete(f"/api/admin/content/{body['contentId']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["slug"] == body["slug"]
        assert not (hub_config.storage.public_root / body["storagePath"]).exists()
        again = client.delete(f"/api/admin/content/{body['contentId']}", headers=admin_headers)
        assert again.status_code == 404


class TestReconciliationEndpoints:
    """Orphan reports and cleanup."""

    def test_scan_and_cleanup(self, client, admin_headers, hub_config, make_package):
        body = _upload(client, admin_headers, make_package()).json()
        (hub_config.storage.served_root / "def-87654321").mkdir()

        scan = client.get("/api/admin/cleanup-packages", headers=admin_headers).json()
        assert scan["orphanedFolders"] == ["def-87654321"]
        assert scan["totalOrphaned"] == 1
        assert scan["validSlugs"] == [body["slug"]]

        cleanup = client.post("/api/admin/cleanup-packages", headers=admin_headers).json()
        assert cleanup["deletedFolders"] == ["def-87654321"]
        assert cleanup["deletedCount"] == 1
        assert cleanup["errors"] == []

        again = client.post("/api/admin/cleanup-packages", headers=admin_headers).json()
        assert again["deletedCount"] == 0

    def test_uploads(self, client, admin_headers, hub_config):
        (hub_config.storage.uploads_root / "stray.h5p").write_bytes(b"zip")
        listing = client.get("/api/admin/uploads", headers=admin_headers).json()
        assert listing["total"] == 1
        assert listing["files"][0]["type"] == "package"

        scan = client.get("/api/admin/cleanup-uploads", headers=admin_headers).json()
        assert scan["orphanedFiles"] == ["uploads/stray.h5p"]
        cleanup = client.post("/api/admin/cleanup-uploads", headers=admin_headers).json()
        assert cleanup["deletedFiles"] == ["uploads/stray.h5p"]
        assert cleanup["deletedCount"] == 1

    def test_upload_download(self, client, admin_headers, hub_config):
        (hub_config.storage.uploads_root / "stray.h5p").write_bytes(b"zip-bytes")
        response = client.get(
            "/api/admin/uploads/download", params={"file": "stray.h5p"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.content == b"zip-bytes"
        assert response.headers["content-type"] == "application/zip"
        assert response.headers["content-disposition"] == 'attachment; filename="stray.h5p"'

    def test_upload_download_from_subdirectory(self, client, admin_headers, hub_config):
        nested = hub_config.storage.uploads_root / "2024"
        nested.mkdir()
        (nested / "notes.txt").write_text("hello")
        response = client.get(
            "/api/admin/uploads/download", params={"file": "notes.txt"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.text == "hello"
        assert response.headers["content-type"].startswith("text/plain")

    @pytest.mark.parametrize("name", ["../secret.txt", "a\\b.txt", "..", ""])
    def test_upload_download_rejects_bad_names(self, client, admin_headers, name):
        response = client.get(
            "/api/admin/uploads/download", params={"file": name}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["reason"] == "invalid-filename"

    def test_upload_download_missing(self, client, admin_headers):
        response = client.get(
            "/api/admin/uploads/download", params={"file": "gone.h5p"}, headers=admin_headers
        )
        assert response.status_code == 404

    def test_upload_routes_require_admin(self, client, viewer_headers, hub_config):
        (hub_config.storage.uploads_root / "stray.h5p").write_bytes(b"zip")
        assert client.delete("/api/admin/uploads/stray.h5p").status_code == 401
        assert client.get(
            "/api/admin/uploads/download", params={"file": "stray.h5p"}, headers=viewer_headers
        ).status_code == 403
        assert (hub_config.storage.uploads_root / "stray.h5p").exists()

    def test_upload_delete(self, client, admin_headers, hub_config):
        target = hub_config.storage.uploads_root / "stray.h5p"
        target.write_bytes(b"zip")
        response = client.delete("/api/admin/uploads/stray.h5p", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "File deleted successfully"
        assert body["filename"] == "stray.h5p"
        assert body["path"] == "uploads/stray.h5p"
        assert not target.exists()

        again = client.delete("/api/admin/uploads/stray.h5p", headers=admin_headers)
        assert again.status_code == 404

    @pytest.mark.parametrize("name", ["..stray.h5p", "a%5Cb.h5p"])
    def test_upload_delete_rejects_bad_names(self, client, admin_headers, hub_config, name):
        (hub_config.storage.uploads_root / "..stray.h5p").write_bytes(b"zip")
        response = client.delete(f"/api/admin/uploads/{name}", headers=admin_headers)
        assert response.status_code == 400
        assert (hub_config.storage.uploads_root / "..stray.h5p").exists()

    def test_dangling(self, client, admin_headers, hub_config, make_package):
        body = _upload(client, admin_headers, make_package()).json()
        shutil.rmtree(hub_config.storage.public_root / body["storagePath"])
        report = client.get("/api/admin/dangling", headers=admin_headers).json()
        assert report["totalDangling"] == 1
        assert report["danglingRecords"][0]["slug"] == body["slug"]


class TestPasswordGate:
    """Public protection check and password verification."""

    def test_protection_and_verify(self, client, admin_headers, make_package):
        content_id = _upload(
            client, admin_headers, make_package(), password="letmein"
        ).json()["contentId"]

        protection = client.get(f"/api/content/{content_id}/protection").json()
        assert protection == {"isPasswordProtected": True}

        ok = client.post(
            "/api/content/verify-password", json={"contentId": content_id, "password": "letmein"}
        )
        assert ok.status_code == 200
        assert ok.json() == {"success": True}

        wrong = client.post(
            "/api/content/verify-password", json={"contentId": content_id, "password": "nope"}
        )
        assert wrong.status_code == 401

    def test_verify_missing_fields(self, client):
        response = client.post("/api/content/verify-password", json={"contentId": 1})
        assert response.status_code == 400

    def test_verify_unknown_content(self, client):
        response = client.post(
            "/api/content/verify-password", json={"contentId": 999, "password": "x"}
        )
        assert response.status_code == 404

    def test_unprotected(self, client, admin_headers, make_package):
        content_id = _upload(client, admin_headers, make_package()).json()["contentId"]
        assert client.get(f"/api/content/{content_id}/protection").json() == {
            "isPasswordProtected": False
        }


class TestServing:
    """GET /content/{slug}/{path}."""

    def test_serves_with_mime_and_cache(self, client, admin_headers, make_package):
        archive = make_package(files={"content/images/pic.png": b"\x89PNG"})
        slug = _upload(client, admin_headers, archive).json()["slug"]

        image = client.get(f"/content/{slug}/content/images/pic.png")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/png"
        assert image.headers["cache-control"] == "public, max-age=31536000, immutable"
        assert image.content == b"\x89PNG"

        manifest = client.get(f"/content/{slug}/manifest.json")
        assert manifest.headers["content-type"].startswith("application/json")
        assert manifest.headers["cache-control"] == "public, max-age=300"

    def test_unknown_extension(self, client, admin_headers, make_package):
        archive = make_package(files={"content/data.xyz": b"?"})
        slug = _upload(client, admin_headers, archive).json()["slug"]
        response = client.get(f"/content/{slug}/content/data.xyz")
        assert response.headers["content-type"] == "application/octet-stream"

    def test_missing_and_directory(self, client, admin_headers, make_package):
        slug = _upload(client, admin_headers, make_package()).json()["slug"]
        assert client.get(f"/content/{slug}/nope.js").status_code == 404
        assert client.get(f"/content/{slug}/content").status_code == 404
        assert client.get("/content/unknown-slug/manifest.json").status_code == 404

    def test_traversal_refused(self, client, admin_headers, make_package, hub_config):
        slug = _upload(client, admin_headers, make_package()).json()["slug"]
        (hub_config.storage.public_root / "secret.txt").write_text("secret")
        response = client.get(f"/content/{slug}/..%2F..%2Fsecret.txt")
        assert response.status_code == 404


class TestHealth:
    def test_health(self, client, admin_headers, make_package):
        _upload(client, admin_headers, make_package())
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["checks"] == {"database": True, "servedContent": True, "uploads": True}
        assert body["stats"]["total_content"] == 1
