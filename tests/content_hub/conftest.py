"""Shared fixtures for ContentHub tests."""

from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from ContentHub.catalog.store import SQLiteCatalog
from ContentHub.config.models import (
    ApiConfig,
    CatalogConfig,
    ContentHubConfig,
    ReconciliationConfig,
    StorageConfig,
)
from ContentHub.lifecycle import ContentLifecycle

ADMIN_TOKEN = "admin-token"
VIEWER_TOKEN = "viewer-token"

DEFAULT_MANIFEST = {
    "title": "Grammar Quiz",
    "language": "en",
    "mainLibrary": "H5P.QuestionSet",
    "embedTypes": ["iframe"],
    "preloadedDependencies": [
        {"machineName": "H5P.QuestionSet", "majorVersion": 1, "minorVersion": 20}
    ],
}


PackageFactory = Callable[..., Path]


@pytest.fixture
def make_package(tmp_path: Path) -> PackageFactory:
    """Build a package archive on disk.

    ``manifest=None`` omits ``manifest.json``; a ``str`` manifest is written
    verbatim so unparseable manifests can be tested.
    """
    counter = {"n": 0}

    def _make(
        *,
        manifest: Optional[object] = DEFAULT_MANIFEST,
        content_path: Optional[str] = "content/content.json",
        files: Optional[Dict[str, bytes]] = None,
        name: Optional[str] = None,
    ) -> Path:
        counter["n"] += 1
        archive_dir = tmp_path / "archives"
        archive_dir.mkdir(exist_ok=True)
        archive_path = archive_dir / (name or f"package-{counter['n']}.h5p")
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            if manifest is not None:
                body = manifest if isinstance(manifest, str) else json.dumps(manifest)
                archive.writestr("manifest.json", body)
            if content_path is not None:
                archive.writestr(content_path, json.dumps({"questions": ["a", "b"]}))
            for entry, data in (files or {}).items():
                archive.writestr(entry, data)
        return archive_path

    return _make


@pytest.fixture
def damaged_package(make_package: PackageFactory) -> Callable[[str], Path]:
    """Build a well-formed package, then damage its last entry in place.

    ``"encrypted"`` sets the encryption bit in the central directory;
    ``"corrupt"`` overwrites the start of the deflate stream so inflating it
    fails with an invalid block type.
    """

    def _make(kind: str) -> Path:
        asset = "".join(f"line {i:05d} of the quiz asset\n" for i in range(4000)).encode()
        archive_path = make_package(files={"content/asset.bin": asset})
        raw = bytearray(archive_path.read_bytes())
        if kind == "encrypted":
            central = raw.rfind(b"PK\x01\x02")
            flags = int.from_bytes(raw[central + 8 : central + 10], "little") | 0x1
            raw[central + 8 : central + 10] = flags.to_bytes(2, "little")
        elif kind == "corrupt":
            with zipfile.ZipFile(archive_path) as archive:
                offset = archive.getinfo("content/asset.bin").header_offset
            name_len = int.from_bytes(raw[offset + 26 : offset + 28], "little")
            extra_len = int.from_bytes(raw[offset + 28 : offset + 30], "little")
            data = offset + 30 + name_len + extra_len
            raw[data : data + 16] = b"\xff" * 16
        else:
            raise ValueError(kind)
        archive_path.write_bytes(bytes(raw))
        return archive_path

    return _make


@pytest.fixture
def public_root(tmp_path: Path) -> Path:
    root = tmp_path / "public"
    root.mkdir()
    return root


@pytest.fixture
def storage(public_root: Path) -> StorageConfig:
    return StorageConfig(public_root=public_root)


@pytest.fixture
def catalog(tmp_path: Path):
    """Create a test catalog."""
    cat = SQLiteCatalog(path=str(tmp_path / "state" / "catalog.sqlite"), wal_mode=False)
    yield cat
    cat.close()


@pytest.fixture
def lifecycle(catalog: SQLiteCatalog, storage: StorageConfig) -> ContentLifecycle:
    return ContentLifecycle(catalog, storage)


@pytest.fixture
def hub_config(tmp_path: Path, public_root: Path) -> ContentHubConfig:
    return ContentHubConfig(
        storage=StorageConfig(public_root=public_root),
        catalog=CatalogConfig(path=str(tmp_path / "state" / "hub.sqlite"), wal_mode=False),
        reconciliation=ReconciliationConfig(grace_period_seconds=0),
        api=ApiConfig(tokens={ADMIN_TOKEN: "admin", VIEWER_TOKEN: "viewer"}),
    )


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def viewer_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {VIEWER_TOKEN}"}
