"""Tests for package validation, manifest parsing and bounded extraction."""

from __future__ import annotations

import stat
import zipfile
from pathlib import Path

import pytest

from ContentHub.archive.extractor import (
    ExtractionLimits,
    _validate_member_path,
    extract_package,
)
from ContentHub.archive.manifest import UNKNOWN_CONTENT_TYPE, read_manifest
from ContentHub.archive.validator import inspect_package, validate_package
from ContentHub.errors import ExtractionError


class TestValidatePackage:
    """Structural validation without extraction."""

    def test_valid_with_nested_content(self, make_package):
        """manifest.json plus content/content.json is valid."""
        assert validate_package(make_package()) is True

    def test_valid_with_root_content(self, make_package):
        """content.json at the root is accepted too."""
        assert validate_package(make_package(content_path="content.json")) is True

    def test_missing_manifest(self, make_package):
        """A package without manifest.json is rejected."""
        archive = make_package(manifest=None)
        assert validate_package(archive) is False
        assert "missing manifest.json" in inspect_package(archive).problems

    def test_missing_content_descriptor(self, make_package):
        """A package without any content descriptor is rejected."""
        assert validate_package(make_package(content_path=None)) is False

    def test_nested_manifest_does_not_count(self, make_package):
        """The manifest must sit at the archive root."""
        archive = make_package(manifest=None, files={"inner/manifest.json": b"{}"})
        assert validate_package(archive) is False

    def test_corrupt_file_is_invalid_not_raised(self, tmp_path):
        """Garbage bytes yield an invalid verdict instead of an exception."""
        bogus = tmp_path / "bogus.h5p"
        bogus.write_bytes(b"this is not a zip file")
        inspection = inspect_package(bogus)
        assert inspection.valid is False
        assert inspection.problems[0].startswith("unreadable archive")

    def test_missing_file_is_invalid(self, tmp_path):
        """A path that does not exist is invalid."""
        assert validate_package(tmp_path / "nope.h5p") is False

    def test_validation_writes_nothing(self, make_package, tmp_path):
        """Validation leaves the filesystem untouched."""
        archive = make_package()
        before = sorted(p.name for p in tmp_path.rglob("*"))
        validate_package(archive)
        assert sorted(p.name for p in tmp_path.rglob("*")) == before


class TestManifest:
    """Typed manifest reading."""

    def test_reads_main_library(self, tmp_path):
        """mainLibrary becomes the content type."""
        (tmp_path / "manifest.json").write_text(
            '{"title": "Quiz", "mainLibrary": "H5P.DragText", "extraField": 1}'
        )
        manifest = read_manifest(tmp_path)
        assert manifest is not None
        assert manifest.content_type == "H5P.DragText"
        assert manifest.title == "Quiz"

    def test_missing_main_library(self, tmp_path):
        """A manifest without mainLibrary reports the sentinel."""
        (tmp_path / "manifest.json").write_text('{"title": "Quiz"}')
        assert read_manifest(tmp_path).content_type == UNKNOWN_CONTENT_TYPE

    def test_unparseable_manifest(self, tmp_path):
        """Broken JSON is swallowed."""
        (tmp_path / "manifest.json").write_text("{not json")
        assert read_manifest(tmp_path) is None

    def test_non_object_manifest(self, tmp_path):
        """A JSON list is not a manifest."""
        (tmp_path / "manifest.json").write_text("[1, 2, 3]")
        assert read_manifest(tmp_path) is None

    def test_absent_manifest(self, tmp_path):
        assert read_manifest(tmp_path) is None


class TestMemberPaths:
    """Traversal protection for entry names."""

    @pytest.mark.parametrize(
        "name",
        ["../evil.txt", "content/../../evil.txt", "/etc/passwd", "C:/windows/evil", "..\\evil"],
    )
    def test_unsafe_names_rejected(self, name):
        """Parent segments and absolute paths raise."""
        with pytest.raises(ExtractionError):
            _validate_member_path(name)

    def test_safe_name_kept(self):
        """Ordinary nested names are preserved."""
        assert _validate_member_path("content/images/a.png") == Path("content/images/a.png")

    def test_dot_segments_dropped(self):
        """Redundant ``.`` segments are normalised away."""
        assert _validate_member_path("./content/./a.json") == Path("content/a.json")


class TestExtractPackage:
    """Extraction behaviour and limits."""

    def test_extracts_every_entry(self, make_package, tmp_path):
        """All entries land under the destination with their relative paths."""
        archive = make_package(files={"content/images/cover.png": b"\x89PNG"})
        dest = tmp_path / "out" / "nested" / "slug"
        result = extract_package(archive, dest)

        assert result.ok
        assert result.content_type == "H5P.QuestionSet"
        assert (dest / "manifest.json").is_file()
        assert (dest / "content" / "content.json").is_file()
        assert (dest / "content" / "images" / "cover.png").read_bytes() == b"\x89PNG"
        assert len(result.files) == 3

    def test_unknown_content_type_without_main_library(self, make_package, tmp_path):
        """No mainLibrary means the Unknown sentinel."""
        archive = make_package(manifest={"title": "x"})
        result = extract_package(archive, tmp_path / "dest")
        assert result.ok
        assert result.content_type == "Unknown"

    def test_bad_manifest_does_not_fail_extraction(self, make_package, tmp_path):
        """An unparseable manifest degrades the hint only."""
        archive = make_package(manifest="{broken")
        result = extract_package(archive, tmp_path / "dest")
        assert result.ok
        assert result.content_type == "Unknown"

    def test_overwrites_existing_files(self, make_package, tmp_path):
        """Re-extracting over existing files replaces them."""
        dest = tmp_path / "dest"
        (dest / "content").mkdir(parents=True)
        (dest / "content" / "content.json").write_text("stale")
        result = extract_package(make_package(), dest)
        assert result.ok
        assert (dest / "content" / "content.json").read_text() != "stale"

    def test_unreadable_archive_returns_error(self, tmp_path):
        """A corrupt archive yields an error result and no destination."""
        bogus = tmp_path / "bogus.h5p"
        bogus.write_bytes(b"garbage")
        dest = tmp_path / "dest"
        result = extract_package(bogus, dest)
        assert not result.ok
        assert not dest.exists()

    def test_traversal_entry_rejected_before_writing(self, make_package, tmp_path):
        """One unsafe entry aborts the whole extraction before any write."""
        archive = make_package(files={"../escape.txt": b"x"})
        dest = tmp_path / "dest"
        result = extract_package(archive, dest)
        assert not result.ok
        assert "Unsafe path" in result.error
        assert not dest.exists()
        assert not (tmp_path / "escape.txt").exists()

    def test_symlink_entry_rejected(self, tmp_path):
        """Entries flagged as symlinks are refused."""
        archive_path = tmp_path / "link.h5p"
        with zipfile.ZipFile(archive_path, "w") as archive:
            archive.writestr("manifest.json", "{}")
            archive.writestr("content.json", "{}")
            info = zipfile.ZipInfo("content/link")
            info.external_attr = (stat.S_IFLNK | 0o777) << 16
            archive.writestr(info, "/etc/passwd")
        result = extract_package(archive_path, tmp_path / "dest")
        assert not result.ok
        assert "link" in result.error

    def test_entry_count_limit(self, make_package, tmp_path):
        """Too many entries are refused."""
        archive = make_package(files={f"content/f{i}.txt": b"x" for i in range(5)})
        result = extract_package(archive, tmp_path / "dest", limits=ExtractionLimits(max_entries=3))
        assert not result.ok
        assert "entries" in result.error

    def test_total_size_limit(self, make_package, tmp_path):
        """Declared total size above the limit is refused."""
        archive = make_package(files={"content/big.bin": b"x" * 4096})
        result = extract_package(
            archive, tmp_path / "dest", limits=ExtractionLimits(max_total_uncompressed_bytes=1024)
        )
        assert not result.ok
        assert not (tmp_path / "dest").exists()

    def test_single_file_limit(self, make_package, tmp_path):
        """A single oversized entry is refused."""
        archive = make_package(files={"content/big.bin": b"x" * 4096})
        result = extract_package(
            archive, tmp_path / "dest", limits=ExtractionLimits(max_file_size_bytes=1024)
        )
        assert not result.ok
        assert "big.bin" in result.error

    def test_compression_ratio_limit(self, make_package, tmp_path):
        """Highly compressible payloads trip the ratio guard."""
        archive = make_package(files={"content/zeros.bin": b"\0" * (2 * 1024 * 1024)})
        result = extract_package(archive, tmp_path / "dest")
        assert not result.ok
        assert "compression ratio" in result.error

    def test_corrupt_deflate_stream_returns_error(self, damaged_package, tmp_path):
        """Inflate failures come back as an error result instead of raising."""
        result = extract_package(damaged_package("corrupt"), tmp_path / "dest")
        assert not result.ok
        assert "cannot extract archive" in result.error

    def test_encrypted_entry_rejected_before_writing(self, damaged_package, tmp_path):
        """Entries flagged as encrypted are refused up front."""
        dest = tmp_path / "dest"
        result = extract_package(damaged_package("encrypted"), dest)
        assert not result.ok
        assert "encrypted" in result.error
        assert not dest.exists()
