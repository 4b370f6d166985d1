"""Bounded, traversal-safe extraction of packages onto the served tree.

Every entry in the central directory is checked before a single byte is
written: member names must be relative and free of ``..`` segments, links and
encrypted entries are refused, and the declared entry count, per-entry size,
total size and compression ratio must stay inside :class:`ExtractionLimits`.
Only then are entries streamed out, overwriting whatever already sits at the
same path.

Failures never raise out of :func:`extract_package`; they come back as an
:class:`ExtractionResult` carrying ``error`` so the lifecycle layer can decide
on compensation.
"""

from __future__ import annotations

import logging
import stat
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional, Tuple

from ContentHub.archive.manifest import UNKNOWN_CONTENT_TYPE, content_type_hint
from ContentHub.config.models import ExtractionConfig
from ContentHub.errors import ExtractionError

logger = logging.getLogger(__name__)

_COPY_CHUNK = 1 << 20
_FLAG_ENCRYPTED = 0x1


@dataclass(frozen=True)
class ExtractionLimits:
    """Upper bounds enforced before anything is written."""

    max_entries: int = 10_000
    max_total_uncompressed_bytes: int = 2 * 1024**3
    max_file_size_bytes: int = 512 * 1024**2
    max_compression_ratio: float = 100.0

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "ExtractionLimits":
        return cls(
            max_entries=config.max_entries,
            max_total_uncompressed_bytes=config.max_total_uncompressed_bytes,
            max_file_size_bytes=config.max_file_size_bytes,
            max_compression_ratio=config.max_compression_ratio,
        )


@dataclass
class ExtractionResult:
    """Outcome of :func:`extract_package`."""

    content_type: str = UNKNOWN_CONTENT_TYPE
    files: List[Path] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _validate_member_path(member_name: str) -> Path:
    """Validate archive member paths to prevent traversal attacks."""

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute() or (relative.parts and relative.parts[0].endswith(":")):
        raise ExtractionError(f"Unsafe absolute path detected in archive: {member_name}")
    parts = [part for part in relative.parts if part != "."]
    if not parts:
        raise ExtractionError(f"Empty path detected in archive: {member_name}")
    if any(part in {"", ".."} for part in parts):
        raise ExtractionError(f"Unsafe path detected in archive: {member_name}")
    return Path(*parts)


def _check_compression_ratio(
    *,
    total_uncompressed: int,
    compressed_size: int,
    archive: Path,
    limit: float,
) -> None:
    """Ensure the archive does not expand beyond the permitted ratio."""

    if compressed_size <= 0:
        return
    ratio = total_uncompressed / float(compressed_size)
    if ratio > limit:
        logger.error(
            "archive compression ratio too high",
            extra={
                "stage": "extract",
                "path": str(archive),
                "reason": f"ratio {round(ratio, 2)} exceeds {limit}",
            },
        )
        raise ExtractionError(
            f"archive {archive.name} expands to {total_uncompressed} bytes, "
            f"exceeding {limit}:1 compression ratio"
        )


def _plan_members(
    archive: zipfile.ZipFile, archive_path: Path, limits: ExtractionLimits
) -> List[Tuple[zipfile.ZipInfo, Path]]:
    """Check every member against the limits and return the safe write plan."""

    members = archive.infolist()
    if len(members) > limits.max_entries:
        raise ExtractionError(
            f"archive has {len(members)} entries, limit is {limits.max_entries}"
        )

    plan: List[Tuple[zipfile.ZipInfo, Path]] = []
    total_uncompressed = 0
    for member in members:
        member_path = _validate_member_path(member.filename)
        mode = (member.external_attr >> 16) & 0xFFFF
        if stat.S_IFMT(mode) == stat.S_IFLNK:
            raise ExtractionError(f"Unsafe link detected in archive: {member.filename}")
        if member.flag_bits & _FLAG_ENCRYPTED:
            raise ExtractionError(f"entry {member.filename} is encrypted")
        if not member.is_dir():
            if member.file_size > limits.max_file_size_bytes:
                raise ExtractionError(
                    f"entry {member.filename} is {member.file_size} bytes, "
                    f"limit is {limits.max_file_size_bytes}"
                )
            total_uncompressed += int(member.file_size)
        plan.append((member, member_path))

    if total_uncompressed > limits.max_total_uncompressed_bytes:
        raise ExtractionError(
            f"archive expands to {total_uncompressed} bytes, "
            f"limit is {limits.max_total_uncompressed_bytes}"
        )

    compressed_size = max(
        archive_path.stat().st_size,
        sum(int(member.compress_size) for member in members) or 0,
    )
    _check_compression_ratio(
        total_uncompressed=total_uncompressed,
        compressed_size=compressed_size,
        archive=archive_path,
        limit=limits.max_compression_ratio,
    )
    return plan


def _copy_bounded(source: BinaryIO, target: BinaryIO, *, limit: int, name: str) -> None:
    # Declared sizes come from the archive itself, so the stream is capped too.
    written = 0
    for chunk in iter(lambda: source.read(_COPY_CHUNK), b""):
        written += len(chunk)
        if written > limit:
            raise ExtractionError(f"entry {name} exceeds its declared size")
        target.write(chunk)


def extract_package(
    archive_path: Path,
    destination: Path,
    *,
    limits: Optional[ExtractionLimits] = None,
    correlation_id: Optional[str] = None,
) -> ExtractionResult:
    """Unpack ``archive_path`` into ``destination`` and read its content type.

    ``destination`` is created with its parents when absent.  Existing files at
    the same relative paths are overwritten.  A manifest that is missing or
    unparseable only degrades the content type to ``"Unknown"``.

    Returns:
        ExtractionResult with ``error`` set when the archive could not be
        opened, violated a limit, or could not be written out.  Files written
        before a mid-stream failure are left for the caller to remove.
    """
    limits = limits or ExtractionLimits()
    archive_path = Path(archive_path)
    destination = Path(destination)
    extracted: List[Path] = []

    try:
        with zipfile.ZipFile(archive_path) as archive:
            plan = _plan_members(archive, archive_path, limits)
            destination.mkdir(parents=True, exist_ok=True)
            for member, member_path in plan:
                target_path = destination / member_path
                if member.is_dir():
                    target_path.mkdir(parents=True, exist_ok=True)
                    continue
                target_path.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member, "r") as source, target_path.open("wb") as target:
                    _copy_bounded(
                        source,
                        target,
                        limit=max(int(member.file_size), 0),
                        name=member.filename,
                    )
                extracted.append(target_path)
    except ExtractionError as exc:
        return _failed(archive_path, str(exc), extracted, correlation_id)
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        OSError,
        EOFError,
        ValueError,
        RuntimeError,
    ) as exc:
        # RuntimeError covers encrypted and unsupported-compression members.
        return _failed(archive_path, f"cannot extract archive: {exc}", extracted, correlation_id)

    content_type = content_type_hint(destination)
    logger.info(
        "extracted package",
        extra={
            "stage": "extract",
            "path": str(destination),
            "correlation_id": correlation_id,
        },
    )
    return ExtractionResult(content_type=content_type, files=extracted)


def _failed(
    archive_path: Path,
    message: str,
    extracted: List[Path],
    correlation_id: Optional[str],
) -> ExtractionResult:
    logger.warning(
        "extraction failed",
        extra={
            "stage": "extract",
            "path": str(archive_path),
            "reason": message,
            "correlation_id": correlation_id,
        },
    )
    return ExtractionResult(files=extracted, error=message)


__all__ = ["ExtractionLimits", "ExtractionResult", "extract_package"]
