"""Operator CLI for ContentHub.

Provides commands for managing content:
  - ingest: Validate, extract and catalog a package
  - delete: Remove a package's files and its catalog row
  - show / list: Inspect catalog records
  - scan: Report orphaned package directories (or uploads)
  - cleanup: Remove orphans (dry-run by default)
  - dangling: Report records whose directory is missing
  - serve: Run the HTTP API
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from ContentHub.catalog.bootstrap import ContentHubBootstrap
from ContentHub.config.loader import load_config
from ContentHub.config.models import ContentHubConfig
from ContentHub.errors import ContentHubError
from ContentHub.logging_config import setup_logging

logger = logging.getLogger(__name__)
app = typer.Typer(help="ContentHub package management commands")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Config file path (YAML/JSON)")


def _load(config_path: Optional[str]) -> ContentHubConfig:
    config = load_config(path=config_path)
    setup_logging(config.logging)
    return config


@app.command()
def ingest(
    title: str = typer.Argument(..., help="Display title"),
    archive: Path = typer.Argument(..., help="Package archive to ingest"),
    subject_area: Optional[int] = typer.Option(None, "--subject-area", help="Subject area id"),
    password: Optional[str] = typer.Option(None, "--password", help="Access password"),
    cover: Optional[Path] = typer.Option(None, "--cover", help="Cover image (JPEG)"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Ingest a package from the local filesystem."""
    try:
        config = _load(config_path)
        cover_bytes = cover.read_bytes() if cover else None
        with ContentHubBootstrap(config) as hub:
            result = hub.lifecycle.ingest(
                title,
                archive,
                subject_area_id=subject_area,
                password=password,
                cover_image=cover_bytes,
            )
        typer.echo(f"✓ ingested {result.slug} (id {result.content_id})")
        typer.echo(f"  Storage: {result.storage_path}")
        typer.echo(f"  Type: {result.content_type}")
    except (ContentHubError, OSError) as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def delete(
    content_id: int = typer.Argument(..., help="Content id"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Delete a package from disk, then from the catalog."""
    try:
        config = _load(config_path)
        with ContentHubBootstrap(config) as hub:
            record = hub.lifecycle.delete(content_id)
        typer.echo(f"✓ deleted {record.slug} (id {record.id})")
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def show(
    content_id: int = typer.Argument(..., help="Content id"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Display one catalog record."""
    try:
        config = _load(config_path)
        with ContentHubBootstrap(config) as hub:
            record = hub.lifecycle.get(content_id)
        typer.echo(f"  ID: {record.id}")
        typer.echo(f"  Title: {record.title}")
        typer.echo(f"  Slug: {record.slug}")
        typer.echo(f"  Storage: {record.storage_path}")
        typer.echo(f"  Type: {record.content_type}")
        typer.echo(f"  Subject area: {record.subject_area_id or '-'}")
        typer.echo(f"  Protected: {'yes' if record.is_password_protected else 'no'}")
        if record.cover_image_path:
            typer.echo(f"  Cover: {record.cover_image_path}")
        if record.source_path:
            typer.echo(f"  Source: {record.source_path}")
        typer.echo(f"  Created: {record.created_at}")
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("list")
def list_content(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """List catalog records, newest first."""
    try:
        config = _load(config_path)
        with ContentHubBootstrap(config) as hub:
            records = hub.catalog.get_all_records()
        if not records:
            typer.echo("No content in catalog")
            return
        for record in records:
            typer.echo(f"{record.id:>6}  {record.slug}  {record.content_type}  {record.title}")
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def scan(
    uploads: bool = typer.Option(False, "--uploads", help="Scan the raw-upload area instead"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Report orphans without touching anything."""
    try:
        config = _load(config_path)
        with ContentHubBootstrap(config) as hub:
            if uploads:
                upload_report = hub.reconciler.scan_uploads()
                orphans, recent = upload_report.orphaned_files, upload_report.skipped_recent
            else:
                report = hub.reconciler.scan()
                orphans, recent = report.orphaned_directories, report.skipped_recent
        typer.echo(f"Orphaned: {len(orphans)}")
        for name in orphans:
            typer.echo(f"  {name}")
        if recent:
            typer.echo(f"Skipped (within grace period): {len(recent)}")
            for name in recent:
                typer.echo(f"  {name}")
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def cleanup(
    uploads: bool = typer.Option(False, "--uploads", help="Clean the raw-upload area instead"),
    dry_run: bool = typer.Option(True, "--dry-run/--apply", help="Dry-run mode (default: true)"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Remove orphans. Use --dry-run to preview, then --apply to execute."""
    try:
        config = _load(config_path)
        with ContentHubBootstrap(config) as hub:
            if uploads:
                report = hub.reconciler.cleanup_uploads(dry_run=dry_run)
            else:
                report = hub.reconciler.cleanup(dry_run=dry_run)
        action = "would delete" if dry_run else "deleted"
        typer.echo(f"✓ {action} {report.deleted_count} orphan(s)")
        for name in report.deleted:
            typer.echo(f"  {name}")
        for error in report.errors:
            typer.echo(f"✗ {error}", err=True)
        if report.errors:
            raise typer.Exit(1)
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def dangling(config_path: Optional[str] = CONFIG_OPTION) -> None:
    """Report records whose storage path is missing (nothing is repaired)."""
    try:
        config = _load(config_path)
        with ContentHubBootstrap(config) as hub:
            records = hub.reconciler.find_dangling_records()
        typer.echo(f"Dangling records: {len(records)}")
        for item in records:
            typer.echo(f"  {item.record_id}  {item.slug}  {item.storage_path}")
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from ContentHub.api.app import create_app

    try:
        config = _load(config_path)
        application = create_app(config)
    except ContentHubError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)
    uvicorn.run(application, host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
