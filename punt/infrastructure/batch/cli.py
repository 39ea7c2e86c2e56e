"""バックアップ・メンテナンス用CLI（punt-batch）"""

from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from sqlalchemy.orm import Session

from punt.domain.exceptions import DomainError
from punt.infrastructure.backup import (
    ExportOptions,
    ParsedExport,
    create_export,
    import_database,
    parse_export_file,
    preview_export,
)
from punt.infrastructure.database import connection

from .registry import task_registry
from .storage import get_local_backups, get_s3_backups

# CLIからのエクスポート実行者
CLI_EXPORTER = "cli"


def open_db() -> Session:
    if connection.SessionLocal is None:
        click.echo("✗ Database not configured", err=True)
        raise click.Abort()
    return connection.SessionLocal()


@click.group()
def cli() -> None:
    """PUNT バックアップ・メンテナンスCLI"""


@cli.command("oneshot")
def backup_oneshot() -> None:
    """バックアップを即座に実行する"""
    from punt.infrastructure.batch.tasks.backup import run_backup

    click.echo("Starting manual backup...")
    try:
        run_backup()
        click.echo("✓ Backup completed successfully")
    except Exception as e:
        click.echo(f"✗ Backup failed: {e}", err=True)
        raise click.Abort()


@cli.command("list")
@click.option("--remote", is_flag=True, help="S3上のバックアップも表示")
def backup_list(remote: bool) -> None:
    """利用可能なバックアップファイルを一覧表示する"""
    local_backups = get_local_backups()

    if local_backups:
        click.echo("Local backups:")
        for backup in local_backups:
            size_mb = backup.stat().st_size / (1024 * 1024)
            mtime = datetime.fromtimestamp(backup.stat().st_mtime)
            click.echo(f"  - {backup.name} ({size_mb:.2f} MB, {mtime})")
    else:
        click.echo("No local backups found")

    if remote:
        s3_backups = get_s3_backups()
        if s3_backups:
            click.echo("\nS3 backups:")
            for s3_backup in s3_backups:
                click.echo(f"  - {s3_backup}")
        else:
            click.echo("\nNo S3 backups found (or S3 not configured)")


@cli.command("export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--password", default=None, help="暗号化パスワード")
@click.option("--include-attachments", is_flag=True, help="添付ファイルを同梱")
@click.option("--include-avatars", is_flag=True, help="アバター画像を同梱")
def backup_export(
    output: Path,
    password: Optional[str],
    include_attachments: bool,
    include_avatars: bool,
) -> None:
    """
    データベースをエクスポートする。

    OUTPUT: 出力先ファイル
    """
    options = ExportOptions(
        include_attachments=include_attachments, include_avatars=include_avatars
    )
    db = open_db()
    try:
        artifact = create_export(
            db, exported_by=CLI_EXPORTER, options=options, password=password
        )
    finally:
        db.close()

    output.write_bytes(artifact.content)
    click.echo(f"✓ Exported to {output} ({artifact.media_type})")
    if artifact.manifest is not None:
        entries = artifact.manifest.attachments + artifact.manifest.avatars
        missing = [e.url for e in entries if not e.exists]
        click.echo(f"  files: {len(entries) - len(missing)} included, {len(missing)} missing")


def _read_export(file: Path, password: Optional[str]) -> ParsedExport:
    try:
        return parse_export_file(file.read_bytes(), password)
    except DomainError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise click.Abort()


@cli.command("preview")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--password", default=None, help="復号パスワード")
def backup_preview(file: Path, password: Optional[str]) -> None:
    """
    エクスポートファイルの内容を確認する。

    FILE: エクスポートファイル
    """
    preview = preview_export(_read_export(file, password))

    click.echo(f"Exported at: {preview.exported_at}")
    click.echo(f"Exported by: {preview.exported_by or '-'}")
    fmt = "zip" if preview.is_zip else "json"
    if preview.is_encrypted:
        fmt += " (encrypted)"
    click.echo(f"Format: {fmt}")
    click.echo(
        f"Files: attachments={preview.includes_attachments}, "
        f"avatars={preview.includes_avatars}"
    )
    click.echo("Records:")
    for name, count in preview.counts.model_dump().items():
        click.echo(f"  {name}: {count}")


@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--password", default=None, help="復号パスワード")
@click.option("--yes", "-y", is_flag=True, help="確認をスキップ")
def backup_import(file: Path, password: Optional[str], yes: bool) -> None:
    """
    エクスポートファイルからデータベースを復元する。

    現在のデータはすべて削除される。

    FILE: エクスポートファイル
    """
    parsed = _read_export(file, password)

    if not yes:
        click.confirm(
            f"⚠️  All current data will be replaced by '{file.name}'. Continue?",
            abort=True,
        )

    db = open_db()
    try:
        result = import_database(db, parsed.data, parsed.zip_bytes, parsed.options)
    except DomainError as e:
        click.echo(f"✗ Import failed: {e.message}", err=True)
        raise click.Abort()
    finally:
        db.close()

    click.echo(
        f"✓ Imported {result.counts.users} users, {result.counts.projects} projects, "
        f"{result.counts.tickets} tickets"
    )
    if parsed.zip_bytes is not None:
        files = result.files
        click.echo(
            f"  attachments: {files.attachments_restored} restored, "
            f"{files.attachments_missing} missing"
        )
        click.echo(
            f"  avatars: {files.avatars_restored} restored, {files.avatars_missing} missing"
        )
    if result.two_factor_reset:
        click.echo(f"  2FA reset for: {', '.join(result.two_factor_reset)}")


@cli.command("tasks")
def list_tasks() -> None:
    """登録済みのメンテナンスタスクとスケジュールを表示する"""
    from punt.infrastructure.batch import tasks  # noqa: F401

    for task in task_registry.get_all().values():
        schedule = task.cron or "manual"
        click.echo(f"  {task.task_id:<20} {schedule:<15} {task.description}")


@cli.command("run")
@click.argument("task_id")
def run_task(task_id: str) -> None:
    """
    登録済みのタスクを即座に実行する。

    TASK_ID: punt-batch tasks で表示される識別子
    """
    from punt.infrastructure.batch import tasks  # noqa: F401

    try:
        task = task_registry.get(task_id)
    except KeyError:
        click.echo(f"✗ Unknown task: {task_id}", err=True)
        raise click.Abort()

    try:
        task.func()
    except Exception as e:
        click.echo(f"✗ {task_id} failed: {e}", err=True)
        raise click.Abort()
    click.echo(f"✓ {task_id} completed")


if __name__ == "__main__":
    cli()
