"""
punt-batch CLIの単体テスト
"""

from pathlib import Path

from click.testing import CliRunner
from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession

from punt.infrastructure.batch.cli import cli
from punt.infrastructure.database.models import Project, User
from punt.infrastructure.repositories.project_repository import ProjectService


class TestBackupCli:
    """export / preview / import コマンド"""

    def test_export_and_preview(
        self, tmp_path: Path, db_session: DBSession, admin_user: User
    ) -> None:
        ProjectService(db_session).create_project(admin_user, "Punt", "PUNT")
        output = tmp_path / "backup.json"
        runner = CliRunner()

        exported = runner.invoke(cli, ["export", str(output), "--password", "secret-pass"])
        assert exported.exit_code == 0, exported.output
        assert output.exists()

        preview = runner.invoke(cli, ["preview", str(output), "--password", "secret-pass"])
        assert preview.exit_code == 0, preview.output
        assert "json (encrypted)" in preview.output
        assert "projects: 1" in preview.output

    def test_preview_wrong_password(
        self, tmp_path: Path, db_session: DBSession, admin_user: User
    ) -> None:
        output = tmp_path / "backup.json"
        runner = CliRunner()
        runner.invoke(cli, ["export", str(output), "--password", "secret-pass"])

        result = runner.invoke(cli, ["preview", str(output), "--password", "nope"])

        assert result.exit_code != 0
        assert "Incorrect password or corrupted data" in result.output

    def test_import_restores_data(
        self, tmp_path: Path, db_session: DBSession, admin_user: User
    ) -> None:
        """エクスポート後に作成したプロジェクトがインポートで消えること"""
        output = tmp_path / "backup.json"
        runner = CliRunner()
        runner.invoke(cli, ["export", str(output)])
        ProjectService(db_session).create_project(admin_user, "Later", "LATER")
        db_session.close()

        result = runner.invoke(cli, ["import", str(output), "--yes"])

        assert result.exit_code == 0, result.output
        assert "Imported 1 users, 0 projects" in result.output
        assert db_session.scalars(select(Project)).all() == []

    def test_import_requires_confirmation(
        self, tmp_path: Path, db_session: DBSession, admin_user: User
    ) -> None:
        output = tmp_path / "backup.json"
        runner = CliRunner()
        runner.invoke(cli, ["export", str(output)])

        result = runner.invoke(cli, ["import", str(output)], input="n\n")

        assert result.exit_code != 0
        assert db_session.scalars(select(User)).first() is not None


class TestTaskCommands:
    """tasks / run コマンド"""

    def test_list_tasks(self) -> None:
        result = CliRunner().invoke(cli, ["tasks"])

        assert result.exit_code == 0
        assert "database_backup" in result.output
        assert "session_cleanup" in result.output

    def test_run_task(self, db_session: DBSession) -> None:
        result = CliRunner().invoke(cli, ["run", "session_cleanup"])

        assert result.exit_code == 0, result.output
        assert "session_cleanup completed" in result.output

    def test_run_unknown_task(self) -> None:
        result = CliRunner().invoke(cli, ["run", "reindex"])

        assert result.exit_code != 0
        assert "Unknown task: reindex" in result.output
