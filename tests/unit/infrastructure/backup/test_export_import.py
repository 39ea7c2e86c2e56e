"""
データベースのエクスポート/インポート/全消去の単体テスト
"""

import io
import json
import zipfile

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from punt.domain.exceptions import BackupError
from punt.infrastructure.backup import (
    ExportOptions,
    create_export,
    import_database,
    parse_export_file,
    preview_export,
    wipe_database,
    wipe_projects,
)
from punt.infrastructure.backup import importer
from punt.infrastructure.backup.crypto import encrypt
from punt.infrastructure.database.models import Attachment, Project, Ticket, User
from punt.infrastructure.repositories.project_repository import ProjectService
from punt.infrastructure.repositories.ticket_repository import TicketService
from punt.infrastructure.security.password import hash_password, verify_password
from punt.infrastructure.uploads import save_upload, url_to_path


@pytest.fixture
def populated(db_session: DBSession, admin_user: User, regular_user: User) -> Project:
    """プロジェクト1件・チケット2件（親子）を用意する"""
    project = ProjectService(db_session).create_project(admin_user, "Punt", "PUNT")
    column = ProjectService(db_session).list_columns(project.id)[0]
    tickets = TicketService(db_session)
    parent = tickets.create_ticket(
        admin_user, project, {"title": "Epic", "column_id": column.id, "type": "epic"}
    )
    tickets.create_ticket(
        admin_user,
        project,
        {"title": "Child", "column_id": column.id, "parent_id": parent.id},
    )
    return project


def _count(db: DBSession, model: type) -> int:
    return db.scalar(select(func.count()).select_from(model)) or 0


class TestCreateExport:
    """エクスポートファイルの生成"""

    def test_json_export(self, db_session: DBSession, populated: Project) -> None:
        artifact = create_export(db_session, exported_by="admin-id")

        assert artifact.media_type == "application/json"
        assert artifact.filename.startswith("punt-backup-")
        assert artifact.filename.endswith(".json")

        bundle = json.loads(artifact.content)
        assert bundle["version"] == "1.0.0"
        assert bundle["exportedBy"] == "admin-id"
        assert bundle["encrypted"] is False
        assert len(bundle["data"]["tickets"]) == 2

    def test_export_excludes_secrets(
        self, db_session: DBSession, admin_user: User, populated: Project
    ) -> None:
        """TOTPシークレットとAPIキーは含まれないこと"""
        admin_user.totp_secret = "secret-value"
        admin_user.mcp_api_key = "punt_secret"
        db_session.commit()

        content = create_export(db_session, exported_by="admin-id").content.decode()

        assert "secret-value" not in content
        assert "punt_secret" not in content

    def test_encrypted_export(self, db_session: DBSession, populated: Project) -> None:
        artifact = create_export(
            db_session, exported_by="admin-id", password="backup-password"
        )

        bundle = json.loads(artifact.content)
        assert bundle["encrypted"] is True
        assert "data" not in bundle
        assert {"ciphertext", "salt", "iv", "authTag"} <= set(bundle)

    def test_zip_export(self, db_session: DBSession, populated: Project) -> None:
        artifact = create_export(
            db_session,
            exported_by="admin-id",
            options=ExportOptions(include_attachments=True),
        )

        assert artifact.media_type == "application/zip"
        assert artifact.filename.endswith(".zip")
        assert artifact.content[:4] == b"PK\x03\x04"
        assert artifact.manifest is not None


class TestParseExportFile:
    """エクスポートファイルの解析と検証"""

    def test_parse_plain(self, db_session: DBSession, populated: Project) -> None:
        parsed = parse_export_file(create_export(db_session, "admin-id").content)

        assert parsed.is_zip is False
        assert parsed.is_encrypted is False
        assert parsed.exported_by == "admin-id"
        assert len(parsed.data.projects) == 1

    def test_parse_encrypted(self, db_session: DBSession, populated: Project) -> None:
        content = create_export(db_session, "admin-id", password="backup-password").content

        with pytest.raises(BackupError):
            parse_export_file(content)
        with pytest.raises(BackupError):
            parse_export_file(content, "wrong-password")

        parsed = parse_export_file(content, "backup-password")
        assert parsed.is_encrypted is True
        assert len(parsed.data.tickets) == 2

    def test_parse_zip(self, db_session: DBSession, populated: Project) -> None:
        content = create_export(
            db_session, "admin-id", options=ExportOptions(include_avatars=True)
        ).content

        parsed = parse_export_file(content)

        assert parsed.is_zip is True
        assert parsed.zip_bytes == content
        assert parsed.options.include_avatars is True

    def test_invalid_json(self) -> None:
        with pytest.raises(BackupError) as exc_info:
            parse_export_file(b"not json")
        assert exc_info.value.message == "Invalid JSON format"

    def test_invalid_structure(self) -> None:
        with pytest.raises(BackupError) as exc_info:
            parse_export_file(b'{"version": "1.0.0"}')
        assert exc_info.value.message == "Invalid export file structure"

    def test_encrypted_requires_password(
        self, db_session: DBSession, populated: Project
    ) -> None:
        content = create_export(db_session, "admin-id", password="backup-password").content

        with pytest.raises(BackupError) as exc_info:
            parse_export_file(content)
        assert (
            exc_info.value.message
            == "This backup is encrypted. Please provide the password."
        )

    def test_decrypted_invalid_structure(
        self, db_session: DBSession, populated: Project
    ) -> None:
        """復号できても中身がエクスポートデータでなければ拒否すること"""
        bundle = json.loads(
            create_export(db_session, "admin-id", password="backup-password").content
        )
        payload = encrypt(json.dumps({"users": "not a list"}), "backup-password")
        bundle.update(
            ciphertext=payload.ciphertext,
            salt=payload.salt,
            iv=payload.iv,
            authTag=payload.auth_tag,
        )

        with pytest.raises(BackupError) as exc_info:
            parse_export_file(json.dumps(bundle).encode(), "backup-password")
        assert exc_info.value.message == "Decrypted data has invalid structure"

    def test_zip_without_backup_json(self) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("readme.txt", "no backup here")

        with pytest.raises(BackupError) as exc_info:
            parse_export_file(buffer.getvalue())
        assert exc_info.value.message == "backup.json not found in ZIP archive"

    def test_too_large(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(importer, "MAX_BACKUP_SIZE", 16)

        with pytest.raises(BackupError) as exc_info:
            parse_export_file(b'{"version": "1.0.0", "padding": "xxxx"}')
        assert exc_info.value.message == "Backup file too large (max 500MB)"

    def test_incompatible_version(
        self, db_session: DBSession, populated: Project
    ) -> None:
        bundle = json.loads(create_export(db_session, "admin-id").content)
        bundle["version"] = "9.0.0"

        with pytest.raises(BackupError) as exc_info:
            parse_export_file(json.dumps(bundle).encode())
        assert "Incompatible export version" in exc_info.value.message

    def test_preview_counts(self, db_session: DBSession, populated: Project) -> None:
        """プレビューにモデルごとの件数が含まれること"""
        preview = preview_export(
            parse_export_file(create_export(db_session, "admin-id").content)
        )

        assert preview.counts.users == 2
        assert preview.counts.projects == 1
        assert preview.counts.tickets == 2
        assert preview.counts.roles == 3
        assert preview.counts.columns == 4
        assert preview.includes_attachments is False


class TestImportDatabase:
    """既存データを置き換えるインポート"""

    def test_import_replaces_data(
        self, db_session: DBSession, populated: Project
    ) -> None:
        parsed = parse_export_file(create_export(db_session, "admin-id").content)

        # エクスポート後に作られたデータはインポートで消える
        ProjectService(db_session).create_project(
            db_session.scalar(select(User).where(User.username == "admin")),
            "Extra",
            "EXTRA",
        )

        result = import_database(db_session, parsed.data, options=parsed.options)

        assert result.success is True
        assert result.counts.projects == 1
        assert _count(db_session, Project) == 1
        assert _count(db_session, Ticket) == 2
        child = db_session.scalar(select(Ticket).where(Ticket.title == "Child"))
        assert child is not None
        assert child.parent_id is not None

    def test_import_resets_two_factor(
        self, db_session: DBSession, admin_user: User, populated: Project
    ) -> None:
        """2FAが有効だったユーザーは無効化されて報告されること"""
        admin_user.totp_enabled = True
        admin_user.totp_secret = "encrypted-secret"
        db_session.commit()
        parsed = parse_export_file(create_export(db_session, "admin-id").content)

        result = import_database(db_session, parsed.data)

        assert result.two_factor_reset == ["admin"]
        admin = db_session.scalar(select(User).where(User.username == "admin"))
        assert admin is not None
        assert admin.totp_enabled is False
        assert admin.totp_secret is None


@pytest.fixture
def attachment(db_session: DBSession, admin_user: User, populated: Project) -> Attachment:
    """実体ファイル付きの添付ファイル"""
    ticket = db_session.scalar(select(Ticket).where(Ticket.title == "Epic"))
    assert ticket is not None
    record = Attachment(
        ticket_id=ticket.id,
        uploader_id=admin_user.id,
        filename="notes.txt",
        mime_type="text/plain",
        size=5,
        url=save_upload("attachments", "notes.txt", b"hello"),
    )
    db_session.add(record)
    db_session.commit()
    return record


def _without_files(zip_bytes: bytes) -> bytes:
    """backup.json だけを残したZIPを作る"""
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(zip_bytes)) as src, zipfile.ZipFile(
        buffer, "w"
    ) as dst:
        dst.writestr("backup.json", src.read("backup.json"))
    return buffer.getvalue()


class TestFileRestore:
    """ZIPに同梱されたファイルの復元"""

    def test_restores_attachment(
        self, db_session: DBSession, attachment: Attachment
    ) -> None:
        url = attachment.url
        parsed = parse_export_file(
            create_export(
                db_session, "admin-id", options=ExportOptions(include_attachments=True)
            ).content
        )
        path = url_to_path(url)
        assert path is not None
        path.unlink()

        result = import_database(
            db_session, parsed.data, zip_bytes=parsed.zip_bytes, options=parsed.options
        )

        assert result.files.attachments_restored == 1
        assert result.files.attachments_missing == 0
        assert path.read_bytes() == b"hello"

    def test_missing_entry_is_reported(
        self, db_session: DBSession, attachment: Attachment
    ) -> None:
        """ZIPに実体が無い添付ファイルは復元できなかったものとして数える"""
        url = attachment.url
        content = create_export(
            db_session, "admin-id", options=ExportOptions(include_attachments=True)
        ).content
        parsed = parse_export_file(_without_files(content))

        result = import_database(
            db_session, parsed.data, zip_bytes=parsed.zip_bytes, options=parsed.options
        )

        assert result.files.attachments_restored == 0
        assert result.files.attachments_missing == 1
        assert result.files.missing_files == [url]
        assert _count(db_session, Attachment) == 1

    def test_restores_avatar(
        self, db_session: DBSession, admin_user: User, populated: Project
    ) -> None:
        admin_user.avatar = save_upload("avatars", "me.png", b"avatar-bytes")
        db_session.commit()
        path = url_to_path(admin_user.avatar)
        assert path is not None
        parsed = parse_export_file(
            create_export(
                db_session, "admin-id", options=ExportOptions(include_avatars=True)
            ).content
        )
        path.unlink()

        result = import_database(
            db_session, parsed.data, zip_bytes=parsed.zip_bytes, options=parsed.options
        )

        assert result.files.avatars_restored == 1
        assert path.read_bytes() == b"avatar-bytes"

    def test_avatars_cleared_without_archive(
        self, db_session: DBSession, admin_user: User, populated: Project
    ) -> None:
        """アバター同梱のエクスポートをZIP無しで取り込むとアバターは外れる"""
        admin_user.avatar = save_upload("avatars", "me.png", b"avatar-bytes")
        db_session.commit()
        parsed = parse_export_file(
            create_export(
                db_session, "admin-id", options=ExportOptions(include_avatars=True)
            ).content
        )

        result = import_database(db_session, parsed.data, options=parsed.options)

        assert result.files.avatars_restored == 0
        admin = db_session.scalar(select(User).where(User.username == "admin"))
        assert admin is not None
        assert admin.avatar is None


class TestWipe:
    """全消去"""

    def test_wipe_database_creates_new_admin(
        self, db_session: DBSession, populated: Project
    ) -> None:
        admin = wipe_database(db_session, "root", hash_password("An0therPassword!"))

        assert admin.is_system_admin is True
        assert _count(db_session, User) == 1
        assert _count(db_session, Project) == 0
        assert verify_password("An0therPassword!", admin.password_hash or "")

    def test_wipe_projects_keeps_users(
        self, db_session: DBSession, populated: Project
    ) -> None:
        counts = wipe_projects(db_session)

        assert counts["projects"] == 1
        assert _count(db_session, Project) == 0
        assert _count(db_session, Ticket) == 0
        assert _count(db_session, User) == 2
