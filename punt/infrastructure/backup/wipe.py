"""データベースの全消去"""

from sqlalchemy import delete
from sqlalchemy.orm import Session

from punt.core.logging import get_logger

from ..database.models import (
    Attachment,
    BoardColumn,
    Comment,
    Invitation,
    Label,
    Project,
    ProjectMember,
    ProjectSprintSettings,
    RateLimit,
    Role,
    Sprint,
    Ticket,
    TicketEdit,
    TicketLink,
    TicketSprintHistory,
    TicketWatcher,
    User,
    ticket_labels,
    utcnow,
)
from ..database.models import Session as SessionModel

logger = get_logger(__name__)

# プロジェクト配下のテーブル（FKの逆順）
PROJECT_TABLES: tuple[tuple[str, object], ...] = (
    ("ticketSprintHistory", TicketSprintHistory),
    ("attachments", Attachment),
    ("ticketEdits", TicketEdit),
    ("comments", Comment),
    ("ticketWatchers", TicketWatcher),
    ("ticketLinks", TicketLink),
    ("ticketLabels", ticket_labels),
    ("tickets", Ticket),
    ("projectSprintSettings", ProjectSprintSettings),
    ("projectMembers", ProjectMember),
    ("sprints", Sprint),
    ("labels", Label),
    ("columns", BoardColumn),
    ("roles", Role),
    ("invitations", Invitation),
    ("projects", Project),
)

# ユーザーと認証関連（プロジェクト配下の削除後に消す）
ACCOUNT_TABLES: tuple[tuple[str, object], ...] = (
    ("sessions", SessionModel),
    ("rateLimits", RateLimit),
    ("users", User),
)


def _delete_all(db: Session, tables: tuple[tuple[str, object], ...]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for name, table in tables:
        result = db.execute(delete(table))  # type: ignore[arg-type]
        counts[name] = int(getattr(result, "rowcount", 0) or 0)
    return counts


def delete_all_data(db: Session) -> dict[str, int]:
    """
    system_settings 以外の全テーブルを削除する（コミットしない）

    インポート処理のトランザクション内から呼ばれる。
    """
    counts = _delete_all(db, PROJECT_TABLES)
    counts.update(_delete_all(db, ACCOUNT_TABLES))
    return counts


def wipe_database(
    db: Session, admin_username: str, admin_password_hash: str
) -> User:
    """
    全データを削除し、新しい管理者ユーザーを作成する

    システム設定は保持する。

    Args:
        db: DBセッション
        admin_username: 新しい管理者のユーザー名
        admin_password_hash: 新しい管理者のパスワードハッシュ

    Returns:
        作成された管理者ユーザー
    """
    try:
        counts = delete_all_data(db)
        admin = User(
            username=admin_username,
            name=admin_username,
            password_hash=admin_password_hash,
            password_changed_at=utcnow(),
            is_system_admin=True,
            is_active=True,
        )
        db.add(admin)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.warning(
        f"Database wiped ({counts.get('users', 0)} users, "
        f"{counts.get('projects', 0)} projects removed)"
    )
    return admin


def wipe_projects(db: Session) -> dict[str, int]:
    """
    ユーザーを残してプロジェクト配下のデータをすべて削除する

    Returns:
        テーブルごとの削除件数
    """
    try:
        counts = _delete_all(db, PROJECT_TABLES)
        db.commit()
    except Exception:
        db.rollback()
        raise

    counts.pop("ticketLabels", None)
    logger.warning(f"All projects wiped ({counts.get('projects', 0)} projects)")
    return counts

