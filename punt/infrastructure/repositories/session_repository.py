"""
セッション管理サービス

RDBベースのセッション管理を提供
- 暗号化されたセッションデータの保存/取得
- CSRF保護
- セッション固定攻撃への対策（フィンガープリント検証）
- 期限切れセッションの自動削除
"""

from datetime import timedelta
from typing import Any, Optional, cast

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from punt.core.config import get_settings
from punt.core.logging import get_logger

from ..database.models import Session, utcnow
from ..security.encryption import (
    SessionCipher,
    fingerprint_matches,
    generate_token,
    get_session_cipher,
    session_fingerprint,
)

logger = get_logger(__name__)


class SessionService:
    """
    セッション管理サービス
    """

    def __init__(self, db: DBSession, cipher: Optional[SessionCipher] = None):
        """
        Args:
            db: DBセッション
            cipher: セッションデータの暗号化（Noneの場合は設定から取得）
        """
        self.db = db
        self.cipher = cipher if cipher is not None else get_session_cipher()

    def _find(self, session_id: str) -> Optional[Session]:
        return self.db.scalar(select(Session).where(Session.session_id == session_id))

    def create_session(
        self,
        data: dict[str, Any],
        user_agent: Optional[str] = None,
        client_ip: Optional[str] = None,
        expire_seconds: Optional[int] = None,
    ) -> tuple[str, str]:
        """
        新しいセッションを作成

        Args:
            data: セッションデータ
            user_agent: User-Agentヘッダー
            client_ip: クライアントIPアドレス
            expire_seconds: 有効期限（秒）、Noneの場合は設定値を使用

        Returns:
            (session_id, csrf_token) のタプル
        """
        session_id = generate_token()
        csrf_token = generate_token()

        if expire_seconds is None:
            expire_seconds = get_settings().SESSION_EXPIRE

        session = Session(
            session_id=session_id,
            data=self.cipher.encrypt(data),
            expires_at=utcnow() + timedelta(seconds=expire_seconds),
            fingerprint=session_fingerprint(user_agent, client_ip),
            csrf_token=csrf_token,
            user_id=data.get("user_id"),
        )

        self.db.add(session)
        self.db.commit()

        logger.info(f"Session created: {session_id[:8]}...")
        return session_id, csrf_token

    def get_session(
        self,
        session_id: str,
        user_agent: Optional[str] = None,
        client_ip: Optional[str] = None,
        verify_csrf: bool = False,
        csrf_token: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """
        セッションを取得

        Args:
            session_id: セッションID
            user_agent: User-Agentヘッダー（フィンガープリント検証用）
            client_ip: クライアントIPアドレス（フィンガープリント検証用）
            verify_csrf: CSRFトークンを検証するか
            csrf_token: CSRFトークン（verify_csrf=Trueの場合必須）

        Returns:
            セッションデータ、存在しないまたは無効な場合はNone
        """
        session = self._find(session_id)

        if not session:
            logger.debug("Session not found")
            return None

        if session.expires_at < utcnow():
            logger.info(f"Session expired: {session_id[:8]}...")
            self.delete_session(session_id)
            return None

        if not fingerprint_matches(session.fingerprint, user_agent, client_ip):
            logger.warning(f"Session fingerprint mismatch: {session_id[:8]}...")
            self.delete_session(session_id)
            return None

        if verify_csrf:
            if not csrf_token:
                logger.warning("CSRF token not provided")
                return None
            if csrf_token != session.csrf_token:
                logger.warning("CSRF token mismatch")
                return None

        try:
            return self.cipher.decrypt(session.data)
        except ValueError as e:
            logger.error(f"Failed to decrypt session data: {e}")
            self.delete_session(session_id)
            return None

    def update_session(
        self,
        session_id: str,
        data: dict[str, Any],
        user_agent: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> bool:
        """
        セッションデータを更新

        Args:
            session_id: セッションID
            data: 新しいセッションデータ
            user_agent: User-Agentヘッダー（フィンガープリント検証用）
            client_ip: クライアントIPアドレス（フィンガープリント検証用）

        Returns:
            更新成功時True、失敗時False
        """
        session = self._find(session_id)

        if not session:
            return False

        if session.expires_at < utcnow():
            self.delete_session(session_id)
            return False

        if not fingerprint_matches(session.fingerprint, user_agent, client_ip):
            logger.warning("Cannot update session with fingerprint mismatch")
            self.delete_session(session_id)
            return False

        session.data = self.cipher.encrypt(data)
        session.user_id = data.get("user_id")
        session.updated_at = utcnow()
        self.db.commit()
        return True

    def delete_session(self, session_id: str) -> bool:
        """
        セッションを削除

        Args:
            session_id: セッションID

        Returns:
            削除成功時True、失敗時False
        """
        try:
            result = self.db.execute(
                delete(Session).where(Session.session_id == session_id)
            )
            self.db.commit()
            return cast(int, getattr(result, "rowcount", 0)) > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete session: {e}")
            self.db.rollback()
            return False

    def delete_user_sessions(self, user_id: str, keep_session_id: Optional[str] = None) -> int:
        """
        指定ユーザーの全セッションを削除する（パスワード変更・ユーザー無効化時）

        Args:
            user_id: ユーザーID
            keep_session_id: 削除対象から除外するセッションID

        Returns:
            削除されたセッション数
        """
        stmt = delete(Session).where(Session.user_id == user_id)
        if keep_session_id:
            stmt = stmt.where(Session.session_id != keep_session_id)
        result = self.db.execute(stmt)
        self.db.commit()
        count = cast(int, getattr(result, "rowcount", 0))
        if count:
            logger.info(f"Revoked {count} sessions for user {user_id}")
        return count

    def cleanup_expired_sessions(self) -> int:
        """
        期限切れセッションをクリーンアップ

        Returns:
            削除されたセッション数
        """
        try:
            result = self.db.execute(delete(Session).where(Session.expires_at < utcnow()))
            self.db.commit()
            count = cast(int, getattr(result, "rowcount", 0))
            if count > 0:
                logger.info(f"Cleaned up {count} expired sessions")
            return count
        except SQLAlchemyError as e:
            logger.error(f"Failed to cleanup expired sessions: {e}")
            self.db.rollback()
            return 0

    def regenerate_session_id(
        self,
        old_session_id: str,
        user_agent: Optional[str] = None,
        client_ip: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Optional[tuple[str, str]]:
        """
        セッションIDを再生成（セッション固定攻撃対策）

        Args:
            old_session_id: 古いセッションID
            user_agent: User-Agentヘッダー
            client_ip: クライアントIPアドレス
            data: 新しいセッションに保存するデータ（Noneの場合は引き継ぐ）

        Returns:
            (新しいsession_id, 新しいcsrf_token) のタプル、失敗時はNone
        """
        current = self.get_session(old_session_id, user_agent, client_ip)
        if current is None:
            logger.warning("Cannot regenerate non-existent session")
            return None

        self.delete_session(old_session_id)
        return self.create_session(
            data if data is not None else current, user_agent, client_ip
        )

    def get_csrf_token(self, session_id: str) -> Optional[str]:
        """
        セッションのCSRFトークンを取得
        """
        session = self._find(session_id)
        return session.csrf_token if session else None
