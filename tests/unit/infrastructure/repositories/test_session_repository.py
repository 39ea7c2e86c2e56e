"""
セッションリポジトリの単体テスト
"""

from sqlalchemy.orm import Session as DBSession

from punt.infrastructure.repositories.session_repository import SessionService

USER_AGENT = "Mozilla/5.0"
CLIENT_IP = "127.0.0.1"


class TestSessionService:
    """セッションサービスのテスト"""

    def test_create_and_get_session(self, db_session: DBSession) -> None:
        """セッションが作成・取得できること"""
        service = SessionService(db_session)

        session_id, csrf_token = service.create_session(
            {"user_id": "u-1"}, USER_AGENT, CLIENT_IP
        )

        assert len(session_id) == 64
        assert len(csrf_token) == 64
        assert service.get_session(session_id, USER_AGENT, CLIENT_IP) == {"user_id": "u-1"}
        assert service.get_csrf_token(session_id) == csrf_token

    def test_wrong_fingerprint_invalidates_session(self, db_session: DBSession) -> None:
        """フィンガープリントが異なる場合、セッションは取得できず削除されること"""
        service = SessionService(db_session)
        session_id, _ = service.create_session({"user_id": "u-1"}, USER_AGENT, CLIENT_IP)

        assert service.get_session(session_id, "Chrome/90.0", CLIENT_IP) is None
        assert service.get_session(session_id, USER_AGENT, CLIENT_IP) is None

    def test_expired_session(self, db_session: DBSession) -> None:
        """期限切れのセッションは取得できないこと"""
        service = SessionService(db_session)
        session_id, _ = service.create_session(
            {"user_id": "u-1"}, USER_AGENT, CLIENT_IP, expire_seconds=-1
        )

        assert service.get_session(session_id, USER_AGENT, CLIENT_IP) is None

    def test_update_session(self, db_session: DBSession) -> None:
        service = SessionService(db_session)
        session_id, _ = service.create_session({"user_id": "u-1"}, USER_AGENT, CLIENT_IP)

        assert service.update_session(
            session_id, {"user_id": "u-2"}, USER_AGENT, CLIENT_IP
        ) is True
        assert service.get_session(session_id, USER_AGENT, CLIENT_IP) == {"user_id": "u-2"}

    def test_regenerate_session_id(self, db_session: DBSession) -> None:
        """セッションIDを再生成すると古いIDは無効になること"""
        service = SessionService(db_session)
        old_id, _ = service.create_session(
            {"pending_2fa_user_id": "u-1"}, USER_AGENT, CLIENT_IP
        )

        result = service.regenerate_session_id(
            old_id, USER_AGENT, CLIENT_IP, data={"user_id": "u-1"}
        )

        assert result is not None
        new_id, _ = result
        assert new_id != old_id
        assert service.get_session(old_id, USER_AGENT, CLIENT_IP) is None
        assert service.get_session(new_id, USER_AGENT, CLIENT_IP) == {"user_id": "u-1"}

    def test_delete_user_sessions_keeps_current(self, db_session: DBSession) -> None:
        """パスワード変更時、現在のセッション以外が削除されること"""
        service = SessionService(db_session)
        current, _ = service.create_session({"user_id": "u-1"}, USER_AGENT, CLIENT_IP)
        other, _ = service.create_session({"user_id": "u-1"}, USER_AGENT, CLIENT_IP)
        someone_else, _ = service.create_session(
            {"user_id": "u-2"}, USER_AGENT, CLIENT_IP
        )

        revoked = service.delete_user_sessions("u-1", keep_session_id=current)

        assert revoked == 1
        assert service.get_session(current, USER_AGENT, CLIENT_IP) is not None
        assert service.get_session(other, USER_AGENT, CLIENT_IP) is None
        assert service.get_session(someone_else, USER_AGENT, CLIENT_IP) is not None

    def test_cleanup_expired_sessions(self, db_session: DBSession) -> None:
        service = SessionService(db_session)
        service.create_session({"user_id": "u-1"}, USER_AGENT, CLIENT_IP, expire_seconds=-10)
        alive, _ = service.create_session({"user_id": "u-1"}, USER_AGENT, CLIENT_IP)

        assert service.cleanup_expired_sessions() == 1
        assert service.get_session(alive, USER_AGENT, CLIENT_IP) is not None
