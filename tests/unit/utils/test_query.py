"""
検索クエリ補助関数の単体テスト
"""

from sqlalchemy.orm import Session

from punt.infrastructure.database.models import User
from punt.infrastructure.repositories.user_repository import UserService
from punt.utils.query import contains_pattern, escape_like
from tests.helpers import create_user


class TestEscapeLike:
    def test_escapes_wildcards(self) -> None:
        assert escape_like("100%") == "100\\%"
        assert escape_like("a_b") == "a\\_b"

    def test_escapes_escape_character_first(self) -> None:
        """エスケープ文字自体が二重にエスケープされないこと"""
        assert escape_like("C:\\%") == "C:\\\\\\%"

    def test_plain_text_unchanged(self) -> None:
        assert escape_like("login bug") == "login bug"

    def test_contains_pattern_truncates(self) -> None:
        pattern = contains_pattern("x" * 300)

        assert pattern == "%" + "x" * 200 + "%"


class TestUserSearch:
    """ユーザー検索でのワイルドカードの扱い"""

    def test_underscore_is_literal(self, db_session: Session, admin_user: User) -> None:
        create_user(db_session, "dev_ops")
        create_user(db_session, "devxops")

        found = UserService(db_session).search("dev_")

        assert [u.username for u in found] == ["dev_ops"]

    def test_percent_matches_nothing_in_admin_list(
        self, db_session: Session, admin_user: User
    ) -> None:
        create_user(db_session, "alice")

        assert UserService(db_session).list_all("%") == []
