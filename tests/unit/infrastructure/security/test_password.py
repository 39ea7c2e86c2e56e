"""
パスワードハッシュと強度チェックの単体テスト
"""

from punt.infrastructure.security.password import (
    hash_password,
    needs_rehash,
    validate_password_strength,
    verify_password,
)


class TestPasswordHash:
    """argon2によるハッシュ化"""

    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Correct-Horse-1")

        assert hashed.startswith("$argon2")
        assert verify_password("Correct-Horse-1", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_verify_without_hash_fails(self) -> None:
        """ハッシュが無い場合は常に失敗すること"""
        assert verify_password("anything", None) is False
        assert verify_password("anything", "") is False

    def test_verify_with_malformed_hash_fails(self) -> None:
        assert verify_password("anything", "not-a-hash") is False

    def test_malformed_hash_needs_rehash(self) -> None:
        assert needs_rehash("not-a-hash") is True
        assert needs_rehash(hash_password("Correct-Horse-1")) is False


class TestPasswordStrength:
    """パスワード強度"""

    def test_strong_password_has_no_errors(self) -> None:
        assert validate_password_strength("Str0ngPassword") == []

    def test_weak_password_reports_each_requirement(self) -> None:
        errors = validate_password_strength("short")

        assert any("12 characters" in e for e in errors)
        assert any("uppercase" in e for e in errors)
        assert any("number" in e for e in errors)
        assert not any("lowercase" in e for e in errors)
