"""
Domain層例外クラスの単体テスト
"""

from datetime import datetime, timezone

from punt.domain.exceptions import (
    BackupError,
    BadRequestError,
    ConflictError,
    DomainError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    TooManyConnectionsError,
    UnauthorizedError,
    ValidationError,
)


class TestDomainError:
    """DomainError基底クラスのテスト"""

    def test_domain_error_creation(self) -> None:
        """DomainErrorを作成できること"""
        error = DomainError(
            message="Test error", code="test_error", details={"key": "value"}
        )

        assert error.message == "Test error"
        assert error.code == "test_error"
        assert error.details == {"key": "value"}
        assert str(error) == "Test error"


class TestSpecificErrors:
    """特定のドメインエラークラスのテスト"""

    def test_default_messages(self) -> None:
        """各エラーが既定のメッセージとコードを持つこと"""
        assert NotFoundError().code == "not_found"
        assert NotFoundError().message == "Resource not found"
        assert BadRequestError().code == "bad_request"
        assert UnauthorizedError().code == "unauthorized"
        assert ForbiddenError().code == "forbidden"
        assert ConflictError().code == "conflict"
        assert TooManyConnectionsError().code == "too_many_connections"

    def test_unauthorized_error_with_details(self) -> None:
        """2FAが必要なことを details で伝えられること"""
        error = UnauthorizedError("2FA code required", details={"requires2fa": True})

        assert error.message == "2FA code required"
        assert error.details == {"requires2fa": True}

    def test_rate_limit_error_keeps_reset_time(self) -> None:
        """RateLimitErrorがリセット時刻を保持すること"""
        reset_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
        error = RateLimitError(reset_at=reset_at)

        assert error.code == "rate_limited"
        assert error.reset_at == reset_at
        assert error.remaining == 0

    def test_backup_error_code(self) -> None:
        """BackupErrorが invalid_backup コードを持つこと"""
        error = BackupError("Invalid backup file")

        assert error.code == "invalid_backup"
        assert error.message == "Invalid backup file"


class TestErrorInheritance:
    """エラークラスの継承関係のテスト"""

    def test_bad_request_subclasses(self) -> None:
        """ValidationErrorとBackupErrorがBadRequestErrorを継承していること"""
        assert isinstance(ValidationError(), BadRequestError)
        assert isinstance(BackupError("x"), BadRequestError)

    def test_all_errors_are_domain_errors(self) -> None:
        """すべてのエラーがDomainErrorを継承していること"""
        errors = [
            NotFoundError(),
            BadRequestError(),
            UnauthorizedError(),
            ForbiddenError(),
            ConflictError(),
            ValidationError(),
            TooManyConnectionsError(),
            RateLimitError(reset_at=datetime.now(timezone.utc)),
        ]

        for error in errors:
            assert isinstance(error, DomainError)
