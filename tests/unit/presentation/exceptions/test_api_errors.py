"""
Presentation層APIエラークラスの単体テスト
"""

from datetime import datetime, timezone

from fastapi import status

from punt.domain.exceptions import (
    BackupError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    TooManyConnectionsError,
    UnauthorizedError,
    ValidationError,
)
from punt.presentation.exceptions import (
    APIError,
    ErrorResponse,
    domain_error_to_api_error,
)


class TestAPIError:
    """APIError基底クラスのテスト"""

    def test_api_error_default(self) -> None:
        error = APIError()

        assert error.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert error.error_code == "internal_server_error"
        assert error.details is None

    def test_api_error_to_response(self) -> None:
        """ErrorResponse形式に変換できること"""
        error = APIError(message="Sprint failed", details={"sprintId": "s-1"})

        response = error.to_response()

        assert isinstance(response, ErrorResponse)
        assert response.status == "error"
        assert response.message == "Sprint failed"
        assert response.details == {"sprintId": "s-1"}


class TestDomainErrorToAPIError:
    """domain_error_to_api_error関数のテスト"""

    def test_status_codes(self) -> None:
        """ドメインエラーの種類ごとにHTTPステータスが決まること"""
        cases = [
            (NotFoundError("Ticket not found"), 404, "not_found"),
            (BadRequestError("Invalid column"), 400, "bad_request"),
            (UnauthorizedError("Invalid credentials"), 401, "unauthorized"),
            (ForbiddenError("Missing permission"), 403, "forbidden"),
            (ConflictError("Project key already exists"), 409, "conflict"),
            (TooManyConnectionsError(), 429, "too_many_connections"),
        ]
        for domain_error, expected_status, expected_code in cases:
            api_error = domain_error_to_api_error(domain_error)

            assert api_error.status_code == expected_status
            assert api_error.error_code == expected_code
            assert api_error.error_message == domain_error.message

    def test_subclasses_inherit_status(self) -> None:
        """ValidationError / BackupError は400になること"""
        details = [{"field": "password", "message": "Too short"}]
        validation = domain_error_to_api_error(ValidationError(details=details))
        backup = domain_error_to_api_error(BackupError("Invalid JSON format"))

        assert validation.status_code == status.HTTP_400_BAD_REQUEST
        assert validation.error_code == "validation_error"
        assert validation.details == details
        assert backup.status_code == status.HTTP_400_BAD_REQUEST
        assert backup.error_code == "invalid_backup"

    def test_rate_limit_headers(self) -> None:
        """レート制限エラーには X-RateLimit ヘッダーが付くこと"""
        reset_at = datetime(2030, 1, 1, tzinfo=timezone.utc)

        api_error = domain_error_to_api_error(RateLimitError(reset_at=reset_at))

        assert api_error.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert api_error.headers == {
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(reset_at.timestamp())),
        }

    def test_other_errors_have_no_headers(self) -> None:
        assert domain_error_to_api_error(NotFoundError()).headers is None
