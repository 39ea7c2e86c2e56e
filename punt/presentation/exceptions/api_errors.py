"""
Presentation層のAPIエラークラス

ドメインエラーをHTTPステータスと標準エラーボディに変換する。
"""

from typing import Any, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel

from ...domain.exceptions import (
    BadRequestError,
    ConflictError,
    DomainError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    TooManyConnectionsError,
    UnauthorizedError,
)


class ErrorResponse(BaseModel):
    """
    標準エラーレスポンス

    Attributes:
        status: ステータス（常に"error"）
        code: エラーコード
        message: エラーメッセージ
        details: エラーの詳細情報（オプション）
    """

    status: str = "error"
    code: str
    message: str
    details: Optional[list[dict[str, Any]] | dict[str, Any]] = None


class APIError(HTTPException):
    """
    API エラーの基底クラス

    Attributes:
        status_code: HTTPステータスコード
        error_code: エラーコード
        error_message: エラーメッセージ
        details: エラーの詳細情報
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal_server_error"
    error_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[list[dict[str, Any]] | dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.error_message = message or self.error_message
        self.details = details
        super().__init__(
            status_code=self.status_code, detail=self.error_message, headers=headers
        )

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            code=self.error_code, message=self.error_message, details=self.details
        )


# サブクラスは継承元のステータスを引き継ぐ（ValidationError, BackupError は400）
STATUS_MAP: dict[type[DomainError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    BadRequestError: status.HTTP_400_BAD_REQUEST,
    UnauthorizedError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    RateLimitError: status.HTTP_429_TOO_MANY_REQUESTS,
    TooManyConnectionsError: status.HTTP_429_TOO_MANY_REQUESTS,
}


def _status_for(domain_error: DomainError) -> int:
    for cls in type(domain_error).__mro__:
        if cls in STATUS_MAP:
            return STATUS_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _headers_for(domain_error: DomainError) -> Optional[dict[str, str]]:
    if not isinstance(domain_error, RateLimitError):
        return None
    reset = int(domain_error.reset_at.timestamp())
    return {
        "X-RateLimit-Remaining": str(domain_error.remaining),
        "X-RateLimit-Reset": str(reset),
    }


def domain_error_to_api_error(domain_error: DomainError) -> APIError:
    """
    ドメインエラーをAPIエラーに変換

    Args:
        domain_error: ドメイン層のエラー

    Returns:
        APIError: API層のエラー

    Examples:
        >>> from punt.domain.exceptions import ConflictError
        >>> api_err = domain_error_to_api_error(ConflictError("Project key already exists"))
        >>> api_err.status_code
        409
    """
    api_error = APIError(
        message=domain_error.message,
        details=domain_error.details,
        headers=_headers_for(domain_error),
    )
    api_error.status_code = _status_for(domain_error)
    api_error.error_code = domain_error.code
    api_error.error_message = domain_error.message

    return api_error
