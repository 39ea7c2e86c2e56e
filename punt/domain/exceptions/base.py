"""
ドメイン層の例外クラス

ビジネスロジックで発生するエラーを表現する純粋なPython例外。
フレームワークに依存しない。
"""

from datetime import datetime
from typing import Any, Optional


class DomainError(Exception):
    """
    ドメイン層のベース例外

    ビジネスロジックで発生するエラーを表現する純粋なPython例外。
    フレームワークに依存しない。

    Attributes:
        message: エラーメッセージ
        code: エラーコード（識別子）
        details: エラーの詳細情報（オプション）
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: Optional[dict[str, Any] | list[dict[str, Any]]] = None,
    ) -> None:
        """
        Args:
            message: エラーメッセージ
            code: エラーコード
            details: エラーの詳細情報（オプション）
        """
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)


class NotFoundError(DomainError):
    """リソースが見つからない場合のエラー"""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code="not_found", details=details)


class BadRequestError(DomainError):
    """不正なリクエストエラー"""

    def __init__(
        self,
        message: str = "Bad request",
        details: Optional[dict[str, Any] | list[dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message=message, code="bad_request", details=details)


class UnauthorizedError(DomainError):
    """認証エラー"""

    def __init__(
        self,
        message: str = "Authentication required",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code="unauthorized", details=details)


class ForbiddenError(DomainError):
    """アクセス権限エラー"""

    def __init__(
        self,
        message: str = "Access forbidden",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code="forbidden", details=details)


class ConflictError(DomainError):
    """
    競合エラー

    一意制約に反する作成・更新（プロジェクトキーやユーザー名の重複など）で使用する。
    """

    def __init__(
        self,
        message: str = "Resource already exists",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code="conflict", details=details)


class RateLimitError(DomainError):
    """
    レート制限エラー

    Attributes:
        remaining: 残りリクエスト数（常に0）
        reset_at: 制限ウィンドウがリセットされる時刻
    """

    def __init__(
        self,
        reset_at: datetime,
        message: str = "Too many requests. Please try again later.",
        remaining: int = 0,
    ) -> None:
        """
        Args:
            reset_at: 制限がリセットされる時刻
            message: エラーメッセージ
            remaining: 残りリクエスト数
        """
        super().__init__(message=message, code="rate_limited", details=None)
        self.reset_at = reset_at
        self.remaining = remaining


class ValidationError(BadRequestError):
    """バリデーションエラー"""

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[dict[str, Any] | list[dict[str, Any]]] = None,
    ) -> None:
        """
        Args:
            message: エラーメッセージ
            details: エラーの詳細情報（オプション）
                    リストまたは辞書形式で複数のバリデーションエラーを含められる
        """
        super().__init__(message=message, details=details)
        self.code = "validation_error"


class BackupError(BadRequestError):
    """
    バックアップファイルの解析・検証エラー

    メッセージはそのままクライアントに返される。
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message)
        self.code = "invalid_backup"


class TooManyConnectionsError(DomainError):
    """リアルタイム接続数の上限超過"""

    def __init__(self, message: str = "Too many connections") -> None:
        super().__init__(message=message, code="too_many_connections")
