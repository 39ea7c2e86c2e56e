"""
APIルート共通のdependency

- セッション / APIキーによる認証
- レート制限
- プロジェクトの解決と権限チェック
- リアルタイムイベントの発行
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Depends, Header, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from punt.core.config import get_settings
from punt.domain.exceptions import BadRequestError, ForbiddenError, UnauthorizedError
from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import Project, User
from punt.infrastructure.events import build_event, get_broker, project_channel
from punt.infrastructure.repositories.permission_repository import (
    EffectivePermissions,
    PermissionService,
)
from punt.infrastructure.repositories.project_repository import ProjectService
from punt.infrastructure.repositories.rate_limit_repository import RateLimitService
from punt.infrastructure.repositories.user_repository import UserService
from punt.presentation.schemas.admin import ReauthRequest
from punt.utils.session_helper import get_client_ip

# ツール連携クライアントはどちらのヘッダーでもAPIキーを送れる
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
mcp_api_key_header = APIKeyHeader(name="X-MCP-API-Key", auto_error=False)


def get_session(request: Request) -> dict[str, Any]:
    """
    セッションデータを取得するdependency

    DB未設定、Cookie無し、期限切れの場合は空の辞書。
    """
    session = getattr(request.state, "session", None)
    return session if session is not None else {}


def get_current_user_optional(
    request: Request,
    db: Session = Depends(get_db),
    api_key: Optional[str] = Security(api_key_header),
    mcp_api_key: Optional[str] = Security(mcp_api_key_header),
) -> Optional[User]:
    """
    ログイン中のユーザーを取得する（未ログインならNone）

    APIキーヘッダーがあればそちらを優先し、無ければセッションの user_id を使う。
    """
    service = UserService(db)

    key = api_key or mcp_api_key
    if key:
        return service.get_by_api_key(key)

    user_id = get_session(request).get("user_id")
    if not user_id:
        return None
    user = service.get(user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """
    ログインを要求するdependency

    Raises:
        UnauthorizedError: 未ログインの場合
    """
    if user is None:
        raise UnauthorizedError("Unauthorized")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """システム管理者を要求するdependency"""
    if not user.is_system_admin:
        raise ForbiddenError("Admin access required")
    return user


def require_reauth(db: Session, user: User, body: ReauthRequest) -> None:
    """
    機密操作の前にパスワード（2FA有効時はコードも）を再確認する

    Raises:
        BadRequestError: confirmPassword が無い場合
        UnauthorizedError: 再認証に失敗した場合（コード未入力は details.requires2fa）
    """
    if not body.confirm_password:
        raise BadRequestError("Password is required to confirm this action")
    UserService(db).verify_reauth(
        user, body.confirm_password, body.totp_code, body.is_recovery_code
    )


def rate_limit(endpoint: str) -> Callable[..., None]:
    """
    レート制限dependencyを生成する

    Args:
        endpoint: RATE_LIMITS のキー（"auth/login"など）

    Examples:
        >>> @router.post("/login", dependencies=[Depends(rate_limit("auth/login"))])
    """

    def check_rate_limit(request: Request, db: Session = Depends(get_db)) -> None:
        if not get_settings().RATE_LIMIT_ENABLED:
            return
        RateLimitService(db).enforce(get_client_ip(request) or "unknown", endpoint)

    return check_rate_limit


def get_tab_id(x_tab_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """操作元のブラウザタブ（自分の操作のエコーを無視するため）"""
    return x_tab_id


@dataclass
class EventPublisher:
    """ログインユーザーの操作としてイベントを発行する"""

    user_id: str
    tab_id: Optional[str] = None

    def publish(self, channel: str, event_type: str, **payload: Any) -> None:
        get_broker().publish(
            channel, build_event(event_type, self.user_id, self.tab_id, **payload)
        )

    def project(self, project_id: str, event_type: str, **payload: Any) -> None:
        self.publish(project_channel(project_id), event_type, projectId=project_id, **payload)


def get_publisher(
    user: User = Depends(get_current_user),
    tab_id: Optional[str] = Depends(get_tab_id),
) -> EventPublisher:
    return EventPublisher(user_id=user.id, tab_id=tab_id)


@dataclass
class ProjectContext:
    """
    パスの projectId（IDまたはキー）から解決したプロジェクトと実効権限
    """

    db: Session
    user: User
    project: Project
    access: EffectivePermissions

    def require(self, *permissions: str) -> None:
        """
        いずれかの権限を要求する

        Raises:
            ForbiddenError: 権限が無い場合
        """
        if not any(p in self.access.permissions for p in permissions):
            raise ForbiddenError(f"Missing permission: {permissions[0]}")

    def can(self, permission: str) -> bool:
        return permission in self.access.permissions


def get_project_context(
    project_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ProjectContext:
    """
    プロジェクトを解決し、メンバーであることを要求するdependency

    Raises:
        NotFoundError: プロジェクトが存在しない場合
        ForbiddenError: メンバーでない場合
    """
    project = ProjectService(db).resolve(project_id)
    access = PermissionService(db).require_membership(user, project.id)
    return ProjectContext(db=db, user=user, project=project, access=access)
