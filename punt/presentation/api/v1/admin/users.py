from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import User
from punt.infrastructure.events import USERS_CHANNEL
from punt.infrastructure.repositories.user_repository import UserService
from punt.presentation.api.deps import (
    EventPublisher,
    get_publisher,
    rate_limit,
    require_admin,
    require_reauth,
)
from punt.presentation.schemas.admin import (
    AdminCreateUserRequest,
    AdminUpdateUserRequest,
    ReauthRequest,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.users import UserDetail

router = APIRouter(dependencies=[Depends(rate_limit("admin/users"))])


@router.get("", response_model=list[UserDetail])
def list_users(
    q: Optional[str] = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> list[UserDetail]:
    """無効化されたユーザーを含む全ユーザー"""
    return [UserDetail.from_user(u) for u in UserService(db).list_all(q)]


@router.post("", response_model=UserDetail, status_code=status.HTTP_201_CREATED)
def create_user(
    body: AdminCreateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> UserDetail:
    user = UserService(db).create_user(
        body.username,
        body.name or body.username,
        body.password,
        email=body.email,
        is_system_admin=body.is_system_admin,
    )
    return UserDetail.from_user(user)


@router.patch("/{username}", response_model=UserDetail)
def update_user(
    username: str,
    body: AdminUpdateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    publisher: EventPublisher = Depends(get_publisher),
) -> UserDetail:
    """
    ユーザー更新

    権限・有効状態の変更には再認証が必要。
    無効化・パスワード変更を行うと対象ユーザーの全セッションが失効する。
    """
    service = UserService(db)
    target = service.require_by_username(username)
    if body.reauth_required():
        require_reauth(db, admin, body)
    user = service.admin_update(target, body.changes())
    detail = UserDetail.from_user(user)
    publisher.publish(
        USERS_CHANNEL,
        "user.updated",
        user={
            "id": detail.id,
            "username": detail.username,
            "name": detail.name,
            "avatar": detail.avatar,
        },
    )
    return detail


@router.delete("/{username}", response_model=SuccessResponse)
def delete_user(
    username: str,
    permanent: bool = Query(default=False),
    body: Optional[ReauthRequest] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> SuccessResponse:
    """
    ユーザー削除

    既定では無効化のみ。permanent=true で完全に削除する。
    操作する管理者の再認証（confirmPassword）が必要。
    """
    service = UserService(db)
    target = service.require_by_username(username)
    require_reauth(db, admin, body or ReauthRequest())
    service.admin_delete(admin, target, permanent)
    return SuccessResponse()
