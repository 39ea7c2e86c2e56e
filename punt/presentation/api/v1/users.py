from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import User
from punt.infrastructure.events import USERS_CHANNEL
from punt.infrastructure.repositories.user_repository import UserService
from punt.presentation.api.deps import get_current_user
from punt.presentation.api.sse import event_stream_response
from punt.presentation.schemas.users import UserSummary

router = APIRouter()


@router.get("", response_model=list[UserSummary])
def search_users(
    q: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[UserSummary]:
    """ユーザー名・表示名の部分一致で有効なユーザーを検索する"""
    return [UserSummary.model_validate(u) for u in UserService(db).search(q, limit)]


@router.get("/events")
async def user_events(
    request: Request, user: User = Depends(get_current_user)
) -> StreamingResponse:
    """ユーザープロフィール変更のSSEストリーム"""
    return event_stream_response(request, [USERS_CHANNEL], user.id)


@router.get("/{username}", response_model=UserSummary)
def get_user(
    username: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UserSummary:
    return UserSummary.model_validate(UserService(db).require_by_username(username))
