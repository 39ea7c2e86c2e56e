"""テスト用ヘルパー関数"""

from typing import Any, Optional

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from punt.infrastructure.database.models import User
from punt.infrastructure.repositories.user_repository import UserService

DEFAULT_PASSWORD = "Str0ngPassword!"


def create_user(
    db: Session,
    username: str,
    password: str = DEFAULT_PASSWORD,
    is_system_admin: bool = False,
    email: Optional[str] = None,
) -> User:
    """
    ユーザーを直接作成する。

    Args:
        db: DBセッション
        username: ユーザー名
        password: パスワード（強度要件を満たすこと）
        is_system_admin: システム管理者にするか

    Returns:
        作成したユーザー
    """
    return UserService(db).create_user(
        username, username.capitalize(), password, email, is_system_admin=is_system_admin
    )


def login(client: TestClient, username: str, password: str = DEFAULT_PASSWORD) -> dict[str, Any]:
    """ログインしてレスポンスJSONを返す（セッションCookieはclientに保存される）"""
    response = client.post(
        "/api/auth/login", json={"username": username, "password": password}
    )
    assert response.status_code == 200, response.text
    return response.json()


def create_project(
    client: TestClient, key: str = "PUNT", name: str = "Punt Project"
) -> dict[str, Any]:
    """APIでプロジェクトを作成する"""
    response = client.post("/api/projects", json={"name": name, "key": key})
    assert response.status_code == 201, response.text
    return response.json()


def create_ticket(
    client: TestClient, project_id: str, title: str = "Ticket", **fields: Any
) -> dict[str, Any]:
    """APIでチケットを作成する"""
    response = client.post(
        f"/api/projects/{project_id}/tickets", json={"title": title, **fields}
    )
    assert response.status_code == 201, response.text
    return response.json()


def list_columns(client: TestClient, project_id: str) -> list[dict[str, Any]]:
    response = client.get(f"/api/projects/{project_id}/columns")
    assert response.status_code == 200, response.text
    return response.json()
