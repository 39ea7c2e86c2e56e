"""
APIキー認証とイベントストリームの統合テスト
"""

from typing import Callable

from fastapi.testclient import TestClient

from punt.infrastructure.database.models import User
from tests.helpers import create_project, login


class TestApiKeyAuth:
    """X-API-Key / X-MCP-API-Key ヘッダーによる認証"""

    def _issue_key(self, client: TestClient) -> str:
        response = client.post("/api/me/api-key")
        assert response.status_code == 200
        return response.json()["apiKey"]

    def test_issue_key(self, client: TestClient, regular_user: User) -> None:
        login(client, "alice")

        api_key = self._issue_key(client)

        assert api_key.startswith("punt_")
        assert client.get("/api/me").json()["hasApiKey"] is True

    def test_both_headers_authenticate(
        self,
        client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        login(client, "alice")
        api_key = self._issue_key(client)
        anonymous = make_client()

        for header in ("X-API-Key", "X-MCP-API-Key"):
            response = anonymous.get("/api/me", headers={header: api_key})
            assert response.status_code == 200
            assert response.json()["username"] == "alice"

    def test_reissue_invalidates_old_key(
        self,
        client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        login(client, "alice")
        old_key = self._issue_key(client)
        new_key = self._issue_key(client)
        anonymous = make_client()

        assert anonymous.get("/api/me", headers={"X-API-Key": old_key}).status_code == 401
        assert anonymous.get("/api/me", headers={"X-API-Key": new_key}).status_code == 200

    def test_revoke_key(
        self,
        client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        login(client, "alice")
        api_key = self._issue_key(client)

        assert client.delete("/api/me/api-key").json() == {"success": True}
        response = make_client().get("/api/me", headers={"X-API-Key": api_key})
        assert response.status_code == 401

    def test_api_key_can_create_project(
        self,
        admin_client: TestClient,
        make_client: Callable[[], TestClient],
    ) -> None:
        api_key = self._issue_key(admin_client)
        tool = make_client()
        tool.headers["X-API-Key"] = api_key

        project = create_project(tool, key="MCP", name="Automation")

        assert project["key"] == "MCP"


class TestEventStreams:
    def test_streams_require_login(self, client: TestClient) -> None:
        """未ログインではSSEに接続できないこと"""
        assert client.get("/api/users/events").status_code == 401
        assert client.get("/api/projects/events").status_code == 401

    def test_project_stream_requires_membership(
        self,
        admin_client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        project = create_project(admin_client)
        outsider = make_client()
        login(outsider, "alice")

        response = outsider.get(f"/api/projects/{project['id']}/events")

        assert response.status_code == 403
