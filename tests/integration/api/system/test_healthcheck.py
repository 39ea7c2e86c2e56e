"""
システムヘルスチェックエンドポイントの統合テスト
"""

from fastapi.testclient import TestClient


class TestHealthCheck:
    """ヘルスチェックエンドポイントのテスト"""

    def test_healthcheck_success(self, client: TestClient) -> None:
        response = client.get("/api/system/healthcheck/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert data["uptime_seconds"] >= 0.0
        assert data["environment"] == "test"
        assert data["sse_connections"] == 0
        assert data["database"] == {
            "status": "healthy",
            "connection": True,
            "error": None,
        }

    def test_healthcheck_without_login(self, client: TestClient) -> None:
        """ヘルスチェックは未ログインでも利用できること"""
        client.cookies.clear()
        assert client.get("/api/system/healthcheck/").status_code == 200
