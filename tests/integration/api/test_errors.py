"""
APIエラーハンドリングの統合テスト
"""

from typing import Any

from fastapi.testclient import TestClient


class TestErrorHandling:
    """標準エラーボディ {status, code, message, details}"""

    def test_404_not_found(self, client: TestClient) -> None:
        response = client.get("/api/nonexistent")

        assert response.status_code == 404
        data: Any = response.json()
        assert data["status"] == "error"
        assert "message" in data

    def test_405_method_not_allowed(self, client: TestClient) -> None:
        """ヘルスチェックはGETのみ許可"""
        response = client.post("/api/system/healthcheck/")
        assert response.status_code == 405

    def test_unauthorized(self, client: TestClient) -> None:
        response = client.get("/api/me")

        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_invalid_body_is_400(self, client: TestClient) -> None:
        """リクエストボディの検証エラーは400 validation_error"""
        response = client.post("/api/auth/login", json={"username": "admin"})

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "validation_error"
        assert isinstance(data["details"], list)
