"""
認証エンドポイントの統合テスト
"""

from typing import Any

import pyotp
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from punt.infrastructure.database.models import User
from punt.infrastructure.security.totp import RECOVERY_CODE_COUNT
from tests.helpers import DEFAULT_PASSWORD, login


class TestAuthStatus:
    def test_needs_setup_when_no_users(self, client: TestClient) -> None:
        """ユーザーが居なければ初回セットアップが必要"""
        data = client.get("/api/auth/status").json()

        assert data["authenticated"] is False
        assert data["needsSetup"] is True
        assert data["registrationEnabled"] is False
        assert data["user"] is None

    def test_authenticated_status(self, admin_client: TestClient) -> None:
        data = admin_client.get("/api/auth/status").json()

        assert data["authenticated"] is True
        assert data["needsSetup"] is False
        assert data["user"]["username"] == "admin"
        assert data["csrfToken"]


class TestSetup:
    """初回セットアップ"""

    def test_setup_creates_admin(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/setup",
            json={"username": "founder", "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["isSystemAdmin"] is True
        assert client.get("/api/me").json()["username"] == "founder"

    def test_setup_only_once(self, client: TestClient, admin_user: User) -> None:
        response = client.post(
            "/api/auth/setup",
            json={"username": "intruder", "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 403

    def test_setup_rejects_weak_password(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/setup", json={"username": "founder", "password": "short"}
        )

        assert response.status_code == 400


class TestLogin:
    """ログイン・ログアウト"""

    def test_login_and_logout(self, client: TestClient, regular_user: User) -> None:
        data = login(client, "alice")

        assert data["success"] is True
        assert data["requires2fa"] is False
        assert data["user"]["username"] == "alice"
        assert "passwordHash" not in data["user"]
        assert client.get("/api/me").status_code == 200

        assert client.post("/api/auth/logout").json() == {"success": True}
        assert client.get("/api/me").status_code == 401

    def test_wrong_password(self, client: TestClient, regular_user: User) -> None:
        response = client.post(
            "/api/auth/login", json={"username": "alice", "password": "Wr0ngPassword!"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_unknown_user(self, client: TestClient) -> None:
        """存在しないユーザーも同じエラーになること"""
        response = client.post(
            "/api/auth/login", json={"username": "nobody", "password": DEFAULT_PASSWORD}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_disabled_user(
        self, client: TestClient, db_session: Session, regular_user: User
    ) -> None:
        regular_user.is_active = False
        db_session.commit()

        response = client.post(
            "/api/auth/login", json={"username": "alice", "password": DEFAULT_PASSWORD}
        )

        assert response.status_code == 401

    def test_register_disabled(self, client: TestClient, admin_user: User) -> None:
        response = client.post(
            "/api/auth/register",
            json={"username": "newcomer", "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Registration is disabled"


class TestTwoFactorLogin:
    """TOTPによる2段階認証"""

    def _enable_2fa(self, client: TestClient) -> tuple[str, list[str]]:
        setup: Any = client.post("/api/me/2fa/setup").json()
        assert setup["qrCode"].startswith("data:image/png;base64,")
        assert setup["uri"].startswith("otpauth://totp/")

        response = client.post(
            "/api/me/2fa/verify", json={"code": pyotp.TOTP(setup["secret"]).now()}
        )
        assert response.status_code == 200, response.text
        return setup["secret"], response.json()["recoveryCodes"]

    def test_two_factor_flow(
        self, client: TestClient, make_client: Any, regular_user: User
    ) -> None:
        login(client, "alice")
        secret, recovery_codes = self._enable_2fa(client)
        assert len(recovery_codes) == RECOVERY_CODE_COUNT

        other = make_client()
        first_step = login(other, "alice")
        assert first_step["requires2fa"] is True
        assert first_step["user"] is None
        # 2段階目が終わるまではログイン扱いにならない
        assert other.get("/api/me").status_code == 401

        response = other.post(
            "/api/auth/2fa/verify", json={"code": pyotp.TOTP(secret).now()}
        )
        assert response.status_code == 200, response.text
        me = other.get("/api/me").json()
        assert me["totpEnabled"] is True
        assert me["recoveryCodesRemaining"] == RECOVERY_CODE_COUNT

    def test_recovery_code_is_single_use(
        self, client: TestClient, make_client: Any, regular_user: User
    ) -> None:
        login(client, "alice")
        _, recovery_codes = self._enable_2fa(client)

        first = make_client()
        login(first, "alice")
        response = first.post(
            "/api/auth/2fa/verify",
            json={"code": recovery_codes[0], "isRecoveryCode": True},
        )
        assert response.status_code == 200

        second = make_client()
        login(second, "alice")
        response = second.post(
            "/api/auth/2fa/verify",
            json={"code": recovery_codes[0], "isRecoveryCode": True},
        )
        assert response.status_code == 401

    def test_invalid_code(
        self, client: TestClient, make_client: Any, regular_user: User
    ) -> None:
        login(client, "alice")
        self._enable_2fa(client)

        other = make_client()
        login(other, "alice")
        response = other.post("/api/auth/2fa/verify", json={"code": "000000x"})

        assert response.status_code == 401

    def test_verify_without_pending_login(self, client: TestClient) -> None:
        response = client.post("/api/auth/2fa/verify", json={"code": "123456"})

        assert response.status_code == 401

    def test_disable_two_factor(self, client: TestClient, regular_user: User) -> None:
        login(client, "alice")
        secret, _ = self._enable_2fa(client)

        response = client.post(
            "/api/me/2fa/disable",
            json={"password": DEFAULT_PASSWORD, "code": pyotp.TOTP(secret).now()},
        )

        assert response.status_code == 200
        assert client.get("/api/me").json()["totpEnabled"] is False


class TestDeleteAccount:
    """自分のアカウント削除"""

    def test_delete_account(
        self, client: TestClient, admin_user: User, regular_user: User
    ) -> None:
        login(client, "alice")

        response = client.request(
            "DELETE",
            "/api/me/account",
            json={"password": DEFAULT_PASSWORD, "confirmation": "DELETE MY ACCOUNT"},
        )

        assert response.status_code == 200, response.text
        assert client.get("/api/me").status_code == 401
        relogin = client.post(
            "/api/auth/login", json={"username": "alice", "password": DEFAULT_PASSWORD}
        )
        assert relogin.status_code == 401

    def test_requires_confirmation_text(
        self, client: TestClient, regular_user: User
    ) -> None:
        login(client, "alice")

        response = client.request(
            "DELETE",
            "/api/me/account",
            json={"password": DEFAULT_PASSWORD, "confirmation": "delete"},
        )

        assert response.status_code == 400
        assert client.get("/api/me").status_code == 200

    def test_wrong_password(self, client: TestClient, regular_user: User) -> None:
        login(client, "alice")

        response = client.request(
            "DELETE",
            "/api/me/account",
            json={"password": "wrong-password", "confirmation": "DELETE MY ACCOUNT"},
        )

        assert response.status_code == 401
        assert client.get("/api/me").status_code == 200

    def test_only_admin_cannot_delete(self, admin_client: TestClient) -> None:
        response = admin_client.request(
            "DELETE",
            "/api/me/account",
            json={"password": DEFAULT_PASSWORD, "confirmation": "DELETE MY ACCOUNT"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == (
            "Cannot delete the only system administrator account"
        )
