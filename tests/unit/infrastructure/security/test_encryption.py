"""
セッション暗号化・トークン生成の単体テスト
"""

from unittest.mock import Mock, patch

import pytest
from cryptography.fernet import Fernet

from punt.infrastructure.security.encryption import (
    SessionCipher,
    derive_session_key,
    fingerprint_matches,
    generate_api_key,
    generate_token,
    get_session_cipher,
    session_fingerprint,
)


class TestSessionCipher:
    """SessionCipherクラスのテスト"""

    def test_encryption_and_decryption(self) -> None:
        """暗号化と復号化が正しく動作すること"""
        cipher = SessionCipher(Fernet.generate_key().decode())

        assert cipher.enabled is True

        data = {"user_id": "u-1", "pending_2fa_at": 1700000000}
        encrypted = cipher.encrypt(data)

        assert "u-1" not in encrypted
        assert cipher.decrypt(encrypted) == data

    def test_invalid_data_decryption_fails(self) -> None:
        """無効なデータの復号化は ValueError になること"""
        cipher = SessionCipher(Fernet.generate_key().decode())

        with pytest.raises(ValueError):
            cipher.decrypt("invalid-encrypted-data")

    def test_other_key_cannot_decrypt(self) -> None:
        encrypted = SessionCipher(Fernet.generate_key().decode()).encrypt({"a": 1})
        other = SessionCipher(Fernet.generate_key().decode())

        with pytest.raises(ValueError):
            other.decrypt(encrypted)

    def test_plaintext_without_key(self) -> None:
        cipher = SessionCipher(None)

        assert cipher.enabled is False
        assert cipher.decrypt(cipher.encrypt({"user_id": "u-1"})) == {"user_id": "u-1"}
        with pytest.raises(ValueError):
            cipher.decrypt("[1, 2]")


class TestKeyResolution:
    """鍵の決定"""

    def _settings(self, session_key: str, auth_secret: str) -> Mock:
        return Mock(SESSION_ENCRYPTION_KEY=session_key, AUTH_SECRET=auth_secret)

    def test_derived_from_auth_secret(self) -> None:
        """SESSION_ENCRYPTION_KEY未設定ならAUTH_SECRETから導出した鍵で暗号化すること"""
        get_session_cipher.cache_clear()
        try:
            with patch(
                "punt.infrastructure.security.encryption.get_settings",
                return_value=self._settings("", "master-secret"),
            ):
                cipher = get_session_cipher()
        finally:
            get_session_cipher.cache_clear()

        assert cipher.enabled is True
        encrypted = cipher.encrypt({"a": 1})
        assert SessionCipher(derive_session_key("master-secret")).decrypt(encrypted) == {
            "a": 1
        }

    def test_unencrypted_without_secrets(self) -> None:
        get_session_cipher.cache_clear()
        try:
            with patch(
                "punt.infrastructure.security.encryption.get_settings",
                return_value=self._settings("", ""),
            ):
                cipher = get_session_cipher()
        finally:
            get_session_cipher.cache_clear()

        assert cipher.enabled is False

    def test_derived_key_differs_per_secret(self) -> None:
        assert derive_session_key("one") != derive_session_key("two")


class TestTokens:
    """トークン生成"""

    def test_token_is_random_hex(self) -> None:
        first, second = generate_token(), generate_token()

        assert len(first) == 64
        assert int(first, 16) >= 0
        assert first != second

    def test_api_key_prefix(self) -> None:
        """APIキーは punt_ で始まること"""
        key = generate_api_key()

        assert key.startswith("punt_")
        assert len(key) > 40


class TestFingerprint:
    """セッションフィンガープリントのテスト"""

    def test_fingerprint_validation(self) -> None:
        fingerprint = session_fingerprint("Mozilla/5.0", "127.0.0.1")

        assert len(fingerprint) == 64
        assert fingerprint_matches(fingerprint, "Mozilla/5.0", "127.0.0.1") is True
        assert fingerprint_matches(fingerprint, "Chrome/90.0", "127.0.0.1") is False
        assert fingerprint_matches(fingerprint, "Mozilla/5.0", "192.168.1.1") is False

    def test_missing_values(self) -> None:
        assert session_fingerprint(None, None) == session_fingerprint("unknown", "unknown")
