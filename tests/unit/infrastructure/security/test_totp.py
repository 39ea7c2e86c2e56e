"""
TOTP 2要素認証の単体テスト
"""

import re

import pyotp

from punt.infrastructure.security.totp import (
    count_remaining_recovery_codes,
    decrypt_totp_secret,
    encrypt_totp_secret,
    generate_qr_code_data_url,
    generate_recovery_codes,
    generate_totp_secret,
    generate_totp_uri,
    hash_recovery_codes,
    mark_recovery_code_used,
    verify_recovery_code,
    verify_totp_token,
)


class TestTotpSecret:
    """シークレットの暗号化と検証"""

    def test_encrypt_and_decrypt(self) -> None:
        secret = generate_totp_secret()
        encrypted = encrypt_totp_secret(secret)

        assert encrypted != secret
        assert decrypt_totp_secret(encrypted) == secret

    def test_decrypt_garbage_returns_none(self) -> None:
        """復号できない値はNoneになること"""
        assert decrypt_totp_secret("garbage") is None

    def test_verify_current_token(self) -> None:
        secret = generate_totp_secret()
        token = pyotp.TOTP(secret).now()

        assert verify_totp_token(token, secret) is True
        assert verify_totp_token(f"{token[:3]} {token[3:]}", secret) is True

    def test_verify_rejects_non_digits(self) -> None:
        secret = generate_totp_secret()
        assert verify_totp_token("abcdef", secret) is False

    def test_uri_contains_issuer_and_username(self) -> None:
        uri = generate_totp_uri(generate_totp_secret(), "alice", issuer="PUNT")

        assert uri.startswith("otpauth://totp/")
        assert "alice" in uri
        assert "issuer=PUNT" in uri

    def test_qr_code_is_png_data_url(self) -> None:
        data_url = generate_qr_code_data_url("otpauth://totp/PUNT:alice?secret=ABC")
        assert data_url.startswith("data:image/png;base64,")


class TestRecoveryCodes:
    """リカバリーコード"""

    def test_generate_format(self) -> None:
        codes = generate_recovery_codes()

        assert len(codes) == 8
        for code in codes:
            assert re.fullmatch(r"[0-9A-F]{5}-[0-9A-F]{5}", code)

    def test_verify_and_consume(self) -> None:
        """使用済みのコードは再利用できないこと"""
        codes = generate_recovery_codes(3)
        hashed = hash_recovery_codes(codes)

        index = verify_recovery_code(codes[1].lower(), hashed)
        assert index == 1

        hashed = mark_recovery_code_used(hashed, index)
        assert count_remaining_recovery_codes(hashed) == 2
        assert verify_recovery_code(codes[1], hashed) == -1

    def test_unknown_code(self) -> None:
        hashed = hash_recovery_codes(generate_recovery_codes(2))
        assert verify_recovery_code("00000-00000", hashed) == -1

    def test_non_list_codes(self) -> None:
        assert count_remaining_recovery_codes(None) == 0
        assert verify_recovery_code("00000-00000", "broken") == -1
