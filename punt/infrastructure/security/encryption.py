"""
セッションの暗号化とトークン生成

セッションデータはFernetで暗号化してDBに保存する。
鍵は SESSION_ENCRYPTION_KEY、未設定なら AUTH_SECRET からHKDFで導出する。
どちらも無い場合（開発環境）は平文のJSONで保存する。
"""

import base64
import hashlib
import json
import secrets
from functools import lru_cache
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from punt.core.config import get_settings
from punt.core.logging import get_logger

logger = get_logger(__name__)

HKDF_INFO = b"punt-session-encryption"
API_KEY_PREFIX = "punt_"


def derive_session_key(auth_secret: str) -> str:
    """AUTH_SECRETからセッション用のFernetキーを導出する（TOTP用とはinfoで分離）"""
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=HKDF_INFO)
    return base64.urlsafe_b64encode(hkdf.derive(auth_secret.encode("utf-8"))).decode()


class SessionCipher:
    """
    セッションデータ（dict）の暗号化と復号

    keyがNoneなら平文のJSONをそのまま扱う。
    """

    def __init__(self, key: Optional[str]):
        self.fernet = Fernet(key.encode()) if key else None

    @property
    def enabled(self) -> bool:
        return self.fernet is not None

    def encrypt(self, data: dict[str, Any]) -> str:
        payload = json.dumps(data, ensure_ascii=False)
        if self.fernet is None:
            return payload
        return self.fernet.encrypt(payload.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> dict[str, Any]:
        """
        Raises:
            ValueError: 鍵が違う、または改ざん・破損している場合
        """
        try:
            if self.fernet is None:
                raw = token
            else:
                raw = self.fernet.decrypt(token.encode("utf-8")).decode("utf-8")
            data = json.loads(raw)
        except (InvalidToken, ValueError) as e:
            raise ValueError("Invalid or corrupted session data") from e
        if not isinstance(data, dict):
            raise ValueError("Invalid or corrupted session data")
        return data


@lru_cache
def get_session_cipher() -> SessionCipher:
    settings = get_settings()
    if settings.SESSION_ENCRYPTION_KEY:
        return SessionCipher(settings.SESSION_ENCRYPTION_KEY)
    if settings.AUTH_SECRET:
        logger.info("Session key derived from AUTH_SECRET")
        return SessionCipher(derive_session_key(settings.AUTH_SECRET))
    logger.warning("Sessions are stored unencrypted (no SESSION_ENCRYPTION_KEY or AUTH_SECRET)")
    return SessionCipher(None)


def generate_token() -> str:
    """セッションID・CSRFトークン用の64文字のHEX文字列"""
    return secrets.token_hex(32)


def generate_api_key() -> str:
    """X-API-Key で使う "punt_" 付きのAPIキー"""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def session_fingerprint(user_agent: Optional[str], client_ip: Optional[str]) -> str:
    """
    User-AgentとクライアントIPのSHA256

    TRUST_PROXY無効時のclient_ipは接続元アドレスになる。
    """
    source = f"{user_agent or 'unknown'}|{client_ip or 'unknown'}"
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


def fingerprint_matches(
    stored: str, user_agent: Optional[str], client_ip: Optional[str]
) -> bool:
    return secrets.compare_digest(stored, session_fingerprint(user_agent, client_ip))
