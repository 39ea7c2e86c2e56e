"""
バックアップのパスワード暗号化

AES-256-GCM + PBKDF2-HMAC-SHA256（100,000回）。
各フィールドはbase64文字列で表現する。
"""

import base64
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

KEY_LENGTH = 32
IV_LENGTH = 12
SALT_LENGTH = 32
AUTH_TAG_LENGTH = 16
PBKDF2_ITERATIONS = 100_000


@dataclass(frozen=True)
class EncryptedPayload:
    """暗号化結果（すべてbase64）"""

    ciphertext: str
    salt: str
    iv: str
    auth_tag: str


class DecryptionError(Exception):
    """パスワード誤り、または改ざん・破損"""


def _derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: str, password: str) -> EncryptedPayload:
    """
    文字列をパスワードで暗号化する

    Args:
        plaintext: 暗号化する文字列
        password: 鍵導出に使うパスワード

    Returns:
        EncryptedPayload
    """
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_derive_key(password, salt)).encrypt(
        iv, plaintext.encode("utf-8"), None
    )
    # AESGCMは暗号文の末尾に認証タグを連結して返す
    ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]

    return EncryptedPayload(
        ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        salt=base64.b64encode(salt).decode("ascii"),
        iv=base64.b64encode(iv).decode("ascii"),
        auth_tag=base64.b64encode(auth_tag).decode("ascii"),
    )


def decrypt(payload: EncryptedPayload, password: str) -> str:
    """
    encrypt() で暗号化した文字列を復号する

    Raises:
        DecryptionError: パスワード誤り、またはデータ破損
    """
    try:
        ciphertext = base64.b64decode(payload.ciphertext, validate=True)
        salt = base64.b64decode(payload.salt, validate=True)
        iv = base64.b64decode(payload.iv, validate=True)
        auth_tag = base64.b64decode(payload.auth_tag, validate=True)
    except ValueError as e:
        raise DecryptionError("Malformed encrypted payload") from e

    if len(iv) != IV_LENGTH or len(auth_tag) != AUTH_TAG_LENGTH:
        raise DecryptionError("Malformed encrypted payload")

    try:
        plaintext = AESGCM(_derive_key(password, salt)).decrypt(
            iv, ciphertext + auth_tag, None
        )
        return plaintext.decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as e:
        raise DecryptionError(
            "Decryption failed: incorrect password or corrupted data"
        ) from e
