"""
TOTP（時間ベースのワンタイムパスワード）による2要素認証

- シークレットはAUTH_SECRETからHKDFで導出したFernetキーで暗号化して保存する
- リカバリーコードは XXXXX-XXXXX 形式で8個生成し、argon2ハッシュで保存する
- 使用済みのリカバリーコードは空文字列に置き換える
"""

import base64
import io
import secrets
from typing import Any, Optional

import pyotp
import qrcode
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from punt.core.config import get_settings
from punt.core.logging import get_logger

from .password import hash_password, verify_password

logger = get_logger(__name__)

HKDF_INFO = b"punt-totp-secret-encryption"
RECOVERY_CODE_COUNT = 8


def _derive_fernet_key(auth_secret: str) -> bytes:
    """
    AUTH_SECRETからTOTP暗号化用のFernetキーを導出する

    Args:
        auth_secret: マスターシークレット

    Returns:
        URL安全なBase64エンコード済み32バイトキー
    """
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=HKDF_INFO)
    return base64.urlsafe_b64encode(hkdf.derive(auth_secret.encode("utf-8")))


def _get_cipher() -> Fernet:
    auth_secret = get_settings().AUTH_SECRET
    if not auth_secret:
        raise RuntimeError("AUTH_SECRET environment variable is required for TOTP encryption")
    return Fernet(_derive_fernet_key(auth_secret))


def encrypt_totp_secret(secret: str) -> str:
    """TOTPシークレットを保存用に暗号化する"""
    return _get_cipher().encrypt(secret.encode("utf-8")).decode("utf-8")


def decrypt_totp_secret(encrypted_secret: str) -> Optional[str]:
    """
    保存済みのTOTPシークレットを復号する

    Returns:
        復号したシークレット。AUTH_SECRETが変わった等で復号できない場合はNone
    """
    try:
        return _get_cipher().decrypt(encrypted_secret.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.error("Failed to decrypt TOTP secret (AUTH_SECRET changed?)")
        return None


def generate_totp_secret() -> str:
    """新しいTOTPシークレット（Base32）を生成する"""
    return pyotp.random_base32()


def generate_totp_uri(secret: str, username: str, issuer: Optional[str] = None) -> str:
    """認証アプリ登録用のotpauth:// URIを生成する"""
    return pyotp.TOTP(secret).provisioning_uri(
        name=username, issuer_name=issuer or get_settings().TOTP_ISSUER
    )


def generate_qr_code_data_url(uri: str) -> str:
    """
    URIをQRコード画像（PNGのdata URL）に変換する

    Args:
        uri: otpauth:// URI

    Returns:
        data:image/png;base64,... 形式の文字列
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def verify_totp_token(token: str, secret: str) -> bool:
    """
    TOTPコードを検証する（前後1ステップの時刻ずれを許容）
    """
    token = token.strip().replace(" ", "")
    if not token.isdigit():
        return False
    return pyotp.TOTP(secret).verify(token, valid_window=1)


def generate_recovery_codes(count: int = RECOVERY_CODE_COUNT) -> list[str]:
    """
    リカバリーコードを生成する

    Returns:
        XXXXX-XXXXX 形式（16進大文字）のコード一覧
    """
    codes = []
    for _ in range(count):
        part1 = secrets.token_hex(3)[:5].upper()
        part2 = secrets.token_hex(3)[:5].upper()
        codes.append(f"{part1}-{part2}")
    return codes


def hash_recovery_codes(codes: list[str]) -> list[str]:
    """リカバリーコードを保存用にハッシュ化する"""
    return [hash_password(code) for code in codes]


def _coerce_codes(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(code) for code in value]
    return []


def verify_recovery_code(code: str, hashed_codes: Any) -> int:
    """
    リカバリーコードを検証する

    Args:
        code: 入力されたコード
        hashed_codes: 保存済みハッシュ一覧

    Returns:
        一致したコードのインデックス、見つからない場合は-1
    """
    normalized = code.strip().upper()
    for index, hashed in enumerate(_coerce_codes(hashed_codes)):
        if not hashed:
            continue  # 使用済み
        if verify_password(normalized, hashed):
            return index
    return -1


def mark_recovery_code_used(hashed_codes: Any, index: int) -> list[str]:
    """指定インデックスのリカバリーコードを使用済み（空文字）にする"""
    codes = _coerce_codes(hashed_codes)
    codes[index] = ""
    return codes


def count_remaining_recovery_codes(hashed_codes: Any) -> int:
    """未使用のリカバリーコード数"""
    return len([code for code in _coerce_codes(hashed_codes) if code])
