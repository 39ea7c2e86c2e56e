"""
パスワードハッシュと強度チェック

argon2id でハッシュ化する。リカバリーコードのハッシュにも使用する。
"""

import re
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_hasher = PasswordHasher()

MIN_PASSWORD_LENGTH = 12


def hash_password(password: str) -> str:
    """パスワードをargon2でハッシュ化する"""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    パスワードを検証する

    Args:
        password: 平文パスワード
        password_hash: 保存済みハッシュ（Noneの場合は常に失敗）

    Returns:
        一致する場合True
    """
    if not password_hash:
        return False
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """ハッシュパラメータが古い場合True"""
    try:
        return _hasher.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True


def validate_password_strength(password: str) -> list[str]:
    """
    パスワード強度をチェックする

    Args:
        password: 平文パスワード

    Returns:
        満たしていない要件のメッセージ一覧（空なら合格）
    """
    errors: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    return errors
