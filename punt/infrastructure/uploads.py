"""
アップロードファイルの保存先管理

URLの /uploads/... は UPLOAD_DIR/uploads/... に対応する。
"""

import uuid
from pathlib import Path
from typing import Optional

from punt.core.config import get_settings
from punt.core.logging import get_logger

logger = get_logger(__name__)


def get_upload_root() -> Path:
    """アップロードのルートディレクトリ（絶対パス）"""
    return Path(get_settings().UPLOAD_DIR).resolve()


def url_to_path(url: str) -> Optional[Path]:
    """
    URLパスをファイルシステム上のパスに変換する

    ルートディレクトリの外を指すURL（../ など）はNoneを返す。
    """
    root = get_upload_root()
    candidate = (root / url.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        logger.warning(f"Rejected upload path outside of upload root: {url}")
        return None
    return candidate


def _safe_suffix(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if len(suffix) > 10 or not suffix[1:].isalnum():
        return ""
    return suffix


def save_upload(category: str, filename: str, content: bytes) -> str:
    """
    ファイルを保存してURLを返す

    Args:
        category: 保存先サブディレクトリ（"avatars", "attachments"など）
        filename: 元のファイル名（拡張子のみ使用）
        content: ファイル内容

    Returns:
        /uploads/<category>/<uuid><ext> 形式のURL
    """
    url = f"/uploads/{category}/{uuid.uuid4().hex}{_safe_suffix(filename)}"
    path = url_to_path(url)
    if path is None:
        raise ValueError(f"Invalid upload category: {category}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return url


def delete_upload(url: Optional[str]) -> None:
    """URLに対応するファイルを削除する（存在しなければ何もしない）"""
    if not url:
        return
    path = url_to_path(url)
    if path is None or not path.is_file():
        return
    try:
        path.unlink()
    except OSError as e:
        logger.warning(f"Failed to delete upload {url}: {e}")
