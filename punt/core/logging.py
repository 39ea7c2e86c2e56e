"""アプリケーション用のロギングユーティリティ。"""

import logging
import sys


def is_fastapi_context() -> bool:
    """
    FastAPI/uvicornコンテキストで実行中かどうかを判定する。

    Returns:
        bool: uvicornがロードされている場合True、そうでない場合False。
    """
    return "uvicorn" in sys.modules


def get_logger(name: str) -> logging.Logger:
    """
    ロガーインスタンスを取得する。

    Webサーバー内では"uvicorn"ロガーを返し、アクセスログと同じ出力先に揃える。
    バッチCLIやマイグレーションなどサーバー外の実行では、
    呼び出し元モジュール名のロガーを返す。

    Args:
        name: ロガー名、通常は呼び出し元モジュールの__name__を指定。

    Returns:
        logging.Logger: 設定済みのロガーインスタンス。

    Examples:
        >>> logger = get_logger(__name__)  # サーバー内ではuvicornロガー
        >>> logger = get_logger(__name__)  # CLIではpunt.infrastructure.batch.cliロガー
    """
    if is_fastapi_context():
        return logging.getLogger("uvicorn")
    return logging.getLogger(name)
