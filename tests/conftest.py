"""
pytest設定と共通フィクスチャ（SQLiteベース）
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="punt-test-"))


def _configure_environment() -> None:
    """
    テスト用の環境変数を設定する

    設定はモジュールのインポート時に読み込まれるため、
    アプリケーションのモジュールより先に呼び出す必要がある
    """
    os.environ["ENV_MODE"] = "test"
    os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'punt-test.db'}"
    os.environ["SESSION_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
    os.environ["AUTH_SECRET"] = "test-auth-secret-for-totp-encryption"
    os.environ["UPLOAD_DIR"] = str(_TEST_ROOT / "public")
    os.environ["BACKUP_DIR"] = str(_TEST_ROOT / "backups")
    os.environ["RATE_LIMIT_ENABLED"] = "false"
    os.environ["ALLOW_REGISTRATION"] = "false"


_configure_environment()

# 環境変数設定後にインポート
from punt.core.config import get_settings  # noqa: E402
from punt.infrastructure.database import Base, SessionLocal, engine  # noqa: E402
from punt.infrastructure.database.models import User  # noqa: E402
from punt.infrastructure.events import get_broker  # noqa: E402
from punt.main import app  # noqa: E402
from tests.helpers import DEFAULT_PASSWORD, create_user, login  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_database() -> Generator[None, None, None]:
    """
    テスト用SQLiteデータベースのテーブルを作成・削除する。

    マイグレーションではなくモデル定義から直接作成する。
    """
    assert engine is not None
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_tables() -> Generator[None, None, None]:
    """各テスト後に全テーブルのデータを削除する"""
    yield
    assert engine is not None
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """
    テスト用DBセッション

    アプリケーションと同じデータベースに接続する。
    """
    assert SessionLocal is not None
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """テスト用FastAPIクライアント"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def settings() -> Any:
    return get_settings()


@pytest.fixture
def admin_user(db_session: Session) -> User:
    """システム管理者"""
    return create_user(db_session, "admin", is_system_admin=True)


@pytest.fixture
def regular_user(db_session: Session) -> User:
    """一般ユーザー"""
    return create_user(db_session, "alice")


@pytest.fixture
def admin_client(client: TestClient, admin_user: User) -> TestClient:
    """管理者でログイン済みのクライアント"""
    login(client, admin_user.username, DEFAULT_PASSWORD)
    return client


@pytest.fixture
def make_client() -> Generator[Callable[[], TestClient], None, None]:
    """
    Cookieを共有しない追加のクライアントを作るファクトリ

    複数ユーザーで同時にログインする必要があるテスト用。
    """
    clients: list[TestClient] = []

    def factory() -> TestClient:
        test_client = TestClient(app)
        clients.append(test_client)
        return test_client

    yield factory

    for test_client in clients:
        test_client.close()


@pytest.fixture
def broker() -> Any:
    return get_broker()
