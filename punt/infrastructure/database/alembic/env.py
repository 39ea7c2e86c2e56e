"""
Alembic環境設定

このファイルはAlembicマイグレーションを実行するための設定を提供します。
プログラム的実行とCLI実行の両方をサポートします。
"""

from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

from punt.core.config import get_settings
from punt.infrastructure.database.models import Base

config = context.config

# Pythonロギング設定（alembic.ini から）
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 全モデルはmodelsパッケージのimport時に登録される
target_metadata = Base.metadata


def get_url() -> str:
    """
    データベースURLを取得

    プログラム的実行時は set_main_option で設定された値を使用、
    CLI実行時は環境変数から構築
    """
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    return get_settings().database_uri


def run_migrations_offline() -> None:
    """
    'offline' モードでマイグレーションを実行

    SQLAlchemy Engineを使用せず、SQLスクリプトを生成します。
    """
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """
    'online' モードでマイグレーションを実行
    """
    connectable = config.attributes.get("connection", None)

    if connectable is None:
        configuration = config.get_section(config.config_ini_section) or {}
        configuration["sqlalchemy.url"] = get_url()
        connectable = engine_from_config(
            configuration,
            prefix="sqlalchemy.",
            poolclass=pool.NullPool,
        )

    with connectable.connect() as connection:
        # SQLiteのALTER制限に対応するためbatchモードで生成
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
