from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    アプリケーション設定
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # 未定義のフィールドを無視
    )

    ENV_MODE: Literal["development", "production", "test"] = "development"

    APP_NAME: str = "PUNT"

    BACKEND_CORS_ORIGINS: str | list[str] = []

    @field_validator("BACKEND_CORS_ORIGINS")
    @classmethod
    def assemble_cors_origins(cls, v: str | list[str]) -> list[str] | str:
        if v == "":
            return []
        if v == "*":
            return ["*"]
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        if isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    SECURITY_HEADERS: bool = False
    CSP_POLICY: str = (
        "default-src 'self'; img-src 'self' data:; script-src 'self'; style-src 'self'"
    )

    # データベース（DATABASE_URLが指定された場合はPOSTGRES_*より優先）
    DATABASE_URL: Optional[str] = None

    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_DB: str = "punt"
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: str = "5432"

    @property
    def database_uri(self) -> str:
        """データベース接続URL"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        # Kerberos設定済み環境だとタイムアウト待ちにハマるので、gssencmode=disableを設定
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            f"?gssencmode=disable"
        )

    @property
    def has_database(self) -> bool:
        """データベース設定有無"""
        if self.DATABASE_URL:
            return True
        return bool(
            self.POSTGRES_USER and self.POSTGRES_PASSWORD and self.POSTGRES_HOST
        )

    @property
    def is_sqlite(self) -> bool:
        """SQLite使用判定"""
        return self.database_uri.startswith("sqlite")

    @property
    def is_supabase(self) -> bool:
        """Supabase使用判定"""
        return "supabase.co" in self.database_uri

    SESSION_COOKIE_NAME: str = "punt_session"
    SESSION_EXPIRE: int = 60 * 60 * 24 * 30  # 30 days

    SESSION_ENCRYPTION_KEY: str = ""

    @field_validator("SESSION_ENCRYPTION_KEY")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """暗号化キー検証"""
        if not v:
            # 未設定時はAUTH_SECRETから導出した鍵を使う
            return ""

        try:
            from cryptography.fernet import Fernet

            Fernet(v.encode())
        except Exception:
            raise ValueError(
                'Invalid SESSION_ENCRYPTION_KEY format. Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
            )

        return v

    # TOTPシークレット暗号化用のマスターシークレット
    AUTH_SECRET: str = ""
    TOTP_ISSUER: str = "PUNT"

    ALLOW_REGISTRATION: bool = False

    # リバースプロキシ配下でのみX-Forwarded-For等を信頼する
    TRUST_PROXY: bool = False
    RATE_LIMIT_ENABLED: bool = True

    # アップロードファイルの保存先（URLの/uploads/...に対応）
    UPLOAD_DIR: str = "./public"

    SENTRY_DSN: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 1.0

    @field_validator("SENTRY_DSN")
    @classmethod
    def sentry_dsn_can_be_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return v

    NEW_RELIC_LICENSE_KEY: Optional[str] = None
    NEW_RELIC_APP_NAME: str = "PUNT"
    NEW_RELIC_HIGH_SECURITY: bool = False
    NEW_RELIC_MONITOR_MODE: bool = True

    BACKUP_SCHEDULE: Optional[str] = None  # cron形式 (例: "0 3 * * *")
    BACKUP_RETENTION_DAYS: int = 7
    BACKUP_DIR: str = "./backups"
    BACKUP_PASSWORD: Optional[str] = None
    BACKUP_INCLUDE_FILES: bool = False

    SESSION_CLEANUP_SCHEDULE: Optional[str] = "30 * * * *"

    S3_ENDPOINT: Optional[str] = None
    S3_BUCKET: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    S3_REGION: Optional[str] = None

    @property
    def has_s3(self) -> bool:
        """S3設定有無"""
        return bool(self.S3_ENDPOINT and self.S3_BUCKET and self.S3_ACCESS_KEY)

    @property
    def is_development(self) -> bool:
        """開発環境かどうか"""
        return self.ENV_MODE == "development"

    @property
    def is_production(self) -> bool:
        """本番環境かどうか"""
        return self.ENV_MODE == "production"

    @property
    def is_test(self) -> bool:
        """テスト環境かどうか"""
        return self.ENV_MODE == "test"

    @property
    def normalized_env_mode(self) -> str:
        """監視ツール向けの環境名"""
        return {
            "development": "local",
            "production": "production",
            "test": "test",
        }[self.ENV_MODE]


@lru_cache
def get_settings() -> Settings:
    """
    アプリケーション設定を取得（キャッシュ）
    """
    return Settings()
