"""
ユーザー管理サービス

- ユーザーの作成・検索・プロフィール更新
- パスワード認証と再認証（パスワード + 2FA）
- TOTP 2要素認証の設定・無効化・リカバリーコード再発行
- ツール連携用APIキーの発行
- 管理者によるユーザー更新・削除
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from punt.utils.query import LIKE_ESCAPE, contains_pattern

from ..database.models import Project, ProjectMember, Role, User, utcnow
from ..security.encryption import generate_api_key
from ..security.password import (
    hash_password,
    needs_rehash,
    validate_password_strength,
    verify_password,
)
from ..security.totp import (
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
from ..uploads import delete_upload, save_upload
from .session_repository import SessionService

logger = get_logger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

MAX_AVATAR_SIZE = 5 * 1024 * 1024
ALLOWED_AVATAR_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

ACCOUNT_DELETE_CONFIRMATION = "DELETE MY ACCOUNT"

ADMIN_ROLE_NAME = "Admin"


def validate_username(username: str) -> None:
    """
    ユーザー名の形式チェック

    Raises:
        BadRequestError: 3〜30文字の英数字・_・- でない場合
    """
    if len(username) < USERNAME_MIN_LENGTH:
        raise BadRequestError("Username must be at least 3 characters")
    if len(username) > USERNAME_MAX_LENGTH:
        raise BadRequestError("Username must be at most 30 characters")
    if not USERNAME_PATTERN.match(username):
        raise BadRequestError(
            "Username can only contain letters, numbers, underscores, and hyphens"
        )


def require_strong_password(password: str) -> None:
    """
    パスワード強度チェック

    Raises:
        BadRequestError: 要件を満たさない場合（details.errorsに不足項目）
    """
    errors = validate_password_strength(password)
    if errors:
        raise BadRequestError(
            "Password does not meet requirements", details={"errors": errors}
        )


@dataclass
class TotpSetup:
    """2FA設定開始時に返す情報"""

    secret: str
    uri: str
    qr_code: str


class UserService:
    """
    ユーザー管理サービス
    """

    def __init__(self, db: DBSession):
        self.db = db

    # ------------------------------------------------------------------
    # 取得
    # ------------------------------------------------------------------

    def get(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        """ユーザー名で取得（大文字小文字を区別しない）"""
        return self.db.scalar(
            select(User).where(func.lower(User.username) == username.lower())
        )

    def require_by_username(self, username: str) -> User:
        user = self.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def get_by_api_key(self, api_key: str) -> Optional[User]:
        """有効なユーザーをAPIキーで取得"""
        if not api_key:
            return None
        return self.db.scalar(
            select(User).where(User.mcp_api_key == api_key, User.is_active.is_(True))
        )

    def count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(User)) or 0

    @staticmethod
    def _match_condition(query: str) -> Any:
        pattern = contains_pattern(query.lower())
        return or_(
            func.lower(User.username).like(pattern, escape=LIKE_ESCAPE),
            func.lower(User.name).like(pattern, escape=LIKE_ESCAPE),
            func.lower(User.email).like(pattern, escape=LIKE_ESCAPE),
        )

    def search(self, query: Optional[str] = None, limit: int = 20) -> list[User]:
        """有効なユーザーをユーザー名・表示名・メールで部分一致検索"""
        stmt = select(User).where(User.is_active.is_(True))
        if query:
            stmt = stmt.where(self._match_condition(query))
        return list(self.db.scalars(stmt.order_by(User.username).limit(limit)).all())

    def list_all(self, query: Optional[str] = None) -> list[User]:
        """管理画面向けの全ユーザー一覧（無効化済みも含む）"""
        stmt = select(User)
        if query:
            stmt = stmt.where(self._match_condition(query))
        return list(self.db.scalars(stmt.order_by(User.created_at)).all())

    # ------------------------------------------------------------------
    # 作成・認証
    # ------------------------------------------------------------------

    def _ensure_unique(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        if username is not None:
            existing = self.get_by_username(username)
            if existing is not None and existing.id != exclude_id:
                raise ConflictError("Username already exists")
        if email:
            existing = self.db.scalar(
                select(User).where(func.lower(User.email) == email.lower())
            )
            if existing is not None and existing.id != exclude_id:
                raise ConflictError("Email already in use")

    def create_user(
        self,
        username: str,
        name: str,
        password: str,
        email: Optional[str] = None,
        is_system_admin: bool = False,
    ) -> User:
        """
        ユーザーを作成する

        Raises:
            BadRequestError: ユーザー名の形式・パスワード強度が不正な場合
            ConflictError: ユーザー名またはメールが既に使われている場合
        """
        validate_username(username)
        require_strong_password(password)
        self._ensure_unique(username=username, email=email)

        user = User(
            username=username,
            name=name,
            email=email or None,
            password_hash=hash_password(password),
            password_changed_at=utcnow(),
            is_system_admin=is_system_admin,
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User created: {username} (admin={is_system_admin})")
        return user

    def setup_first_admin(
        self, username: str, name: str, password: str, email: Optional[str] = None
    ) -> User:
        """
        初回セットアップで最初の管理者を作成する

        Raises:
            ForbiddenError: 既にユーザーが存在する場合
        """
        if self.count() > 0:
            raise ForbiddenError("Setup already completed. Users already exist.")
        return self.create_user(username, name, password, email, is_system_admin=True)

    def authenticate(self, username: str, password: str) -> User:
        """
        ユーザー名とパスワードで認証する

        Raises:
            UnauthorizedError: 認証に失敗した場合（無効化ユーザーも同じメッセージ）
        """
        user = self.get_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid credentials")
        if not user.is_active:
            raise UnauthorizedError("Invalid credentials")

        # パラメータ更新されたargon2設定で再ハッシュ
        if user.password_hash and needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
            self.db.commit()

        return user

    def record_login(self, user: User) -> None:
        user.last_login_at = utcnow()
        self.db.commit()

    def verify_second_factor(
        self, user: User, code: Optional[str], is_recovery_code: bool = False
    ) -> None:
        """
        TOTPコードまたはリカバリーコードを検証する

        リカバリーコードは使用済みとして消費される。

        Raises:
            UnauthorizedError: コードが無い、または一致しない場合
        """
        if not code:
            raise UnauthorizedError("2FA code required", details={"requires2fa": True})

        if is_recovery_code:
            if count_remaining_recovery_codes(user.totp_recovery_codes) == 0:
                raise UnauthorizedError("No recovery codes available")
            index = verify_recovery_code(code, user.totp_recovery_codes)
            if index < 0:
                raise UnauthorizedError("Invalid recovery code")
            user.totp_recovery_codes = mark_recovery_code_used(
                user.totp_recovery_codes, index
            )
            self.db.commit()
            logger.warning(f"Recovery code used by {user.username}")
            return

        secret = decrypt_totp_secret(user.totp_secret) if user.totp_secret else None
        if secret is None or not verify_totp_token(code, secret):
            raise UnauthorizedError("Invalid 2FA code")

    def verify_reauth(
        self,
        user: User,
        password: Optional[str],
        totp_code: Optional[str] = None,
        is_recovery_code: bool = False,
    ) -> None:
        """
        機密操作の前の再認証

        パスワードに加え、2FA有効時はTOTPコードかリカバリーコードを要求する。

        Raises:
            UnauthorizedError: 再認証に失敗した場合
        """
        if not user.password_hash:
            raise UnauthorizedError("Invalid credentials")
        if not password or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid password")
        if user.totp_enabled:
            self.verify_second_factor(user, totp_code, is_recovery_code)

    # ------------------------------------------------------------------
    # プロフィール
    # ------------------------------------------------------------------

    def update_profile(
        self, user: User, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        if email is not None and email != user.email:
            self._ensure_unique(email=email, exclude_id=user.id)
            user.email = email or None
            user.email_verified = None
        if name is not None:
            user.name = name
        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        totp_code: Optional[str] = None,
        is_recovery_code: bool = False,
        keep_session_id: Optional[str] = None,
    ) -> int:
        """
        パスワードを変更し、現在のセッション以外を失効させる

        Returns:
            失効させたセッション数
        """
        self.verify_reauth(user, current_password, totp_code, is_recovery_code)
        require_strong_password(new_password)

        user.password_hash = hash_password(new_password)
        user.password_changed_at = utcnow()
        self.db.commit()
        logger.info(f"Password changed for {user.username}")

        return SessionService(self.db).delete_user_sessions(user.id, keep_session_id)

    def delete_own_account(
        self,
        user: User,
        password: str,
        confirmation: str,
        totp_code: Optional[str] = None,
        is_recovery_code: bool = False,
    ) -> None:
        """
        自分のアカウントを無効化し、全セッションを失効させる

        データは残すので、管理者が後から有効化できる。

        Raises:
            BadRequestError: 確認文字列の不一致、または唯一の管理者の場合
            UnauthorizedError: 再認証に失敗した場合
        """
        if confirmation != ACCOUNT_DELETE_CONFIRMATION:
            raise BadRequestError(
                f'Please type "{ACCOUNT_DELETE_CONFIRMATION}" to confirm'
            )
        self.verify_reauth(user, password, totp_code, is_recovery_code)
        if user.is_system_admin and self._active_admin_count() <= 1:
            raise BadRequestError("Cannot delete the only system administrator account")

        user.is_active = False
        user.mcp_api_key = None
        self.db.commit()
        SessionService(self.db).delete_user_sessions(user.id)
        logger.info(f"Account deleted by owner: {user.username}")

    def set_avatar(
        self, user: User, filename: str, content_type: Optional[str], content: bytes
    ) -> User:
        """
        アバター画像を保存する

        Raises:
            BadRequestError: 形式・サイズが不正な場合
        """
        if not content:
            raise BadRequestError("No file provided")
        if content_type not in ALLOWED_AVATAR_TYPES:
            raise BadRequestError(
                f"Invalid file type. Allowed: {', '.join(ALLOWED_AVATAR_TYPES)}"
            )
        if len(content) > MAX_AVATAR_SIZE:
            raise BadRequestError(
                f"File too large. Maximum size is {MAX_AVATAR_SIZE // 1024 // 1024}MB"
            )

        old_avatar = user.avatar
        user.avatar = save_upload("avatars", filename, content)
        self.db.commit()
        delete_upload(old_avatar)
        self.db.refresh(user)
        return user

    def remove_avatar(self, user: User) -> User:
        old_avatar = user.avatar
        user.avatar = None
        self.db.commit()
        delete_upload(old_avatar)
        self.db.refresh(user)
        return user

    # ------------------------------------------------------------------
    # 2要素認証
    # ------------------------------------------------------------------

    def begin_totp_setup(self, user: User) -> TotpSetup:
        """
        2FA設定を開始する

        シークレットを暗号化して保存するが、verify で確認するまで有効化しない。
        """
        if user.totp_enabled:
            raise BadRequestError("Two-factor authentication is already enabled")

        secret = generate_totp_secret()
        uri = generate_totp_uri(secret, user.username)
        user.totp_secret = encrypt_totp_secret(secret)
        self.db.commit()
        return TotpSetup(secret=secret, uri=uri, qr_code=generate_qr_code_data_url(uri))

    def enable_totp(self, user: User, code: str) -> list[str]:
        """
        設定中のシークレットに対するコードを確認して2FAを有効化する

        Returns:
            平文のリカバリーコード（この時だけ表示される）
        """
        if user.totp_enabled:
            raise BadRequestError("Two-factor authentication is already enabled")
        if not user.totp_secret:
            raise BadRequestError("Please initiate 2FA setup first")

        secret = decrypt_totp_secret(user.totp_secret)
        if secret is None or not verify_totp_token(code, secret):
            raise BadRequestError("Invalid verification code. Please try again.")

        codes = generate_recovery_codes()
        user.totp_recovery_codes = hash_recovery_codes(codes)
        user.totp_enabled = True
        self.db.commit()
        logger.info(f"2FA enabled for {user.username}")
        return codes

    def _require_totp_reauth(
        self, user: User, password: str, totp_code: str, is_recovery_code: bool
    ) -> None:
        if not user.totp_enabled:
            raise BadRequestError("Two-factor authentication is not enabled")
        if not verify_password(password, user.password_hash):
            raise UnauthorizedError("Incorrect password")
        try:
            self.verify_second_factor(user, totp_code, is_recovery_code)
        except UnauthorizedError as e:
            raise UnauthorizedError("Invalid two-factor authentication code") from e

    def disable_totp(
        self, user: User, password: str, totp_code: str, is_recovery_code: bool = False
    ) -> None:
        self._require_totp_reauth(user, password, totp_code, is_recovery_code)
        user.totp_enabled = False
        user.totp_secret = None
        user.totp_recovery_codes = None
        self.db.commit()
        logger.info(f"2FA disabled for {user.username}")

    def regenerate_recovery_codes(
        self, user: User, password: str, totp_code: str, is_recovery_code: bool = False
    ) -> list[str]:
        self._require_totp_reauth(user, password, totp_code, is_recovery_code)
        codes = generate_recovery_codes()
        user.totp_recovery_codes = hash_recovery_codes(codes)
        self.db.commit()
        return codes

    # ------------------------------------------------------------------
    # APIキー
    # ------------------------------------------------------------------

    def generate_api_key(self, user: User) -> str:
        """APIキーを発行する（既存のキーは置き換え）"""
        api_key = generate_api_key()
        user.mcp_api_key = api_key
        self.db.commit()
        logger.info(f"API key generated for {user.username}")
        return api_key

    def revoke_api_key(self, user: User) -> None:
        user.mcp_api_key = None
        self.db.commit()

    # ------------------------------------------------------------------
    # 管理者操作
    # ------------------------------------------------------------------

    def _active_admin_count(self) -> int:
        return (
            self.db.scalar(
                select(func.count())
                .select_from(User)
                .where(User.is_system_admin.is_(True), User.is_active.is_(True))
            )
            or 0
        )

    def _grant_admin_memberships(self, user: User) -> None:
        """システム管理者に昇格したユーザーを全プロジェクトのAdminにする"""
        for project in self.db.scalars(select(Project)).all():
            admin_role = self.db.scalar(
                select(Role).where(
                    Role.project_id == project.id,
                    Role.name == ADMIN_ROLE_NAME,
                    Role.is_default.is_(True),
                )
            )
            if admin_role is None:
                continue
            membership = self.db.scalar(
                select(ProjectMember).where(
                    ProjectMember.project_id == project.id,
                    ProjectMember.user_id == user.id,
                )
            )
            if membership is None:
                self.db.add(
                    ProjectMember(
                        project_id=project.id, user_id=user.id, role_id=admin_role.id
                    )
                )
            elif membership.role.position > admin_role.position:
                membership.role_id = admin_role.id

    def admin_update(self, target: User, changes: dict[str, Any]) -> User:
        """
        管理者によるユーザー更新

        Args:
            target: 対象ユーザー
            changes: name / email / password / is_system_admin / is_active

        Raises:
            BadRequestError: 最後の管理者を降格・無効化しようとした場合
        """
        removing_admin = changes.get("is_system_admin") is False and target.is_system_admin
        disabling_admin = (
            changes.get("is_active") is False
            and target.is_system_admin
            and target.is_active
        )
        if (removing_admin or disabling_admin) and self._active_admin_count() <= 1:
            raise BadRequestError(
                "Cannot remove or disable the last system administrator"
            )

        if changes.get("email") is not None:
            self._ensure_unique(email=changes["email"], exclude_id=target.id)
            target.email = changes["email"] or None
        if changes.get("name"):
            target.name = changes["name"]
        if changes.get("password"):
            require_strong_password(changes["password"])
            target.password_hash = hash_password(changes["password"])
            target.password_changed_at = utcnow()

        becoming_admin = changes.get("is_system_admin") is True and not target.is_system_admin
        if changes.get("is_system_admin") is not None:
            target.is_system_admin = changes["is_system_admin"]
        if changes.get("is_active") is not None:
            target.is_active = changes["is_active"]

        if becoming_admin:
            self._grant_admin_memberships(target)

        self.db.commit()
        self.db.refresh(target)

        if changes.get("is_active") is False or changes.get("password"):
            SessionService(self.db).delete_user_sessions(target.id)

        logger.info(f"User updated by admin: {target.username}")
        return target

    def admin_delete(self, actor: User, target: User, permanent: bool = False) -> None:
        """
        ユーザーを無効化、または完全に削除する

        Raises:
            BadRequestError: 自分自身、または最後の管理者の場合
        """
        if actor.id == target.id:
            raise BadRequestError("Cannot delete your own account")
        if target.is_system_admin and target.is_active and self._active_admin_count() <= 1:
            raise BadRequestError(
                "Cannot remove or disable the last system administrator"
            )

        SessionService(self.db).delete_user_sessions(target.id)

        if permanent:
            avatar = target.avatar
            self.db.delete(target)
            self.db.commit()
            delete_upload(avatar)
            logger.warning(f"User permanently deleted: {target.username}")
            return

        target.is_active = False
        target.mcp_api_key = None
        self.db.commit()
        logger.info(f"User disabled: {target.username}")

