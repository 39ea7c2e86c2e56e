"""
プロジェクト権限モデル

ロールに付与する権限文字列と、既定ロールのプリセット、
実効権限の計算ロジックを定義する。DBには依存しない。
"""

import json
from typing import Iterable, Optional, TypedDict

PROJECT_SETTINGS = "project.settings"
PROJECT_DELETE = "project.delete"
MEMBERS_INVITE = "members.invite"
MEMBERS_MANAGE = "members.manage"
MEMBERS_ADMIN = "members.admin"
BOARD_MANAGE = "board.manage"
TICKETS_CREATE = "tickets.create"
TICKETS_MANAGE_OWN = "tickets.manage_own"
TICKETS_MANAGE_ANY = "tickets.manage_any"
SPRINTS_MANAGE = "sprints.manage"
LABELS_MANAGE = "labels.manage"
COMMENTS_MANAGE_ANY = "comments.manage_any"
ATTACHMENTS_MANAGE_ANY = "attachments.manage_any"

ALL_PERMISSIONS: tuple[str, ...] = (
    PROJECT_SETTINGS,
    PROJECT_DELETE,
    MEMBERS_INVITE,
    MEMBERS_MANAGE,
    MEMBERS_ADMIN,
    BOARD_MANAGE,
    TICKETS_CREATE,
    TICKETS_MANAGE_OWN,
    TICKETS_MANAGE_ANY,
    SPRINTS_MANAGE,
    LABELS_MANAGE,
    COMMENTS_MANAGE_ANY,
    ATTACHMENTS_MANAGE_ANY,
)

# 権限JSONの最大サイズ（10KB）
MAX_PERMISSIONS_JSON_SIZE = 10 * 1024


class RolePreset(TypedDict):
    """既定ロールの定義"""

    name: str
    color: str
    description: str
    permissions: list[str]
    position: int


DEFAULT_ROLE_PRESETS: tuple[RolePreset, ...] = (
    {
        "name": "Owner",
        "color": "#f59e0b",
        "description": "Full control over the project",
        "permissions": list(ALL_PERMISSIONS),
        "position": 0,
    },
    {
        "name": "Admin",
        "color": "#3b82f6",
        "description": "Manage project settings, members, and content",
        "permissions": [
            p for p in ALL_PERMISSIONS if p not in (PROJECT_DELETE, MEMBERS_ADMIN)
        ],
        "position": 1,
    },
    {
        "name": "Member",
        "color": "#6b7280",
        "description": "Create tickets and manage their own work",
        "permissions": [TICKETS_CREATE, TICKETS_MANAGE_OWN],
        "position": 2,
    },
)

OWNER_ROLE_NAME = "Owner"
MEMBER_ROLE_NAME = "Member"


def is_valid_permission(value: object) -> bool:
    """既知の権限文字列かどうか"""
    return isinstance(value, str) and value in ALL_PERMISSIONS


def parse_permissions(raw: Optional[str]) -> list[str]:
    """
    JSON文字列から権限リストを取り出す

    不正なJSON、配列以外、サイズ超過の場合は空リストを返す。
    未知の権限文字列は黙って除外する。

    Args:
        raw: 権限のJSON配列文字列

    Returns:
        有効な権限文字列のリスト
    """
    if not raw:
        return []
    if len(raw) > MAX_PERMISSIONS_JSON_SIZE:
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(parsed, list):
        return []
    return [p for p in parsed if is_valid_permission(p)]


def serialize_permissions(permissions: Iterable[str]) -> str:
    """権限リストをJSON文字列に変換する（未知の権限は除外、順序は定義順）"""
    wanted = set(permissions)
    return json.dumps([p for p in ALL_PERMISSIONS if p in wanted])


def effective_permissions(
    role_permissions: Optional[str],
    overrides: Optional[str],
    is_system_admin: bool = False,
) -> set[str]:
    """
    実効権限を計算する

    システム管理者は全権限を持つ。それ以外はロール権限と
    メンバー個別のオーバーライド（加算のみ）の和集合となる。

    Args:
        role_permissions: ロールの権限JSON
        overrides: メンバー個別の追加権限JSON
        is_system_admin: システム管理者かどうか

    Returns:
        権限文字列の集合
    """
    if is_system_admin:
        return set(ALL_PERMISSIONS)
    return set(parse_permissions(role_permissions)) | set(
        parse_permissions(overrides)
    )


def outranks(actor_position: Optional[int], target_position: Optional[int]) -> bool:
    """
    ロール順位の比較

    positionが小さいほど上位。同順位のロールは操作できない。
    """
    if actor_position is None or target_position is None:
        return False
    return actor_position < target_position
