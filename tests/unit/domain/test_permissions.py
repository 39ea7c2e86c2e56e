"""
プロジェクト権限モデルの単体テスト
"""

import json

from punt.domain import permissions as perms


class TestParsePermissions:
    """権限JSONの解析"""

    def test_parse_valid_permissions(self) -> None:
        raw = json.dumps([perms.TICKETS_CREATE, perms.BOARD_MANAGE])
        assert perms.parse_permissions(raw) == [perms.TICKETS_CREATE, perms.BOARD_MANAGE]

    def test_unknown_permissions_are_dropped(self) -> None:
        """未知の権限文字列は除外されること"""
        raw = json.dumps([perms.TICKETS_CREATE, "tickets.destroy_everything", 42])
        assert perms.parse_permissions(raw) == [perms.TICKETS_CREATE]

    def test_invalid_json_returns_empty(self) -> None:
        assert perms.parse_permissions("not json") == []
        assert perms.parse_permissions('{"a": 1}') == []
        assert perms.parse_permissions(None) == []

    def test_oversized_json_returns_empty(self) -> None:
        """10KBを超える権限JSONは無視されること"""
        raw = json.dumps([perms.TICKETS_CREATE] * 2000)
        assert len(raw) > perms.MAX_PERMISSIONS_JSON_SIZE
        assert perms.parse_permissions(raw) == []

    def test_serialize_uses_definition_order(self) -> None:
        """シリアライズは定義順・重複なしになること"""
        raw = perms.serialize_permissions(
            [perms.SPRINTS_MANAGE, perms.PROJECT_SETTINGS, perms.SPRINTS_MANAGE, "bogus"]
        )
        assert json.loads(raw) == [perms.PROJECT_SETTINGS, perms.SPRINTS_MANAGE]


class TestEffectivePermissions:
    """実効権限の計算"""

    def test_system_admin_has_all_permissions(self) -> None:
        assert perms.effective_permissions(None, None, is_system_admin=True) == set(
            perms.ALL_PERMISSIONS
        )

    def test_overrides_are_additive(self) -> None:
        """オーバーライドはロール権限に加算されること"""
        role = json.dumps([perms.TICKETS_CREATE])
        overrides = json.dumps([perms.LABELS_MANAGE])

        result = perms.effective_permissions(role, overrides)

        assert result == {perms.TICKETS_CREATE, perms.LABELS_MANAGE}

    def test_member_preset_permissions(self) -> None:
        member = next(
            p for p in perms.DEFAULT_ROLE_PRESETS if p["name"] == perms.MEMBER_ROLE_NAME
        )
        assert set(member["permissions"]) == {
            perms.TICKETS_CREATE,
            perms.TICKETS_MANAGE_OWN,
        }

    def test_admin_preset_excludes_owner_only_permissions(self) -> None:
        admin = next(p for p in perms.DEFAULT_ROLE_PRESETS if p["name"] == "Admin")
        assert perms.PROJECT_DELETE not in admin["permissions"]
        assert perms.MEMBERS_ADMIN not in admin["permissions"]


class TestOutranks:
    """ロール順位の比較"""

    def test_lower_position_outranks(self) -> None:
        assert perms.outranks(0, 1) is True

    def test_same_position_does_not_outrank(self) -> None:
        assert perms.outranks(1, 1) is False

    def test_missing_position_never_outranks(self) -> None:
        assert perms.outranks(None, 1) is False
        assert perms.outranks(0, None) is False
