"""
プロジェクト・列・ラベル・メンバーの統合テスト
"""

from typing import Any, Callable

from fastapi.testclient import TestClient

from punt.infrastructure.database.models import User
from tests.helpers import create_project, list_columns, login


class TestProjects:
    """プロジェクトの作成と取得"""

    def test_create_project_defaults(self, admin_client: TestClient) -> None:
        """既定の列とロールが作られ、作成者がOwnerになること"""
        project = create_project(admin_client, key="punt")

        assert project["key"] == "PUNT"
        assert project["ticketCount"] == 0

        columns = list_columns(admin_client, project["id"])
        assert [c["name"] for c in columns] == ["To Do", "In Progress", "Review", "Done"]

        roles = admin_client.get(f"/api/projects/{project['id']}/roles").json()
        assert [r["name"] for r in roles] == ["Owner", "Admin", "Member"]

        members = admin_client.get(f"/api/projects/{project['id']}/members").json()
        assert len(members) == 1
        assert members[0]["role"]["name"] == "Owner"

    def test_duplicate_key(self, admin_client: TestClient) -> None:
        create_project(admin_client, key="PUNT")

        response = admin_client.post("/api/projects", json={"name": "Other", "key": "punt"})

        assert response.status_code == 409

    def test_invalid_key(self, admin_client: TestClient) -> None:
        response = admin_client.post("/api/projects", json={"name": "Bad", "key": "1ABC"})

        assert response.status_code == 400

    def test_get_by_id_or_key(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)

        by_id = admin_client.get(f"/api/projects/{project['id']}")
        by_key = admin_client.get("/api/projects/PUNT")

        assert by_id.status_code == 200
        assert by_key.json()["id"] == project["id"]

    def test_unknown_project(self, admin_client: TestClient) -> None:
        assert admin_client.get("/api/projects/NOPE").status_code == 404

    def test_update_and_delete(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)

        updated = admin_client.patch(
            f"/api/projects/{project['id']}", json={"name": "Renamed"}
        )
        assert updated.json()["name"] == "Renamed"

        assert admin_client.delete(f"/api/projects/{project['id']}").status_code == 200
        assert admin_client.get("/api/projects").json() == []


class TestProjectAccess:
    """メンバーシップと権限"""

    def test_non_member_forbidden(
        self,
        admin_client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        project = create_project(admin_client)
        alice = make_client()
        login(alice, "alice")

        assert alice.get("/api/projects").json() == []
        assert alice.get(f"/api/projects/{project['id']}").status_code == 403

    def test_member_permissions(
        self,
        admin_client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        """Memberロールはチケット作成はできるが、設定変更はできないこと"""
        project = create_project(admin_client)
        added = admin_client.post(
            f"/api/projects/{project['id']}/members", json={"username": "alice"}
        )
        assert added.status_code == 201
        assert added.json()["role"]["name"] == "Member"

        alice = make_client()
        login(alice, "alice")

        mine: Any = alice.get(f"/api/projects/{project['id']}/my-permissions").json()
        assert set(mine["permissions"]) == {"tickets.create", "tickets.manage_own"}
        assert mine["isSystemAdmin"] is False

        assert alice.post(
            f"/api/projects/{project['id']}/tickets", json={"title": "From alice"}
        ).status_code == 201
        assert alice.patch(
            f"/api/projects/{project['id']}", json={"name": "Hijacked"}
        ).status_code == 403
        assert alice.post(
            f"/api/projects/{project['id']}/labels", json={"name": "bug"}
        ).status_code == 403

    def test_duplicate_member(self, admin_client: TestClient, regular_user: User) -> None:
        project = create_project(admin_client)
        url = f"/api/projects/{project['id']}/members"
        admin_client.post(url, json={"username": "alice"})

        assert admin_client.post(url, json={"username": "alice"}).status_code == 409


class TestColumnsAndLabels:
    def test_create_column(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)

        response = admin_client.post(
            f"/api/projects/{project['id']}/columns", json={"name": "Blocked"}
        )

        assert response.status_code == 201
        assert [c["name"] for c in list_columns(admin_client, project["id"])][-1] == "Blocked"

    def test_delete_column_moves_tickets(self, admin_client: TestClient) -> None:
        """列を削除すると、チケットは指定した列へ移ること"""
        project = create_project(admin_client)
        todo, in_progress = list_columns(admin_client, project["id"])[:2]
        ticket = admin_client.post(
            f"/api/projects/{project['id']}/tickets",
            json={"title": "Task", "columnId": todo["id"]},
        ).json()

        response = admin_client.delete(
            f"/api/projects/{project['id']}/columns/{todo['id']}",
            params={"moveTicketsTo": in_progress["id"]},
        )

        assert response.status_code == 200
        moved = admin_client.get(f"/api/projects/{project['id']}/tickets/{ticket['id']}")
        assert moved.json()["columnId"] == in_progress["id"]

    def test_labels(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        url = f"/api/projects/{project['id']}/labels"

        created = admin_client.post(url, json={"name": "bug", "color": "#ef4444"})
        duplicate = admin_client.post(url, json={"name": "Bug"})

        assert created.status_code == 201
        assert duplicate.status_code == 409
        assert [label["name"] for label in admin_client.get(url).json()] == ["bug"]


class TestRoles:
    def test_reorder_roles(self, admin_client: TestClient) -> None:
        """指定した順に position が振り直されること"""
        project = create_project(admin_client)
        url = f"/api/projects/{project['id']}/roles"
        roles = {r["name"]: r["id"] for r in admin_client.get(url).json()}

        response = admin_client.post(
            f"{url}/reorder",
            json={"roleIds": [roles["Owner"], roles["Member"], roles["Admin"]]},
        )

        assert response.status_code == 200, response.text
        assert [(r["name"], r["position"]) for r in response.json()] == [
            ("Owner", 0),
            ("Member", 1),
            ("Admin", 2),
        ]
        assert [r["name"] for r in admin_client.get(url).json()] == [
            "Owner",
            "Member",
            "Admin",
        ]

    def test_reorder_rejects_foreign_role(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        other = create_project(admin_client, key="OTHER", name="Other")
        foreign = admin_client.get(f"/api/projects/{other['id']}/roles").json()[0]

        response = admin_client.post(
            f"/api/projects/{project['id']}/roles/reorder",
            json={"roleIds": [foreign["id"]]},
        )

        assert response.status_code == 400
        assert response.json()["message"] == (
            "Some role IDs are invalid or do not belong to this project"
        )

    def test_reorder_requires_role_ids(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)

        response = admin_client.post(
            f"/api/projects/{project['id']}/roles/reorder", json={"roleIds": []}
        )

        assert response.status_code == 400
