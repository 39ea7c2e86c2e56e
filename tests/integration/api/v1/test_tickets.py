"""
チケット・コメント・リンクの統合テスト
"""

from typing import Any, Callable

from fastapi.testclient import TestClient

from punt.infrastructure.database.models import User
from tests.helpers import create_project, create_ticket, list_columns, login


def _url(project: dict[str, Any], suffix: str = "") -> str:
    return f"/api/projects/{project['id']}/tickets{suffix}"


class TestTicketCrud:
    """チケットの作成・更新・削除"""

    def test_create_ticket(self, admin_client: TestClient) -> None:
        """キーが採番され、作成者がウォッチャーになること"""
        project = create_project(admin_client)

        first = create_ticket(admin_client, project["id"], "First")
        second = create_ticket(
            admin_client, project["id"], "Second", type="bug", priority="high"
        )

        assert first["key"] == "PUNT-1"
        assert second["key"] == "PUNT-2"
        assert second["type"] == "bug"
        assert first["columnId"] == list_columns(admin_client, project["id"])[0]["id"]
        assert [w["username"] for w in first["watchers"]] == ["admin"]

    def test_create_requires_title(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)

        response = admin_client.post(_url(project), json={"title": ""})

        assert response.status_code == 400

    def test_assignee_must_be_member(
        self, admin_client: TestClient, regular_user: User
    ) -> None:
        project = create_project(admin_client)

        response = admin_client.post(
            _url(project), json={"title": "Task", "assigneeId": regular_user.id}
        )

        assert response.status_code == 400

    def test_update_records_edits(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        ticket = create_ticket(admin_client, project["id"], "Draft")

        response = admin_client.patch(
            _url(project, f"/{ticket['id']}"),
            json={"title": "Final", "priority": "critical"},
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Final"
        edits = admin_client.get(_url(project, f"/{ticket['id']}/edits")).json()
        fields = {e["field"]: (e["oldValue"], e["newValue"]) for e in edits}
        assert fields["title"] == ("Draft", "Final")
        assert fields["priority"] == ("medium", "critical")

    def test_list_filters(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        create_ticket(admin_client, project["id"], "Login bug", type="bug")
        create_ticket(admin_client, project["id"], "Write docs")

        bugs = admin_client.get(_url(project), params={"type": "bug"}).json()
        search = admin_client.get(_url(project), params={"q": "docs"}).json()
        by_key = admin_client.get(_url(project), params={"q": "PUNT-1"}).json()
        backlog = admin_client.get(_url(project), params={"sprintId": "backlog"}).json()

        assert [t["title"] for t in bugs] == ["Login bug"]
        assert [t["title"] for t in search] == ["Write docs"]
        assert [t["key"] for t in by_key] == ["PUNT-1"]
        assert len(backlog) == 2

    def test_search_treats_wildcards_literally(self, admin_client: TestClient) -> None:
        """% や _ はワイルドカードではなく文字として検索されること"""
        project = create_project(admin_client)
        create_ticket(admin_client, project["id"], "Plain title")
        create_ticket(admin_client, project["id"], "Load 100% done")
        create_ticket(admin_client, project["id"], "snake_case name")

        percent = admin_client.get(_url(project), params={"q": "%"}).json()
        underscore = admin_client.get(_url(project), params={"q": "_"}).json()

        assert [t["title"] for t in percent] == ["Load 100% done"]
        assert [t["title"] for t in underscore] == ["snake_case name"]

    def test_long_search_is_truncated(self, admin_client: TestClient) -> None:
        """200文字を超える検索語は切り詰めて検索すること"""
        project = create_project(admin_client)
        create_ticket(admin_client, project["id"], "a" * 200)

        response = admin_client.get(_url(project), params={"q": "a" * 200 + "b" * 50})

        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_parent_cannot_be_self(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        ticket = create_ticket(admin_client, project["id"])

        response = admin_client.patch(
            _url(project, f"/{ticket['id']}"), json={"parentId": ticket["id"]}
        )

        assert response.status_code == 400

    def test_delete_ticket(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        ticket = create_ticket(admin_client, project["id"])

        assert admin_client.delete(_url(project, f"/{ticket['id']}")).status_code == 200
        assert admin_client.get(_url(project, f"/{ticket['id']}")).status_code == 404


class TestTicketPermissions:
    def test_member_edits_only_own_tickets(
        self,
        admin_client: TestClient,
        make_client: Callable[[], TestClient],
        regular_user: User,
    ) -> None:
        """Memberロールは自分のチケットのみ編集できること"""
        project = create_project(admin_client)
        admin_client.post(
            f"/api/projects/{project['id']}/members", json={"username": "alice"}
        )
        admins_ticket = create_ticket(admin_client, project["id"], "Admin's")
        alice = make_client()
        login(alice, "alice")
        own = create_ticket(alice, project["id"], "Alice's")

        assert alice.patch(
            _url(project, f"/{own['id']}"), json={"title": "Mine"}
        ).status_code == 200
        assert alice.patch(
            _url(project, f"/{admins_ticket['id']}"), json={"title": "Taken"}
        ).status_code == 403


class TestMoveAndWatch:
    def test_move_to_other_project(self, admin_client: TestClient) -> None:
        """移動先で新しいキーが振られること"""
        source = create_project(admin_client, key="SRC")
        target = create_project(admin_client, key="DST")
        ticket = create_ticket(admin_client, source["id"], "Traveller")

        response = admin_client.post(
            _url(source, f"/{ticket['id']}/move"), json={"targetProjectId": "DST"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ticket"]["key"] == "DST-1"
        assert data["sourceProjectId"] == source["id"]
        assert data["targetProjectId"] == target["id"]
        assert admin_client.get(_url(source)).json() == []

    def test_move_to_same_project(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        ticket = create_ticket(admin_client, project["id"])

        response = admin_client.post(
            _url(project, f"/{ticket['id']}/move"),
            json={"targetProjectId": project["id"]},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot move ticket to the same project"

    def test_watch_and_unwatch(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        ticket = create_ticket(admin_client, project["id"])

        unwatched = admin_client.delete(_url(project, f"/{ticket['id']}/watch"))
        assert unwatched.json() == {"watching": False}
        assert admin_client.get(_url(project, f"/{ticket['id']}")).json()["watchers"] == []

        watched = admin_client.post(_url(project, f"/{ticket['id']}/watch"))
        assert watched.json() == {"watching": True}


class TestCommentsAndLinks:
    def test_comments(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        ticket = create_ticket(admin_client, project["id"])
        url = _url(project, f"/{ticket['id']}/comments")

        created = admin_client.post(url, json={"content": "Looks good"})

        assert created.status_code == 201
        assert created.json()["author"]["username"] == "admin"
        assert [c["content"] for c in admin_client.get(url).json()] == ["Looks good"]
        assert admin_client.get(
            _url(project, f"/{ticket['id']}")
        ).json()["commentCount"] == 1

    def test_links_are_visible_from_both_sides(self, admin_client: TestClient) -> None:
        project = create_project(admin_client)
        blocker = create_ticket(admin_client, project["id"], "Blocker")
        blocked = create_ticket(admin_client, project["id"], "Blocked")

        created = admin_client.post(
            _url(project, f"/{blocker['id']}/links"),
            json={"linkType": "blocks", "targetTicketId": blocked["id"]},
        )
        assert created.status_code == 201

        inverse = admin_client.get(_url(project, f"/{blocked['id']}/links")).json()
        assert len(inverse) == 1
        assert inverse[0]["direction"] == "inward"
        assert inverse[0]["linkedTicket"]["id"] == blocker["id"]

        duplicate = admin_client.post(
            _url(project, f"/{blocked['id']}/links"),
            json={"linkType": "is_blocked_by", "targetTicketId": blocker["id"]},
        )
        assert duplicate.status_code == 409
