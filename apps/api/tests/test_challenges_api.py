"""Tests for the challenges endpoints."""

from unittest.mock import Mock

import pytest

from app.services import tasks

from fakes import day, make_challenge


def test_requires_authentication(client, api_base):
    r = client.get(f"{api_base}/challenges/challenge-1")
    assert r.status_code == 401


def test_rejects_invalid_token(client, api_base):
    r = client.get(
        f"{api_base}/challenges/challenge-1",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401


def test_create_challenge(client, api_base, auth_headers_for, repository):
    r = client.post(
        f"{api_base}/challenges/workspaces/workspace-1",
        json={
            "title": "30 Days of Reading",
            "type": "cumulative",
            "rules": {"target_value": 30, "target_unit": "completions"},
        },
        headers=auth_headers_for("creator"),
    )

    assert r.status_code == 201
    data = r.json()
    assert data["created_by"] == "creator"
    assert data["status"] == "active"
    assert [p["user_id"] for p in data["participants"]] == ["creator"]
    assert repository.get_challenge(data["id"]) is not None


def test_create_rejects_invalid_payload(client, api_base, auth_headers_for):
    r = client.post(
        f"{api_base}/challenges/workspaces/workspace-1",
        json={"title": "x", "type": "streak", "rules": {"target_value": 5}},
        headers=auth_headers_for("creator"),
    )
    assert r.status_code == 422


def test_unknown_challenge_is_404(client, api_base, auth_headers_for):
    r = client.get(f"{api_base}/challenges/missing", headers=auth_headers_for("u1"))
    assert r.status_code == 404


def test_join_and_leave(client, api_base, auth_headers_for, repository):
    repository.add_challenge(make_challenge(id="c1"))
    headers = auth_headers_for("u2")

    r = client.post(f"{api_base}/challenges/c1/join", json={}, headers=headers)
    assert r.status_code == 200
    assert {p["user_id"] for p in r.json()["participants"]} == {"creator", "u2"}

    r = client.post(f"{api_base}/challenges/c1/leave", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"success": True}


def test_domain_error_is_400(client, api_base, auth_headers_for, repository):
    repository.add_challenge(make_challenge(id="c1"))

    r = client.post(f"{api_base}/challenges/c1/leave", headers=auth_headers_for("creator"))

    assert r.status_code == 400
    assert "cancel" in r.json()["detail"]


def test_cancel_by_creator(client, api_base, auth_headers_for, repository):
    repository.add_challenge(make_challenge(id="c1"))

    r = client.post(f"{api_base}/challenges/c1/cancel", headers=auth_headers_for("creator"))

    assert r.status_code == 200
    assert r.json() == {"success": True, "status": "cancelled"}


def test_rules_patch(client, api_base, auth_headers_for, repository):
    repository.add_challenge(make_challenge(id="c1", status="upcoming"))

    r = client.patch(
        f"{api_base}/challenges/c1/rules",
        json={"target_value": 14},
        headers=auth_headers_for("creator"),
    )

    assert r.status_code == 200
    assert r.json()["rules"]["target_value"] == 14
    assert r.json()["rules"]["grace_period_hours"] == 4


def test_leaderboard(client, api_base, auth_headers_for, repository):
    repository.add_challenge(
        make_challenge(
            id="c1",
            participants=[
                {"user_id": "creator", "progress": {"current_streak": 2}},
                {"user_id": "u2", "progress": {"current_streak": 5}},
            ],
        )
    )

    r = client.get(f"{api_base}/challenges/c1/leaderboard", headers=auth_headers_for("u2"))

    assert r.status_code == 200
    assert [(e["rank"], e["user_id"]) for e in r.json()] == [(1, "u2"), (2, "creator")]


def test_progress_runs_inline(client, api_base, auth_headers_for, repository):
    repository.add_habit("h-1", "u1")
    repository.add_challenge(
        make_challenge(id="c1", participants=[{"user_id": "u1", "linked_habit_ids": ["h-1"]}])
    )
    repository.add_entry("u1", "h-1", day(10))

    r = client.post(
        f"{api_base}/challenges/progress",
        json={"habit_id": "h-1"},
        headers=auth_headers_for("u1"),
    )

    assert r.status_code == 200
    data = r.json()
    assert data["processed"] is True
    assert data["updates"][0]["progress"]["current_streak"] == 1


def test_progress_for_unknown_habit_is_not_an_error(client, api_base, auth_headers_for):
    r = client.post(
        f"{api_base}/challenges/progress",
        json={"habit_id": "ghost"},
        headers=auth_headers_for("u1"),
    )

    assert r.status_code == 200
    assert r.json()["processed"] is False


def test_progress_can_be_enqueued(client, api_base, auth_headers_for, monkeypatch):
    task = Mock()
    task.delay.return_value = Mock(id="task-123")
    monkeypatch.setattr(tasks, "process_challenge_progress_task", task)

    r = client.post(
        f"{api_base}/challenges/progress",
        json={"habit_id": "h-1", "enqueue": True},
        headers=auth_headers_for("u1"),
    )

    assert r.status_code == 200
    assert r.json() == {"queued": True, "task_id": "task-123"}
    task.delay.assert_called_once_with("u1", "h-1")


@pytest.mark.requires_supabase
def test_create_and_fetch_against_supabase(api_base, auth_headers_for):
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app, base_url="http://test") as live_client:
        headers = auth_headers_for("integration-user")
        r = live_client.post(
            f"{api_base}/challenges/workspaces/integration-workspace",
            json={
                "title": "Integration Challenge",
                "type": "streak",
                "rules": {"target_value": 7},
            },
            headers=headers,
        )
        assert r.status_code == 201

        challenge_id = r.json()["id"]
        r = live_client.get(f"{api_base}/challenges/{challenge_id}", headers=headers)
        assert r.status_code == 200
        assert r.json()["title"] == "Integration Challenge"
