import json

import pytest

from adjudicator.server import views

from conftest import create_world


@pytest.fixture
def app_sessions(session_factory, monkeypatch):
    monkeypatch.setattr(views, "async_session", session_factory)
    return session_factory


async def test_unknown_debate_returns_error_body(app_sessions):
    response = await views.get_debate_verdicts({"querystring": {"debate_id": 999}})

    assert response.status == 404
    assert json.loads(response.body) == {
        "code": "debate_not_found",
        "description": "Debate 999 not found",
    }


async def test_unknown_user_returns_error_body(app_sessions):
    response = await views.get_user_stats({"querystring": {"user_id": 999}})

    assert response.status == 404
    assert json.loads(response.body) == {
        "code": "user_not_found",
        "description": "User 999 not found",
    }


async def test_user_stats_for_known_user(app_sessions):
    world = await create_world(app_sessions)

    response = await views.get_user_stats({"querystring": {"user_id": world.challenger_id}})

    assert response.status == 200
    body = json.loads(response.body)
    assert body["username"] == "alice"
    assert body["elo_rating"] == 1200
    assert body["total_debates"] == 0


async def test_debate_verdicts_before_resolution(app_sessions):
    world = await create_world(app_sessions)

    response = await views.get_debate_verdicts({"querystring": {"debate_id": world.debate_id}})

    assert response.status == 200
    body = json.loads(response.body)
    assert body["debate_id"] == world.debate_id
    assert body["verdict_reached"] is False
    assert body["verdicts"] == []
