import pytest

from wavscan.core.errors import NotFoundError
from wavscan.features.history.service import (
    HISTORY_LIMIT,
    append_history,
    clear_history,
    delete_history_entry,
    list_history,
)


def _entry(i):
    return {"type": "hooks", "theme": f"theme {i}", "platform": "tiktok", "results": [f"hook {i}"]}


def test_append_and_list_newest_first(make_user):
    user = make_user()
    append_history(user, _entry(1))
    append_history(user, _entry(2))

    history = list_history(user)
    assert [h["theme"] for h in history] == ["theme 2", "theme 1"]
    assert history[0]["results"] == ["hook 2"]


@pytest.mark.parametrize("plan", ["free", "plus"])
def test_limited_plans_prune_to_limit(make_user, plan):
    user = make_user(plan=plan)
    for i in range(HISTORY_LIMIT + 5):
        append_history(user, _entry(i))

    history = list_history(user)
    assert len(history) == HISTORY_LIMIT
    assert history[0]["theme"] == f"theme {HISTORY_LIMIT + 4}"
    assert history[-1]["theme"] == "theme 5"


def test_pro_keeps_everything(make_user):
    user = make_user(plan="pro")
    for i in range(HISTORY_LIMIT + 5):
        append_history(user, _entry(i))
    assert len(list_history(user)) == HISTORY_LIMIT + 5


def test_history_is_per_user(make_user):
    alice = make_user()
    bob = make_user()
    append_history(alice, _entry(1))
    assert list_history(bob) == []


def test_delete_entry(make_user):
    user = make_user()
    entry = append_history(user, _entry(1))
    delete_history_entry(user, entry["id"])
    assert list_history(user) == []


def test_delete_other_users_entry_is_not_found(make_user):
    alice = make_user()
    bob = make_user()
    entry = append_history(alice, _entry(1))
    with pytest.raises(NotFoundError):
        delete_history_entry(bob, entry["id"])
    assert len(list_history(alice)) == 1


def test_clear_history(make_user):
    user = make_user()
    append_history(user, _entry(1))
    append_history(user, _entry(2))
    assert clear_history(user) == 2
    assert list_history(user) == []


def test_history_routes(client, make_user, login_as):
    login_as(make_user())
    response = client.post("/api/history", json=_entry(1))
    assert response.status_code == 201
    entry_id = response.json()["entry"]["id"]

    response = client.get("/api/history")
    assert response.status_code == 200
    assert response.json()["limit"] == HISTORY_LIMIT
    assert len(response.json()["history"]) == 1

    assert client.delete(f"/api/history/{entry_id}").status_code == 200
    response = client.delete(f"/api/history/{entry_id}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_history_requires_session(client):
    assert client.get("/api/history").status_code == 401


@pytest.mark.parametrize("field,size", [("platform", 51), ("tone", 51), ("niche", 101)])
def test_history_route_rejects_oversized_fields(client, make_user, login_as, field, size):
    login_as(make_user())
    entry = _entry(1)
    entry[field] = "x" * size
    response = client.post("/api/history", json=entry)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"
    assert client.get("/api/history").json()["history"] == []
