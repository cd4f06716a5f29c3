from sqlalchemy import select

from wavscan.core.database import get_db_session, users, user_preferences
from wavscan.features.history.service import append_history
from wavscan.features.users.service import delete_account, get_preferences, update_preferences


def test_defaults_when_row_missing(make_user):
    user = make_user()
    with get_db_session() as session:
        session.execute(user_preferences.delete())
    assert get_preferences(user.id) == {"email_notifications": True, "auto_save_history": True}


def test_update_is_upsert(make_user):
    user = make_user()
    update_preferences(user.id, False, True)
    assert get_preferences(user.id) == {"email_notifications": False, "auto_save_history": True}

    with get_db_session() as session:
        session.execute(user_preferences.delete())
    update_preferences(user.id, True, False)
    assert get_preferences(user.id) == {"email_notifications": True, "auto_save_history": False}


def test_delete_account_removes_dependent_rows(make_user):
    user = make_user()
    append_history(user, {"type": "hooks", "results": []})
    delete_account(user.id)
    with get_db_session() as session:
        assert session.execute(select(users).where(users.c.id == user.id)).first() is None
        assert session.execute(
            select(user_preferences).where(user_preferences.c.user_id == user.id)
        ).first() is None


def test_preferences_routes(client, make_user, login_as):
    login_as(make_user())
    response = client.put("/api/user/preferences", json={"email_notifications": False, "auto_save_history": False})
    assert response.status_code == 200
    assert client.get("/api/user/preferences").json()["preferences"] == {
        "email_notifications": False,
        "auto_save_history": False,
    }


def test_delete_route_clears_cookie_and_session(client, make_user, login_as):
    login_as(make_user())
    response = client.delete("/api/user/delete")
    assert response.status_code == 200
    assert "Max-Age=0" in response.headers["set-cookie"]
    assert client.get("/api/auth/me").status_code == 401
