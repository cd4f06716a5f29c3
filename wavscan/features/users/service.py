"""
User domain service.
- get_user(user_id) / get_user_by_email(email)
- get_preferences / update_preferences
- delete_account
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert, update, delete

from wavscan.core.database import (
    get_db_session,
    users,
    user_preferences,
    user_history,
    user_feedback,
    password_reset_tokens,
)
from wavscan.core.logging import log_event
from wavscan.models.user import User

DEFAULT_PREFERENCES = {"email_notifications": True, "auto_save_history": True}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(user_id: int) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        if not row:
            return None
        return User.from_row(row)


def get_user_by_email(email: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(
            select(users).where(users.c.email == normalize_email(email))
        ).first()
        if not row:
            return None
        return User.from_row(row)


def get_preferences(user_id: int) -> dict:
    with get_db_session() as session:
        row = session.execute(
            select(user_preferences).where(user_preferences.c.user_id == user_id)
        ).first()
    if not row:
        return dict(DEFAULT_PREFERENCES)
    return {
        "email_notifications": bool(row.email_notifications),
        "auto_save_history": bool(row.auto_save_history),
    }


def update_preferences(user_id: int, email_notifications: bool, auto_save_history: bool) -> dict:
    values = {
        "email_notifications": bool(email_notifications),
        "auto_save_history": bool(auto_save_history),
    }
    with get_db_session() as session:
        existing = session.execute(
            select(user_preferences.c.user_id).where(user_preferences.c.user_id == user_id)
        ).first()
        if existing:
            session.execute(
                update(user_preferences)
                .where(user_preferences.c.user_id == user_id)
                .values(**values, updated_at=datetime.now(timezone.utc))
            )
        else:
            session.execute(insert(user_preferences).values(user_id=user_id, **values))
    return values


def delete_account(user_id: int) -> None:
    """Delete the user and every row that belongs to it."""
    with get_db_session() as session:
        # Explicit deletes: SQLite does not enforce ON DELETE CASCADE by default
        for table in (user_history, user_feedback, user_preferences, password_reset_tokens):
            session.execute(delete(table).where(table.c.user_id == user_id))
        session.execute(delete(users).where(users.c.id == user_id))
    log_event("info", "account.deleted", user_id=user_id, event_type="account.deleted")
