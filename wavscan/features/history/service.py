"""
Generation history per user.

Free and plus accounts keep only their most recent HISTORY_LIMIT entries;
pro accounts keep everything.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, delete, and_

from wavscan.core.database import get_db_session, user_history
from wavscan.core.errors import NotFoundError
from wavscan.core.logging import log_event
from wavscan.models.user import Plan, User

HISTORY_LIMIT = 30


def history_limit(user: User) -> Optional[int]:
    return None if user.plan is Plan.PRO else HISTORY_LIMIT


def _entry_dict(row) -> Dict[str, Any]:
    return {
        "id": row.id,
        "type": row.type,
        "theme": row.theme,
        "platform": row.platform,
        "tone": row.tone,
        "niche": row.niche,
        "brief": row.brief,
        "results": row.results,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def list_history(user: User) -> List[Dict[str, Any]]:
    """Newest first."""
    query = (
        select(user_history)
        .where(user_history.c.user_id == user.id)
        .order_by(user_history.c.created_at.desc(), user_history.c.id.desc())
    )
    limit = history_limit(user)
    if limit is not None:
        query = query.limit(limit)

    with get_db_session() as session:
        rows = session.execute(query).fetchall()
    return [_entry_dict(row) for row in rows]


def append_history(user: User, entry: Dict[str, Any]) -> Dict[str, Any]:
    """Store one generation and prune older entries beyond the plan limit."""
    with get_db_session() as session:
        result = session.execute(
            insert(user_history).values(
                user_id=user.id,
                type=entry["type"],
                theme=entry.get("theme"),
                platform=entry.get("platform"),
                tone=entry.get("tone"),
                niche=entry.get("niche"),
                brief=entry.get("brief"),
                results=entry.get("results") or [],
            )
        )
        entry_id = result.inserted_primary_key[0]

        limit = history_limit(user)
        if limit is not None:
            keep = (
                select(user_history.c.id)
                .where(user_history.c.user_id == user.id)
                .order_by(user_history.c.created_at.desc(), user_history.c.id.desc())
                .limit(limit)
            )
            session.execute(
                delete(user_history).where(
                    and_(user_history.c.user_id == user.id, user_history.c.id.not_in(keep))
                )
            )

        row = session.execute(select(user_history).where(user_history.c.id == entry_id)).first()

    log_event("info", "history.appended", user_id=user.id, event_type="history")
    return _entry_dict(row)


def clear_history(user: User) -> int:
    with get_db_session() as session:
        result = session.execute(delete(user_history).where(user_history.c.user_id == user.id))
        return result.rowcount


def delete_history_entry(user: User, entry_id: int) -> None:
    with get_db_session() as session:
        result = session.execute(
            delete(user_history).where(
                and_(user_history.c.id == entry_id, user_history.c.user_id == user.id)
            )
        )
        if not result.rowcount:
            raise NotFoundError("History entry not found")
