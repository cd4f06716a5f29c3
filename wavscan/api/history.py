from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from wavscan.core.auth import get_current_user
from wavscan.features.history.service import (
    append_history,
    clear_history,
    delete_history_entry,
    history_limit,
    list_history,
)
from wavscan.models.user import User

router = APIRouter(prefix="/api/history", tags=["history"])


class HistoryEntryIn(BaseModel):
    type: str = Field(min_length=1, max_length=50)
    theme: Optional[str] = None
    platform: Optional[str] = Field(default=None, max_length=50)
    tone: Optional[str] = Field(default=None, max_length=50)
    niche: Optional[str] = Field(default=None, max_length=100)
    brief: Optional[str] = None
    results: List[Any] = []


@router.get("")
def get_history(user: User = Depends(get_current_user)):
    return {"history": list_history(user), "limit": history_limit(user)}


@router.post("", status_code=201)
def add_history(data: HistoryEntryIn, user: User = Depends(get_current_user)):
    return {"ok": True, "entry": append_history(user, data.model_dump())}


@router.delete("")
def delete_all_history(user: User = Depends(get_current_user)):
    return {"ok": True, "deleted": clear_history(user)}


@router.delete("/{entry_id}")
def delete_entry(entry_id: int, user: User = Depends(get_current_user)):
    delete_history_entry(user, entry_id)
    return {"ok": True}
