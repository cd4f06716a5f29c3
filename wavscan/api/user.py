from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from wavscan.core.auth import clear_session_cookie, get_current_user
from wavscan.features.users.service import delete_account, get_preferences, update_preferences
from wavscan.models.user import User

router = APIRouter(prefix="/api/user", tags=["user"])


class PreferencesIn(BaseModel):
    email_notifications: bool = True
    auto_save_history: bool = True


@router.get("/preferences")
def read_preferences(user: User = Depends(get_current_user)):
    return {"preferences": get_preferences(user.id)}


@router.put("/preferences")
def write_preferences(data: PreferencesIn, user: User = Depends(get_current_user)):
    prefs = update_preferences(user.id, data.email_notifications, data.auto_save_history)
    return {"ok": True, "preferences": prefs}


@router.delete("/delete")
def delete_user(response: Response, user: User = Depends(get_current_user)):
    delete_account(user.id)
    response.headers["set-cookie"] = clear_session_cookie()
    return {"ok": True, "message": "Account deleted"}
