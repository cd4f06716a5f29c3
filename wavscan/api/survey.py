from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from wavscan.core.auth import get_current_user
from wavscan.features.survey.service import random_survey, submit_feedback
from wavscan.models.user import User

router = APIRouter(prefix="/api/survey", tags=["survey"])


class FeedbackIn(BaseModel):
    page: str
    question: str
    rating: int
    comment: Optional[str] = None
    user_agent: Optional[str] = None


@router.get("")
def get_survey():
    return random_survey()


@router.post("")
def post_feedback(data: FeedbackIn, user: User = Depends(get_current_user)):
    submit_feedback(user, data.page, data.question, data.rating, data.comment, data.user_agent)
    return {"ok": True, "message": "Feedback recorded"}
