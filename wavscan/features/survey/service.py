"""Satisfaction survey shown after generations."""
import random
from typing import Any, Dict, Optional

from sqlalchemy import insert

from wavscan.core.database import get_db_session, user_feedback
from wavscan.core.errors import ValidationError
from wavscan.core.logging import log_event
from wavscan.models.user import User

SURVEY_QUESTIONS = (
    "How would you rate the quality of the generated results?",
    "Did the results match what you expected?",
    "Would you recommend this tool to a friend?",
    "How satisfied are you overall?",
    "Are the suggestions useful for your content?",
)

RATING_LABELS = {
    0: "Click to rate",
    1: "Very disappointing",
    2: "Disappointing",
    3: "Okay",
    4: "Good",
    5: "Excellent",
}

MIN_RATING = 1
MAX_RATING = 5


def random_survey(rng: Optional[random.Random] = None) -> Dict[str, Any]:
    picker = rng or random
    return {
        "question": picker.choice(SURVEY_QUESTIONS),
        "rating_labels": {str(k): v for k, v in RATING_LABELS.items()},
    }


def submit_feedback(
    user: User,
    page: str,
    question: str,
    rating: int,
    comment: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    if not page or not page.strip():
        raise ValidationError("page: required")
    if not question or not question.strip():
        raise ValidationError("question: required")
    if rating is None or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"rating: must be between {MIN_RATING} and {MAX_RATING}")

    with get_db_session() as session:
        session.execute(
            insert(user_feedback).values(
                user_id=user.id,
                page=page.strip()[:200],
                question=question.strip(),
                rating=rating,
                comment=(comment or None),
                user_agent=(user_agent or None) and user_agent[:500],
            )
        )

    log_event("info", "survey.feedback_recorded", user_id=user.id, event_type="survey", extra={"rating": rating})
