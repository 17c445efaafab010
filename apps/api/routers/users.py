"""
Users API Router

Sign-up by name + email (an existing email just returns that user), user
stats with derived level/progress, and onboarding profile answers.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from core.input_limits import clean_email, clean_text, is_valid_email
from models import Habit, User
from schemas import UserCreate, UserProfileUpdate, UserResponse, UserStatsResponse
from services.progression import progression_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/users", tags=["Users"])


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", str(user_id))
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """
    Create a user. If the email is already registered, return that user
    (200, already_existed=true) instead of failing.
    """
    name = clean_text(payload.name, settings.NAME_MAX_LENGTH)
    email = clean_email(payload.email)

    if not name or not email:
        raise ValidationError("Name and email are required", status_code=status.HTTP_400_BAD_REQUEST)
    if not is_valid_email(email):
        raise ValidationError("Please enter a valid email address", field="email", status_code=status.HTTP_400_BAD_REQUEST)

    existing = db.query(User).filter(User.email == email).first()
    if existing:
        body = UserResponse.model_validate(existing).model_copy(update={"already_existed": True})
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json"))

    user = User(name=name, email=email)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent sign-up for the same email
        db.rollback()
        existing = db.query(User).filter(User.email == email).one()
        body = UserResponse.model_validate(existing).model_copy(update={"already_existed": True})
        return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json"))
    db.refresh(user)
    logger.info(f"Created user {user.id}")
    return user


@router.get("/{user_id}", response_model=UserStatsResponse)
def get_user(user_id: UUID, db: Session = Depends(get_db)):
    """User with level, progress and habit totals computed from current XP."""
    user = _get_user_or_404(db, user_id)

    habit_count, total_completions = db.query(
        func.count(Habit.id),
        func.coalesce(func.sum(Habit.total_completions), 0),
    ).filter(Habit.user_id == user.id).one()

    snapshot = progression_snapshot(user.xp)
    return UserStatsResponse(
        **UserResponse.model_validate(user).model_dump(),
        level=snapshot["level"],
        xp_progress_percent=snapshot["xp_progress_percent"],
        xp_for_next_level=snapshot["xp_for_next_level"],
        habit_count=habit_count,
        total_completions=total_completions,
    )


@router.put("/{user_id}/profile", response_model=UserResponse)
def save_profile(user_id: UUID, payload: UserProfileUpdate, db: Session = Depends(get_db)):
    """Save onboarding answers and mark onboarding complete."""
    user = _get_user_or_404(db, user_id)
    user.profile = payload.profile
    user.onboarding_complete = True
    db.commit()
    db.refresh(user)
    return user
