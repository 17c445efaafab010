"""
Habits API Router

Habit CRUD, attempt history, and the verification endpoint that runs the
verify -> ledger flow in services.habit_verification.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from core.input_limits import clean_text
from models import Completion, Habit, User, VERDICT_VERIFIED
from schemas import CompletionResponse, HabitCreate, HabitResponse, MessageResponse, VerificationResultResponse
from services.day_boundary import MAX_TZ_OFFSET_MINUTES, resolve_day_boundary
from services.evidence_store import UploadRejected, save_upload
from services.habit_verification import verify_habit_submission
from services.verdict_interpreter import HabitVerifier, get_verifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Habits"])

HISTORY_LIMIT = 30


@router.get("/users/{user_id}/habits", response_model=List[HabitResponse])
def list_habits(
    user_id: UUID,
    tz_offset: Optional[int] = Query(None, ge=-MAX_TZ_OFFSET_MINUTES, le=MAX_TZ_OFFSET_MINUTES),
    db: Session = Depends(get_db),
):
    """
    List a user's habits, newest first, flagging those verified today.

    Only VERIFIED attempts count as done; a rejected attempt leaves the
    habit open for another try.
    """
    habits = db.query(Habit).filter(Habit.user_id == user_id).order_by(Habit.created_at.desc()).all()
    today = resolve_day_boundary(tz_offset).today

    done_today = {
        habit_id
        for (habit_id,) in db.query(Completion.habit_id).filter(
            Completion.user_id == user_id,
            Completion.completed_date == today,
            Completion.ai_verdict == VERDICT_VERIFIED,
        )
    }

    return [
        HabitResponse.model_validate(habit).model_copy(update={"completed_today": habit.id in done_today})
        for habit in habits
    ]


@router.post("/users/{user_id}/habits", response_model=HabitResponse, status_code=status.HTTP_201_CREATED)
def create_habit(user_id: UUID, payload: HabitCreate, db: Session = Depends(get_db)):
    name = clean_text(payload.name, settings.NAME_MAX_LENGTH)
    description = clean_text(payload.description, settings.DESCRIPTION_MAX_LENGTH)
    proof_instructions = clean_text(payload.proof_instructions, settings.PROOF_INSTRUCTIONS_MAX_LENGTH)

    if not name or not proof_instructions:
        raise ValidationError("Name and proof instructions are required", status_code=status.HTTP_400_BAD_REQUEST)

    user = db.query(User.id).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", str(user_id))

    habit = Habit(
        user_id=user_id,
        name=name,
        description=description or "",
        proof_instructions=proof_instructions,
        frequency_type=payload.frequency_type,
        frequency_count=payload.frequency_count,
    )
    db.add(habit)
    db.commit()
    db.refresh(habit)
    return habit


@router.delete("/habits/{habit_id}", response_model=MessageResponse)
def delete_habit(
    habit_id: UUID,
    user_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
):
    """Delete a habit and its attempt history. When user_id is given it must own the habit."""
    habit = db.query(Habit).filter(Habit.id == habit_id).first()
    if not habit:
        raise NotFoundError("Habit", str(habit_id))

    if user_id is not None and habit.user_id != user_id:
        raise ForbiddenError("Not allowed to delete this habit")

    db.delete(habit)
    db.commit()
    return {"message": "Habit deleted"}


@router.get("/habits/{habit_id}/history", response_model=List[CompletionResponse])
def habit_history(habit_id: UUID, db: Session = Depends(get_db)):
    """Most recent attempts first, rejected ones included."""
    return (
        db.query(Completion)
        .filter(Completion.habit_id == habit_id)
        .order_by(Completion.created_at.desc(), Completion.id.desc())
        .limit(HISTORY_LIMIT)
        .all()
    )


@router.post("/habits/{habit_id}/verify", response_model=VerificationResultResponse)
def verify_habit(
    habit_id: UUID,
    proof_image: Optional[UploadFile] = File(None),
    proof_note: Optional[str] = Form(None),
    tz_offset: Optional[int] = Form(None, ge=-MAX_TZ_OFFSET_MINUTES, le=MAX_TZ_OFFSET_MINUTES),
    db: Session = Depends(get_db),
    verifier: HabitVerifier = Depends(get_verifier),
):
    """
    Submit proof for today and get a verdict.

    Accepts an image (JPG/PNG/GIF/WEBP, up to UPLOAD_MAX_FILE_BYTES) and/or a
    note. The response carries the verdict and updated stats whether or not
    the attempt was verified.
    """
    image_path = None
    if proof_image is not None and proof_image.filename:
        try:
            image_path = save_upload(proof_image.file, proof_image.filename, proof_image.content_type)
        except UploadRejected as e:
            raise ValidationError(
                str(e),
                field="proof_image",
                status_code=(
                    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if e.too_large
                    else status.HTTP_400_BAD_REQUEST
                ),
            )

    outcome = verify_habit_submission(
        db,
        verifier,
        habit_id,
        image_path=image_path,
        proof_note=clean_text(proof_note, settings.PROOF_NOTE_MAX_LENGTH),
        tz_offset_minutes=tz_offset,
    )
    return outcome
