"""
Habit verification flow: one submission in, one outcome out.

    resolve local day (once) -> idempotency pre-check -> normalize evidence
    -> verify (outside any lock) -> ledger write (under the habit lock)

The uploaded image is deleted whenever the attempt ends without a
completion row referencing it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import AlreadyVerifiedTodayError, EvidenceRejectedError, NotFoundError, ValidationError
from models import Habit
from services.day_boundary import resolve_day_boundary
from services.evidence_store import delete_evidence
from services.progression import calculate_level, xp_progress_percent
from services.progression_ledger import has_verified_completion, record_attempt
from services.proof_normalizer import EvidenceTooLarge
from services.verdict_interpreter import HabitVerifier, build_evidence_bundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationOutcome:
    verified: bool
    explanation: str
    xp_earned: int
    bonus_xp: int
    new_streak: int
    user_xp: int
    user_level: int
    xp_progress_percent: int
    completed_date: str
    completion_id: UUID


def verify_habit_submission(
    db: Session,
    verifier: HabitVerifier,
    habit_id: UUID,
    image_path: Optional[str] = None,
    proof_note: Optional[str] = None,
    tz_offset_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> VerificationOutcome:
    """
    Run one verification attempt end to end.

    Raises:
        NotFoundError: unknown habit
        AlreadyVerifiedTodayError: already verified on the caller's local day
        ValidationError: neither image nor note supplied
        EvidenceRejectedError: the image is unusable and there is no note
    """
    boundary = resolve_day_boundary(tz_offset_minutes, now)
    completion_written = False
    try:
        habit = db.query(Habit).filter(Habit.id == habit_id).first()
        if habit is None:
            raise NotFoundError("Habit", str(habit_id))

        if has_verified_completion(db, habit.id, boundary.today):
            raise AlreadyVerifiedTodayError(boundary.today)

        if not image_path and not proof_note:
            raise ValidationError("Please provide an image or a note as proof", field="proof", status_code=400)

        bundle = build_evidence_bundle(
            habit.name,
            habit.description,
            habit.proof_instructions,
            image_path=image_path,
            proof_note=proof_note,
        )
        if bundle.image_error is not None and not proof_note:
            raise EvidenceRejectedError(
                str(bundle.image_error),
                too_large=isinstance(bundle.image_error, EvidenceTooLarge),
            )

        logger.info(
            f"Verifying habit: {habit.name}",
            extra={"extra_fields": {"habit_id": str(habit.id), "has_image": bundle.has_image, "day": boundary.today}},
        )
        verdict = verifier.verify(bundle)

        result = record_attempt(
            db,
            habit.id,
            boundary,
            verdict,
            proof_image=image_path,
            proof_note=proof_note,
        )
        completion_written = True
    finally:
        if not completion_written:
            delete_evidence(image_path)

    return VerificationOutcome(
        verified=result.verified,
        explanation=verdict.explanation,
        xp_earned=result.xp_earned,
        bonus_xp=result.bonus_xp,
        new_streak=result.new_streak,
        user_xp=result.user_xp,
        user_level=calculate_level(result.user_xp),
        xp_progress_percent=xp_progress_percent(result.user_xp),
        completed_date=boundary.today,
        completion_id=result.completion.id,
    )
