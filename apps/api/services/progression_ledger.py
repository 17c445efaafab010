"""
Progression Ledger

Applies one verdict to a habit and its owner:

    untried / rejected-only  --VERIFIED-->  verified (terminal for the day)

Every attempt that reached the verifier is written as a Completion row.
Only the first VERIFIED attempt per (habit, local day) moves the streak,
total_completions and the user's XP; those updates and the completion row
commit together.

Exclusion for the read-then-write is layered:
- an in-process lock per habit id (serializes threads in this worker),
- SELECT ... FOR UPDATE on the habit and user rows (serializes workers on
  PostgreSQL; SQLite ignores it),
- the uq_completions_verified_per_day partial unique index, whose violation
  is reported as AlreadyVerifiedToday.
"""
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import AlreadyVerifiedTodayError, NotFoundError
from models import Completion, Habit, User, VERDICT_REJECTED, VERDICT_VERIFIED
from services.day_boundary import DayBoundary
from services.progression import streak_milestone_bonus
from services.verdict_interpreter import Verdict

logger = logging.getLogger(__name__)


class _HabitLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.Lock()


_habit_locks: "weakref.WeakValueDictionary[UUID, _HabitLock]" = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()


def _lock_for(habit_id: UUID) -> _HabitLock:
    with _registry_lock:
        entry = _habit_locks.get(habit_id)
        if entry is None:
            entry = _HabitLock()
            _habit_locks[habit_id] = entry
        return entry


@contextmanager
def locked_habit(habit_id: UUID):
    """Hold the per-habit lock for the duration of the block."""
    entry = _lock_for(habit_id)
    with entry.lock:
        yield


@dataclass(frozen=True)
class LedgerResult:
    completion: Completion
    verified: bool
    xp_earned: int
    bonus_xp: int
    new_streak: int
    longest_streak: int
    user_xp: int


def has_verified_completion(db: Session, habit_id: UUID, completed_date: str) -> bool:
    """Only VERIFIED rows count; rejected attempts never block a retry."""
    return db.query(Completion.id).filter(
        Completion.habit_id == habit_id,
        Completion.completed_date == completed_date,
        Completion.ai_verdict == VERDICT_VERIFIED,
    ).first() is not None


def record_attempt(
    db: Session,
    habit_id: UUID,
    boundary: DayBoundary,
    verdict: Verdict,
    proof_image: Optional[str] = None,
    proof_note: Optional[str] = None,
) -> LedgerResult:
    """
    Persist one attempt and, if verified, advance streak and XP.

    Raises:
        NotFoundError: the habit no longer exists
        AlreadyVerifiedTodayError: a verified completion for boundary.today
            already exists (checked again under the lock)
    """
    with locked_habit(habit_id):
        habit = (
            db.query(Habit)
            .filter(Habit.id == habit_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if habit is None:
            raise NotFoundError("Habit", str(habit_id))

        if has_verified_completion(db, habit.id, boundary.today):
            raise AlreadyVerifiedTodayError(boundary.today)

        user = (
            db.query(User)
            .filter(User.id == habit.user_id)
            .populate_existing()
            .with_for_update()
            .one()
        )

        completion = Completion(
            habit_id=habit.id,
            user_id=habit.user_id,
            completed_date=boundary.today,
            proof_image=proof_image,
            proof_note=proof_note,
            ai_verdict=VERDICT_VERIFIED if verdict.verified else VERDICT_REJECTED,
            ai_explanation=verdict.explanation,
            confidence=verdict.confidence,
            xp_earned=verdict.xp_earned if verdict.verified else 0,
        )
        db.add(completion)

        bonus_xp = 0
        if verdict.verified:
            continued = has_verified_completion(db, habit.id, boundary.yesterday)
            new_streak = (habit.streak or 0) + 1 if continued else 1

            habit.streak = new_streak
            habit.longest_streak = max(habit.longest_streak or 0, new_streak)
            habit.total_completions = (habit.total_completions or 0) + 1

            bonus_xp = streak_milestone_bonus(new_streak)
            user.xp = (user.xp or 0) + completion.xp_earned + bonus_xp

            if bonus_xp:
                logger.info(
                    f"Streak milestone! {new_streak} days, bonus {bonus_xp} XP",
                    extra={"extra_fields": {"habit_id": str(habit.id), "streak": new_streak, "bonus_xp": bonus_xp}},
                )

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Concurrent verified completion for habit {habit_id} on {boundary.today}")
            raise AlreadyVerifiedTodayError(boundary.today)

        return LedgerResult(
            completion=completion,
            verified=verdict.verified,
            xp_earned=completion.xp_earned,
            bonus_xp=bonus_xp,
            new_streak=habit.streak,
            longest_streak=habit.longest_streak,
            user_xp=user.xp,
        )
