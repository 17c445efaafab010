from sqlalchemy import Column, Integer, Boolean, CheckConstraint, DateTime, ForeignKey, Text, Index, JSON, Uuid, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid
from datetime import datetime, timezone


VERDICT_VERIFIED = "VERIFIED"
VERDICT_REJECTED = "REJECTED"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, index=True, nullable=False)  # Stored lower-cased
    name = Column(Text, nullable=True)

    # --- PROFILE ---
    display_name = Column(Text, nullable=True)
    username = Column(Text, nullable=True)
    bio = Column(Text, default="", nullable=False)
    banner_color = Column(Text, default="#7c3aed", nullable=False)
    profile = Column(JSON, nullable=True)  # Onboarding answers, opaque to the server
    onboarding_complete = Column(Boolean, default=False, nullable=False)

    # --- PROGRESSION ---
    # Only ground truth is xp; level and progress are always derived (services.progression).
    xp = Column(Integer, default=0, nullable=False)

    habits = relationship("Habit", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("xp >= 0", name="ck_users_xp_non_negative"),
    )


class Habit(Base):
    __tablename__ = "habits"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, default="", nullable=True)
    proof_instructions = Column(Text, nullable=False)  # What counts as evidence

    # Frequency policy. Only 'daily' is enforced today.
    frequency_type = Column(Text, default="daily", nullable=False)
    frequency_count = Column(Integer, default=1, nullable=False)

    # --- STREAK STATE (mutated only by services.progression_ledger) ---
    streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    total_completions = Column(Integer, default=0, nullable=False)

    user = relationship("User", back_populates="habits")
    completions = relationship("Completion", back_populates="habit", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("streak >= 0", name="ck_habits_streak_non_negative"),
        CheckConstraint("longest_streak >= streak", name="ck_habits_longest_streak_gte_streak"),
        CheckConstraint("total_completions >= 0", name="ck_habits_total_completions_non_negative"),
    )


class Completion(Base):
    """
    One verification attempt, verified or rejected.

    Rows are append-only: an attempt's outcome is never edited after the fact.
    """
    __tablename__ = "completions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    habit_id = Column(Uuid(as_uuid=True), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    # Microsecond precision; attempt history is ordered by this column
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now(), nullable=False)
    completed_date = Column(Text, nullable=False)  # YYYY-MM-DD in the user's local time
    proof_image = Column(Text, nullable=True)  # Evidence store path
    proof_note = Column(Text, nullable=True)
    ai_verdict = Column(Text, nullable=False)  # VERIFIED | REJECTED
    ai_explanation = Column(Text, nullable=True)
    confidence = Column(Text, nullable=True)  # high | medium | low; null on safe-fail
    xp_earned = Column(Integer, default=0, nullable=False)

    habit = relationship("Habit", back_populates="completions")

    __table_args__ = (
        CheckConstraint("ai_verdict IN ('VERIFIED', 'REJECTED')", name="ck_completions_verdict"),
        CheckConstraint("xp_earned >= 0", name="ck_completions_xp_non_negative"),
        Index("ix_completions_habit_date_verdict", "habit_id", "completed_date", "ai_verdict"),
        # At most one VERIFIED attempt per habit per local day.
        Index(
            "uq_completions_verified_per_day",
            "habit_id",
            "completed_date",
            unique=True,
            postgresql_where=text("ai_verdict = 'VERIFIED'"),
            sqlite_where=text("ai_verdict = 'VERIFIED'"),
        ),
    )
