from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from uuid import UUID
from typing import Optional, Dict, Any


class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class UserProfileUpdate(BaseModel):
    profile: Dict[str, Any]


class UserResponse(BaseModel):
    id: UUID
    created_at: datetime
    email: str
    name: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    banner_color: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None
    onboarding_complete: bool = False
    xp: int = 0
    already_existed: bool = False

    model_config = ConfigDict(from_attributes=True)


class UserStatsResponse(UserResponse):
    """User plus derived progression; level fields are computed, never stored."""
    level: int
    xp_progress_percent: int
    xp_for_next_level: int
    habit_count: int
    total_completions: int


class HabitCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    proof_instructions: Optional[str] = None
    frequency_type: str = "daily"
    frequency_count: int = Field(default=1, ge=1)


class HabitResponse(BaseModel):
    id: UUID
    user_id: UUID
    created_at: datetime
    name: str
    description: Optional[str] = None
    proof_instructions: str
    frequency_type: str
    frequency_count: int
    streak: int
    longest_streak: int
    total_completions: int
    completed_today: bool = False

    model_config = ConfigDict(from_attributes=True)


class CompletionResponse(BaseModel):
    """One verification attempt, verified or not."""
    id: UUID
    habit_id: UUID
    user_id: UUID
    created_at: datetime
    completed_date: str
    proof_image: Optional[str] = None
    proof_note: Optional[str] = None
    ai_verdict: str
    ai_explanation: Optional[str] = None
    confidence: Optional[str] = None
    xp_earned: int

    model_config = ConfigDict(from_attributes=True)


class VerificationResultResponse(BaseModel):
    """Returned for verified and rejected attempts alike."""
    verified: bool
    explanation: str
    xp_earned: int
    bonus_xp: int = 0
    new_streak: int
    user_xp: int
    user_level: int
    xp_progress_percent: int
    completed_date: str

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    message: str
