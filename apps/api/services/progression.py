"""
Progression Calculator

Level and progress are pure functions of a user's XP and are recomputed on
every read; nothing here is persisted.

    level(xp)         = floor(1 + sqrt(xp / 50))
    xp_for_level(L)   = L^2 * 50
"""
import math
from typing import Optional

XP_PER_LEVEL_UNIT = 50

# Checked in order; first match wins so 30 and 100 don't also earn the every-10 bonus.
STREAK_MILESTONE_BONUSES = (
    (3, 30),
    (7, 100),
    (14, 150),
    (30, 500),
    (100, 2000),
)
EVERY_TEN_DAYS_BONUS = 50


def calculate_level(xp: int) -> int:
    return math.floor(1 + math.sqrt(max(xp, 0) / XP_PER_LEVEL_UNIT))


def xp_for_level(level: int) -> int:
    """Total XP at which `level` ends (and level + 1 begins)."""
    return level ** 2 * XP_PER_LEVEL_UNIT


def xp_progress_percent(xp: int) -> int:
    """How far through the current level the user is, 0-100."""
    level = calculate_level(xp)
    current_level_xp = xp_for_level(level - 1)
    next_level_xp = xp_for_level(level)
    progress_in_level = xp - current_level_xp
    level_range = next_level_xp - current_level_xp
    # Half-up rounding; round() would send 12.5 to 12
    percent = math.floor(progress_in_level / level_range * 100 + 0.5)
    return max(0, min(100, percent))


def streak_milestone_bonus(streak: int) -> int:
    """Bonus XP for reaching `streak`, or 0."""
    for milestone, bonus in STREAK_MILESTONE_BONUSES:
        if streak == milestone:
            return bonus
    if streak > 0 and streak % 10 == 0:
        return EVERY_TEN_DAYS_BONUS
    return 0


def progression_snapshot(xp: Optional[int]) -> dict:
    xp = xp or 0
    level = calculate_level(xp)
    return {
        "xp": xp,
        "level": level,
        "xp_progress_percent": xp_progress_percent(xp),
        "xp_for_next_level": xp_for_level(level),
    }
