"""v1 row contracts for the on-device data layer."""

__version__ = "1.0.0"

from .schemas import (
    ALL_COMFORT_LEVELS,
    ALL_CONCEPT_STATUSES,
    ALL_GOALS,
    DEFAULT_COMFORT_LEVEL,
    STATUS_CURIOUS,
    STATUS_EXPLORED,
    STATUS_NOT_FOR_ME,
    STATUS_RESONATES,
    STATUS_UNEXPLORED,
    STATUS_UNSEEN,
    STATUS_EXPLORING,
    ComfortLevel,
    ConceptStatus,
    JournalEntry,
    OnboardingState,
    OnboardingUpdate,
    PathwayProgress,
    Setting,
    UserConcept,
    UserGoal,
)

__all__ = [
    "__version__",
    "ALL_COMFORT_LEVELS",
    "ALL_CONCEPT_STATUSES",
    "ALL_GOALS",
    "DEFAULT_COMFORT_LEVEL",
    "STATUS_CURIOUS",
    "STATUS_EXPLORED",
    "STATUS_NOT_FOR_ME",
    "STATUS_RESONATES",
    "STATUS_UNEXPLORED",
    "STATUS_UNSEEN",
    "STATUS_EXPLORING",
    "ComfortLevel",
    "ConceptStatus",
    "JournalEntry",
    "OnboardingState",
    "OnboardingUpdate",
    "PathwayProgress",
    "Setting",
    "UserConcept",
    "UserGoal",
]
