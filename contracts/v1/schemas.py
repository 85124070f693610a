"""Pydantic row contracts shared by both storage backends and all consumers."""

from typing import Annotated, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

ConceptStatus = Literal[
    "unexplored", "unseen", "exploring", "explored", "resonates", "not_for_me", "curious"
]
UserGoal = Literal["self_discovery", "partner_communication", "expanding_knowledge"]
ComfortLevel = Literal["clinical", "balanced", "direct"]

STATUS_UNEXPLORED = "unexplored"
STATUS_UNSEEN = "unseen"
STATUS_EXPLORING = "exploring"
STATUS_EXPLORED = "explored"
STATUS_RESONATES = "resonates"
STATUS_NOT_FOR_ME = "not_for_me"
STATUS_CURIOUS = "curious"

ALL_CONCEPT_STATUSES: tuple[str, ...] = get_args(ConceptStatus)
ALL_GOALS: tuple[str, ...] = get_args(UserGoal)
ALL_COMFORT_LEVELS: tuple[str, ...] = get_args(ComfortLevel)

DEFAULT_COMFORT_LEVEL = "direct"

# Fixed-width UTC form; lexical order equals chronological order.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
TIMESTAMP_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{6}Z$"

Timestamp = Annotated[str, StringConstraints(pattern=TIMESTAMP_PATTERN)]


class _StrictModel(BaseModel):
    """Base model that rejects unknown fields and accepts camelCase aliases."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class OnboardingState(_StrictModel):
    completed: bool = False
    goal: UserGoal | None = None
    comfort_level: ComfortLevel = DEFAULT_COMFORT_LEVEL
    first_concept_viewed: bool = False


class OnboardingUpdate(_StrictModel):
    """Partial onboarding update.

    Only fields that were explicitly provided are merged; use
    ``model_dump(exclude_unset=True)`` to read them back.
    """

    completed: bool | None = None
    goal: UserGoal | None = None
    comfort_level: ComfortLevel | None = None
    first_concept_viewed: bool | None = None

    def changes(self) -> dict:
        """Return the explicitly provided fields, dropping ``None`` for non-nullable ones."""
        provided = self.model_dump(exclude_unset=True)
        return {
            key: value
            for key, value in provided.items()
            if value is not None or key == "goal"
        }


class UserConcept(_StrictModel):
    concept_id: str = Field(min_length=1)
    status: ConceptStatus = STATUS_UNEXPLORED
    explored_at: Timestamp | None = None
    updated_at: Timestamp


class JournalEntry(_StrictModel):
    id: str = Field(min_length=1)
    concept_id: str | None = None
    content: str
    created_at: Timestamp
    updated_at: Timestamp


class Setting(_StrictModel):
    key: str = Field(min_length=1)
    value: str


class PathwayProgress(_StrictModel):
    pathway_id: str = Field(min_length=1)
    started_at: Timestamp
    completed_at: Timestamp | None = None
    concepts_completed: list[str] = Field(default_factory=list)


__all__ = [
    "ConceptStatus",
    "UserGoal",
    "ComfortLevel",
    "STATUS_UNEXPLORED",
    "STATUS_UNSEEN",
    "STATUS_EXPLORING",
    "STATUS_EXPLORED",
    "STATUS_RESONATES",
    "STATUS_NOT_FOR_ME",
    "STATUS_CURIOUS",
    "ALL_CONCEPT_STATUSES",
    "ALL_GOALS",
    "ALL_COMFORT_LEVELS",
    "DEFAULT_COMFORT_LEVEL",
    "TIMESTAMP_FORMAT",
    "TIMESTAMP_PATTERN",
    "Timestamp",
    "OnboardingState",
    "OnboardingUpdate",
    "UserConcept",
    "JournalEntry",
    "Setting",
    "PathwayProgress",
]
