"""Pydantic schemas for the groupwork wire protocol."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

ActivityPhase = Literal[
    "intake",
    "grouping",
    "activity1",
    "activity1:results",
    "activity2:grouping",
    "activity2",
    "activity2:results",
]
GroupLabel = Literal["agentic", "non-agentic", "random"]

NonBlankStr = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]


class WireModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Question(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str


class Participant(WireModel):
    id: str
    name: str
    has_subscription: bool
    group_id: Optional[str] = None
    answers: dict[str, str] = Field(default_factory=dict)
    submitted: bool = False
    connected: bool = True
    joined_at: int
    updated_at: int


class ParticipantSummary(WireModel):
    id: str
    name: str
    has_subscription: bool


class Group(WireModel):
    id: str
    label: GroupLabel
    participant_ids: list[str]
    reporter_id: Optional[str] = None


class GroupAssignment(WireModel):
    group: Group
    members: list[ParticipantSummary]


class Activity1Submission(WireModel):
    group_id: NonBlankStr
    question_asked: NonBlankStr
    impressions: NonBlankStr


class Activity2Submission(WireModel):
    group_id: NonBlankStr
    rag_impressions: NonBlankStr
    trick_impressions: NonBlankStr
    citation_impressions: NonBlankStr


class PresenterState(WireModel):
    questions: list[Question]
    participants: list[Participant]
    groups: list[Group]
    activity_phase: ActivityPhase


class JoinRequest(WireModel):
    name: NonBlankStr
    has_subscription: StrictBool
    participant_id: Optional[str] = None


class AnswersRequest(WireModel):
    answers: dict[str, str] = Field(default_factory=dict)
    has_subscription: StrictBool

    @field_validator("answers", mode="before")
    @classmethod
    def _keep_text_answers(cls, value: Any) -> dict[str, str]:
        # Non-object payloads merge as nothing; non-text values are dropped.
        if not isinstance(value, dict):
            return {}
        return {str(key): text for key, text in value.items() if isinstance(text, str)}
