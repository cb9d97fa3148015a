"""In-memory session state for a single live activity."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TypeVar
from uuid import uuid4

from .grouping import FACILITATOR_ID, FACILITATOR_NAME
from .schemas import (
    Activity1Submission,
    Activity2Submission,
    ActivityPhase,
    Group,
    Participant,
    ParticipantSummary,
    PresenterState,
    Question,
)

SubmissionT = TypeVar("SubmissionT", Activity1Submission, Activity2Submission)


def now_ms() -> int:
    return int(time.time() * 1000)


def _upsert_by_group(responses: List[SubmissionT], submission: SubmissionT) -> None:
    for index, existing in enumerate(responses):
        if existing.group_id == submission.group_id:
            responses[index] = submission
            return
    responses.append(submission)


@dataclass
class SessionState:
    questions: List[Question]
    participants: Dict[str, Participant] = field(default_factory=dict)
    groups: List[Group] = field(default_factory=list)
    phase: ActivityPhase = "intake"
    activity1_responses: List[Activity1Submission] = field(default_factory=list)
    activity2_responses: List[Activity2Submission] = field(default_factory=list)

    def join_participant(self, name: str, has_subscription: bool, now: Optional[int] = None) -> Participant:
        stamp = now if now is not None else now_ms()
        participant = Participant(
            id=uuid4().hex,
            name=name,
            has_subscription=has_subscription,
            answers={},
            submitted=False,
            connected=True,
            joined_at=stamp,
            updated_at=stamp,
        )
        self.participants[participant.id] = participant
        return participant

    def resume_participant(self, participant_id: str, now: Optional[int] = None) -> Optional[Participant]:
        participant = self.participants.get(participant_id)
        if participant is None:
            return None
        participant.connected = True
        participant.updated_at = now if now is not None else now_ms()
        return participant

    def update_participant(
        self,
        participant_id: str,
        answers: Dict[str, str],
        has_subscription: bool,
        submitted: bool,
        now: Optional[int] = None,
    ) -> Optional[Participant]:
        participant = self.participants.get(participant_id)
        if participant is None:
            return None
        participant.answers = {**participant.answers, **answers}
        participant.has_subscription = has_subscription
        participant.submitted = participant.submitted or submitted
        participant.updated_at = now if now is not None else now_ms()
        return participant

    def mark_disconnected(self, participant_id: str, now: Optional[int] = None) -> Optional[Participant]:
        participant = self.participants.get(participant_id)
        if participant is None:
            return None
        participant.connected = False
        participant.updated_at = now if now is not None else now_ms()
        return participant

    def connected_participants(self) -> List[Participant]:
        return [participant for participant in self.participants.values() if participant.connected]

    def apply_groups(self, groups: List[Group]) -> None:
        self.groups = list(groups)
        for participant in self.participants.values():
            participant.group_id = None
        for group in self.groups:
            for member_id in group.participant_ids:
                participant = self.participants.get(member_id)
                if participant is not None:
                    participant.group_id = group.id

    def reset_groups(self) -> None:
        self.groups = []
        self.activity1_responses = []
        self.activity2_responses = []
        for participant in self.participants.values():
            participant.group_id = None

    def find_group(self, group_id: str) -> Optional[Group]:
        return next((group for group in self.groups if group.id == group_id), None)

    def group_members(self, group: Group) -> List[ParticipantSummary]:
        members: List[ParticipantSummary] = []
        for member_id in group.participant_ids:
            if member_id == FACILITATOR_ID:
                members.append(ParticipantSummary(id=FACILITATOR_ID, name=FACILITATOR_NAME, has_subscription=True))
                continue
            participant = self.participants.get(member_id)
            members.append(
                ParticipantSummary(
                    id=member_id,
                    name=participant.name if participant else "Unknown",
                    has_subscription=participant.has_subscription if participant else False,
                )
            )
        return members

    def store_activity1_response(self, submission: Activity1Submission) -> None:
        _upsert_by_group(self.activity1_responses, submission)

    def store_activity2_response(self, submission: Activity2Submission) -> None:
        _upsert_by_group(self.activity2_responses, submission)

    def presenter_state(self) -> PresenterState:
        return PresenterState(
            questions=self.questions,
            participants=list(self.participants.values()),
            groups=self.groups,
            activity_phase=self.phase,
        )
