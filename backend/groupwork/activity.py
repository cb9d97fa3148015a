"""Activity phase machine and inbound message dispatch.

Every inbound frame is handled to completion, broadcasts included, while
holding a single lock, so the session state only ever has one writer.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from .grouping import (
    FACILITATOR_ID,
    GROUP_COUNT,
    GroupingError,
    build_activity2_groups,
    build_groups,
    select_random_reporter,
    select_reporter,
)
from .protocol import parse_message, server_message
from .realtime import BroadcastHub
from .schemas import (
    Activity1Submission,
    Activity2Submission,
    ActivityPhase,
    AnswersRequest,
    Group,
    GroupAssignment,
    JoinRequest,
)
from .store import SessionState

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Handler = Callable[[WebSocket, Any], Awaitable[None]]

# Legal source phases for each presenter command.
TRANSITIONS: Dict[str, tuple[ActivityPhase, ...]] = {
    "presenter:grouping": ("intake",),
    "presenter:activity1:start": ("grouping",),
    "presenter:activity1:end": ("activity1", "activity1:results"),
    "presenter:activity2:grouping": ("intake", "activity1:results"),
    "presenter:activity2:start": ("activity2:grouping",),
    "presenter:activity2:end": ("activity2", "activity2:results"),
}

# Running and results phase for each activity.
ACTIVITY_PHASES: Dict[int, tuple[ActivityPhase, ActivityPhase]] = {
    1: ("activity1", "activity1:results"),
    2: ("activity2", "activity2:results"),
}


def _validate(model: Type[ModelT], payload: Any) -> Optional[ModelT]:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Ignoring invalid %s payload: %s", model.__name__, exc.errors())
        return None


class ActivityController:
    def __init__(self, state: SessionState, hub: BroadcastHub, rng: Optional[random.Random] = None) -> None:
        self.state = state
        self.hub = hub
        self.rng = rng or random.Random()
        self._lock = asyncio.Lock()
        self._handlers: Dict[str, Handler] = {
            "participant:join": self.join,
            "participant:submit": self.submit_answers,
            "participant:update": self.update_answers,
            "participant:activity1:submit": self.submit_activity1,
            "participant:activity2:submit": self.submit_activity2,
            "presenter:state": self.register_presenter,
            "presenter:grouping": self.start_grouping,
            "presenter:activity1:start": self.start_activity1,
            "presenter:activity1:end": self.end_activity1,
            "presenter:activity2:grouping": self.start_activity2_grouping,
            "presenter:activity2:start": self.start_activity2,
            "presenter:activity2:end": self.end_activity2,
        }

    async def dispatch(self, websocket: WebSocket, raw: str | bytes) -> None:
        message = parse_message(raw)
        if message is None:
            logger.debug("Ignoring unparseable frame")
            return
        async with self._lock:
            await self._handlers[message.type](websocket, message.payload)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            info = self.hub.unregister(websocket)
            if info is None or info.participant_id is None:
                return
            if self.state.mark_disconnected(info.participant_id):
                await self.broadcast_presenter_state()

    # Broadcasts

    async def broadcast_phase(self) -> None:
        await self.hub.broadcast_participants(self._phase_message())

    async def broadcast_presenter_state(self) -> None:
        await self.hub.broadcast_presenters(server_message("presenter:state", self.state.presenter_state()))

    async def broadcast_activity1_results(self) -> None:
        await self.hub.broadcast_presenters(self._results_message(1))

    async def broadcast_activity2_results(self) -> None:
        await self.hub.broadcast_presenters(self._results_message(2))

    async def announce_groups(self) -> None:
        for group in self.state.groups:
            message = self._assignment_message(group)
            for member_id in group.participant_ids:
                if member_id != FACILITATOR_ID:
                    await self.hub.send_to_participant(member_id, message)

    def _phase_message(self) -> dict:
        return server_message("activity:phase", {"activityPhase": self.state.phase})

    def _results_message(self, activity: int) -> dict:
        responses = self.state.activity1_responses if activity == 1 else self.state.activity2_responses
        return server_message(f"activity{activity}:results", {"responses": responses})

    def _assignment_message(self, group: Group) -> dict:
        assignment = GroupAssignment(group=group, members=self.state.group_members(group))
        return server_message("participant:group:assigned", assignment)

    # Participant commands

    async def join(self, websocket: WebSocket, payload: Any) -> None:
        info = self.hub.info(websocket)
        if info is not None and info.role == "presenter":
            return
        request = _validate(JoinRequest, payload)
        if request is None:
            return

        participant = None
        if request.participant_id:
            participant = self.state.resume_participant(request.participant_id)
        if participant is None:
            participant = self.state.join_participant(request.name, request.has_subscription)

        if info is not None:
            self.hub.unregister(websocket)
            if info.participant_id is not None and info.participant_id != participant.id:
                self.state.mark_disconnected(info.participant_id)
        self.hub.register_participant(websocket, participant.id)
        logger.info("Participant %s joined (%s)", participant.id, participant.name)

        await self.hub.send(
            websocket,
            server_message(
                "participant:joined",
                {"participantId": participant.id, "questions": self.state.questions},
            ),
        )
        await self.hub.send(websocket, self._phase_message())
        group = self.state.find_group(participant.group_id) if participant.group_id else None
        if group is not None:
            await self.hub.send(websocket, self._assignment_message(group))
        await self.broadcast_presenter_state()

    async def submit_answers(self, websocket: WebSocket, payload: Any) -> None:
        await self._store_answers(websocket, payload, submitted=True)

    async def update_answers(self, websocket: WebSocket, payload: Any) -> None:
        await self._store_answers(websocket, payload, submitted=False)

    async def _store_answers(self, websocket: WebSocket, payload: Any, submitted: bool) -> None:
        participant_id = self._participant_id(websocket)
        if participant_id is None:
            return
        request = _validate(AnswersRequest, payload)
        if request is None:
            return
        updated = self.state.update_participant(
            participant_id, request.answers, request.has_subscription, submitted
        )
        if updated is None:
            return
        await self.hub.send(websocket, server_message("participant:updated", {"participantId": updated.id}))
        await self.broadcast_presenter_state()

    async def submit_activity1(self, websocket: WebSocket, payload: Any) -> None:
        submission = self._authorized_submission(websocket, payload, Activity1Submission, activity=1)
        if submission is None:
            return
        self.state.store_activity1_response(submission)
        await self.broadcast_activity1_results()
        await self._advance_to_results(1)

    async def submit_activity2(self, websocket: WebSocket, payload: Any) -> None:
        submission = self._authorized_submission(websocket, payload, Activity2Submission, activity=2)
        if submission is None:
            return
        self.state.store_activity2_response(submission)
        await self.broadcast_activity2_results()
        await self._advance_to_results(2)

    def _participant_id(self, websocket: WebSocket) -> Optional[str]:
        info = self.hub.info(websocket)
        return info.participant_id if info is not None else None

    def _authorized_submission(
        self, websocket: WebSocket, payload: Any, model: Type[ModelT], activity: int
    ) -> Optional[ModelT]:
        participant_id = self._participant_id(websocket)
        if participant_id is None:
            return None
        if self.state.phase != ACTIVITY_PHASES[activity][0]:
            return None
        submission = _validate(model, payload)
        if submission is None:
            return None
        group = self.state.find_group(submission.group_id)
        if group is None or group.reporter_id != participant_id:
            logger.debug("Rejecting activity %s response from %s", activity, participant_id)
            return None
        return submission

    async def _advance_to_results(self, activity: int) -> None:
        running, results = ACTIVITY_PHASES[activity]
        if self.state.phase != running:
            return
        responses = self.state.activity1_responses if activity == 1 else self.state.activity2_responses
        answered = {response.group_id for response in responses}
        if not self.state.groups or any(group.id not in answered for group in self.state.groups):
            return
        self._set_phase(results)
        await self.broadcast_phase()
        await self.broadcast_presenter_state()

    # Presenter commands

    async def register_presenter(self, websocket: WebSocket, payload: Any) -> None:
        info = self.hub.info(websocket)
        if info is not None and info.role == "participant":
            return
        self.hub.register_presenter(websocket)
        await self.hub.send(websocket, server_message("presenter:state", self.state.presenter_state()))
        await self.hub.send(websocket, self._results_message(1))
        await self.hub.send(websocket, self._results_message(2))

    def _may_run(self, websocket: WebSocket, command: str) -> bool:
        if not self.hub.is_presenter(websocket):
            logger.debug("Ignoring %s from non-presenter connection", command)
            return False
        return self.state.phase in TRANSITIONS[command]

    def _set_phase(self, phase: ActivityPhase) -> None:
        logger.info("Activity phase %s -> %s", self.state.phase, phase)
        self.state.phase = phase

    async def start_grouping(self, websocket: WebSocket, payload: Any = None) -> None:
        if not self._may_run(websocket, "presenter:grouping"):
            return
        eligible = self.state.connected_participants()
        subscribed = sum(1 for participant in eligible if participant.has_subscription)
        try:
            result = build_groups(eligible, include_facilitator=subscribed < GROUP_COUNT, rng=self.rng)
        except GroupingError as exc:
            logger.info("Grouping skipped for %d participants: %s", len(eligible), exc)
            return

        groups = [
            group.model_copy(update={"reporter_id": select_reporter(group, self.state.participants, self.rng)})
            for group in result.groups
        ]
        self.state.activity1_responses = []
        self.state.activity2_responses = []
        self.state.apply_groups(groups)
        self._set_phase("grouping")

        await self.announce_groups()
        await self.broadcast_phase()
        await self.broadcast_presenter_state()
        await self.broadcast_activity1_results()
        await self.broadcast_activity2_results()

    async def start_activity1(self, websocket: WebSocket, payload: Any = None) -> None:
        if not self._may_run(websocket, "presenter:activity1:start"):
            return
        self._set_phase("activity1")
        self.state.activity1_responses = []
        await self.broadcast_phase()
        await self.broadcast_presenter_state()
        await self.broadcast_activity1_results()
        await self.broadcast_activity2_results()

    async def end_activity1(self, websocket: WebSocket, payload: Any = None) -> None:
        if not self._may_run(websocket, "presenter:activity1:end"):
            return
        await self._return_to_intake()

    async def start_activity2_grouping(self, websocket: WebSocket, payload: Any = None) -> None:
        if not self._may_run(websocket, "presenter:activity2:grouping"):
            return
        eligible = self.state.connected_participants()
        try:
            result = build_activity2_groups(eligible, rng=self.rng)
        except GroupingError as exc:
            logger.info("Activity 2 grouping skipped for %d participants: %s", len(eligible), exc)
            return

        groups = [
            group.model_copy(update={"reporter_id": select_random_reporter(group, self.rng)})
            for group in result.groups
        ]
        self.state.activity1_responses = []
        self.state.activity2_responses = []
        self.state.apply_groups(groups)
        self._set_phase("activity2:grouping")

        await self.announce_groups()
        await self.broadcast_phase()
        await self.broadcast_presenter_state()
        await self.broadcast_activity2_results()

    async def start_activity2(self, websocket: WebSocket, payload: Any = None) -> None:
        if not self._may_run(websocket, "presenter:activity2:start"):
            return
        self._set_phase("activity2")
        self.state.activity2_responses = []
        await self.broadcast_phase()
        await self.broadcast_presenter_state()
        await self.broadcast_activity2_results()

    async def end_activity2(self, websocket: WebSocket, payload: Any = None) -> None:
        if not self._may_run(websocket, "presenter:activity2:end"):
            return
        await self._return_to_intake()

    async def _return_to_intake(self) -> None:
        self._set_phase("intake")
        self.state.reset_groups()
        await self.broadcast_phase()
        await self.broadcast_presenter_state()
        await self.broadcast_activity1_results()
        await self.broadcast_activity2_results()
