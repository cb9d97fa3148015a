"""Group assignment engine.

Partitions the connected cohort into teams. Large cohorts are split into four
groups seeded with subscribed members ("agentic"); small cohorts get three
"non-agentic" groups; the second activity uses unconstrained random groups of
two or three.

Every function here is pure apart from the injected ``random.Random`` so that
callers can reproduce a layout by passing a seeded generator.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from .schemas import Group, GroupLabel, Participant

FACILITATOR_ID = "presenter"
FACILITATOR_NAME = "Presenter"

GROUP_COUNT = 4
MIN_LARGE_COHORT = 8
SMALL_GROUP_COUNT = 3
MIN_GROUP_SIZE = 2
AGENTIC_SEED_MINIMUM = 2
AGENTIC_GROUPS_WHEN_SCARCE = 2


class GroupingError(ValueError):
    """Raised when the cohort cannot satisfy the grouping constraints."""


@dataclass(frozen=True)
class GroupingMember:
    id: str
    has_subscription: bool


@dataclass
class GroupDraft:
    id: str
    label: GroupLabel
    target_size: int
    members: list[GroupingMember] = field(default_factory=list)

    @property
    def has_capacity(self) -> bool:
        return len(self.members) < self.target_size

    def to_group(self) -> Group:
        return Group(id=self.id, label=self.label, participant_ids=[member.id for member in self.members])


@dataclass
class GroupingResult:
    groups: list[Group]
    facilitator_included: bool = False


Admission = Callable[[GroupingMember, GroupDraft], bool]


def _accept_any(member: GroupingMember, draft: GroupDraft) -> bool:
    return True


def _group_id(index: int) -> str:
    return f"group-{index + 1}"


def shuffled(items: Sequence, rng: random.Random) -> list:
    """Return a uniformly permuted copy of ``items``."""
    result = list(items)
    rng.shuffle(result)
    return result


def build_target_sizes(total: int, count: int) -> list[int]:
    base, remainder = divmod(total, count)
    return [base + 1 if index < remainder else base for index in range(count)]


def build_small_group_sizes(total: int) -> Optional[list[int]]:
    """Sizes for groups of three, absorbing a remainder into groups of two."""
    if total < MIN_GROUP_SIZE:
        return None
    triples, remainder = divmod(total, 3)
    if remainder == 0:
        return [3] * triples
    if remainder == 1:
        return [3] * (triples - 1) + [2, 2]
    return [3] * triples + [2]


def fill_groups(
    drafts: Sequence[GroupDraft],
    members: Sequence[GroupingMember],
    rng: random.Random,
    can_assign: Admission = _accept_any,
) -> None:
    """Bounded first-fit placement starting from a random rotating cursor.

    Each member is offered to at most ``len(drafts)`` drafts; the first draft
    with spare capacity that ``can_assign`` admits takes it.
    """
    if not members:
        return
    if not drafts:
        raise GroupingError("No groups available to place members into.")
    cursor = rng.randrange(len(drafts))
    for member in members:
        for _ in range(len(drafts)):
            draft = drafts[cursor % len(drafts)]
            cursor += 1
            if draft.has_capacity and can_assign(member, draft):
                draft.members.append(member)
                break
        else:
            raise GroupingError("Unable to assign all members to groups.")


def _slice_into(drafts: Sequence[GroupDraft], members: Sequence[GroupingMember]) -> None:
    cursor = 0
    for draft in drafts:
        draft.members.extend(members[cursor : cursor + draft.target_size])
        cursor += draft.target_size


def _to_members(participants: Sequence[Participant]) -> list[GroupingMember]:
    return [GroupingMember(id=participant.id, has_subscription=participant.has_subscription) for participant in participants]


def _build_small_cohort(members: list[GroupingMember], rng: random.Random) -> GroupingResult:
    sizes = build_target_sizes(len(members), SMALL_GROUP_COUNT)
    if min(sizes) < MIN_GROUP_SIZE:
        raise GroupingError(
            f"Need at least {SMALL_GROUP_COUNT * MIN_GROUP_SIZE} participants for {SMALL_GROUP_COUNT} groups."
        )
    drafts = [GroupDraft(id=_group_id(index), label="non-agentic", target_size=size) for index, size in enumerate(sizes)]
    _slice_into(drafts, shuffled(members, rng))
    return GroupingResult(groups=[draft.to_group() for draft in drafts], facilitator_included=False)


def build_groups(
    participants: Sequence[Participant],
    include_facilitator: bool = False,
    rng: Optional[random.Random] = None,
) -> GroupingResult:
    """Partition ``participants`` into subscription-balanced groups.

    Cohorts below eight members get three non-agentic groups. Larger cohorts
    get four groups: all agentic when at least four members are subscribed,
    otherwise two agentic and two non-agentic. The facilitator placeholder, when
    included, joins the subscribed pool for seeding and sizing but does not
    count toward the subscription threshold that picks the layout.

    Raises ``GroupingError`` when the constraints cannot be met.
    """
    rng = rng or random.Random()
    members = _to_members(participants)

    if len(members) < MIN_LARGE_COHORT:
        return _build_small_cohort(members, rng)

    paid = [member for member in members if member.has_subscription]
    unpaid = [member for member in members if not member.has_subscription]
    subscribed_count = len(paid)
    if include_facilitator:
        paid.append(GroupingMember(id=FACILITATOR_ID, has_subscription=True))

    target_sizes = build_target_sizes(len(members) + (1 if include_facilitator else 0), GROUP_COUNT)

    if subscribed_count >= GROUP_COUNT:
        drafts = [GroupDraft(id=_group_id(index), label="agentic", target_size=size) for index, size in enumerate(target_sizes)]
        paid_shuffled = shuffled(paid, rng)
        for draft, seed in zip(drafts, paid_shuffled):
            draft.members.append(seed)
        remaining = shuffled(paid_shuffled[GROUP_COUNT:] + unpaid, rng)
        fill_groups(drafts, remaining, rng)
        return GroupingResult(groups=[draft.to_group() for draft in drafts], facilitator_included=include_facilitator)

    if subscribed_count < AGENTIC_SEED_MINIMUM:
        raise GroupingError("Not enough paid subscribers to form agentic groups.")

    group_order = shuffled(range(GROUP_COUNT), rng)
    agentic_indexes = set(group_order[:AGENTIC_GROUPS_WHEN_SCARCE])
    drafts = [
        GroupDraft(
            id=_group_id(index),
            label="agentic" if index in agentic_indexes else "non-agentic",
            target_size=size,
        )
        for index, size in enumerate(target_sizes)
    ]
    agentic = [draft for draft in drafts if draft.label == "agentic"]

    paid_shuffled = shuffled(paid, rng)
    for draft, seed in zip(agentic, paid_shuffled):
        draft.members.append(seed)
    fill_groups(agentic, paid_shuffled[len(agentic) :], rng)

    fill_groups(
        drafts,
        shuffled(unpaid, rng),
        rng,
        can_assign=lambda member, draft: draft.label == "agentic" or not member.has_subscription,
    )
    return GroupingResult(groups=[draft.to_group() for draft in drafts], facilitator_included=include_facilitator)


def build_activity2_groups(participants: Sequence[Participant], rng: Optional[random.Random] = None) -> GroupingResult:
    """Unconstrained random groups of three, with twos absorbing any remainder."""
    sizes = build_small_group_sizes(len(participants))
    if not sizes:
        raise GroupingError(f"Need at least {MIN_GROUP_SIZE} participants for Activity 2.")
    rng = rng or random.Random()
    drafts = [GroupDraft(id=_group_id(index), label="random", target_size=size) for index, size in enumerate(sizes)]
    _slice_into(drafts, shuffled(_to_members(participants), rng))
    return GroupingResult(groups=[draft.to_group() for draft in drafts])


def select_reporter(group: Group, participants: dict[str, Participant], rng: random.Random) -> Optional[str]:
    """Prefer an unsubscribed member; never the facilitator."""
    eligible = [member_id for member_id in group.participant_ids if member_id != FACILITATOR_ID]
    unsubscribed = [
        member_id
        for member_id in eligible
        if member_id in participants and not participants[member_id].has_subscription
    ]
    pool = unsubscribed or eligible
    return rng.choice(pool) if pool else None


def select_random_reporter(group: Group, rng: random.Random) -> Optional[str]:
    eligible = [member_id for member_id in group.participant_ids if member_id != FACILITATOR_ID]
    return rng.choice(eligible) if eligible else None
