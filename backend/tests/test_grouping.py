import random

import pytest

from groupwork.grouping import (
    FACILITATOR_ID,
    GroupDraft,
    GroupingError,
    GroupingMember,
    build_activity2_groups,
    build_groups,
    build_small_group_sizes,
    build_target_sizes,
    fill_groups,
    select_random_reporter,
    select_reporter,
)
from groupwork.schemas import Group, Participant


def make_participant(index: int, has_subscription: bool) -> Participant:
    return Participant(
        id=f"p-{index}",
        name=f"Participant {index}",
        has_subscription=has_subscription,
        joined_at=0,
        updated_at=0,
    )


def make_cohort(total: int, subscribed: int) -> list[Participant]:
    return [make_participant(index + 1, index < subscribed) for index in range(total)]


def all_ids(groups: list[Group]) -> list[str]:
    return [member_id for group in groups for member_id in group.participant_ids]


def test_target_sizes_front_load_remainder():
    assert build_target_sizes(11, 4) == [3, 3, 3, 2]
    assert build_target_sizes(8, 4) == [2, 2, 2, 2]
    assert build_target_sizes(7, 3) == [3, 2, 2]


def test_small_group_sizes_examples():
    assert build_small_group_sizes(0) is None
    assert build_small_group_sizes(1) is None
    assert build_small_group_sizes(2) == [2]
    assert build_small_group_sizes(4) == [2, 2]
    assert build_small_group_sizes(5) == [3, 2]
    assert build_small_group_sizes(7) == [3, 2, 2]
    assert build_small_group_sizes(9) == [3, 3, 3]


@pytest.mark.parametrize("total", range(2, 30))
def test_small_group_sizes_only_twos_and_threes(total):
    sizes = build_small_group_sizes(total)
    assert sum(sizes) == total
    assert set(sizes) <= {2, 3}


@pytest.mark.parametrize("total,subscribed", [(8, 4), (11, 6), (16, 4), (21, 10)])
def test_four_agentic_groups_when_subscribers_plentiful(total, subscribed):
    cohort = make_cohort(total, subscribed)
    paid_ids = {participant.id for participant in cohort if participant.has_subscription}
    for seed in range(10):
        result = build_groups(cohort, include_facilitator=False, rng=random.Random(seed))

        assert len(result.groups) == 4
        assert all(group.label == "agentic" for group in result.groups)
        sizes = [len(group.participant_ids) for group in result.groups]
        assert max(sizes) - min(sizes) <= 1
        assert sorted(all_ids(result.groups)) == sorted(participant.id for participant in cohort)
        for group in result.groups:
            assert paid_ids & set(group.participant_ids)


def test_scarce_subscribers_split_two_agentic_two_non_agentic():
    cohort = make_cohort(8, 3)
    paid_ids = {participant.id for participant in cohort if participant.has_subscription}
    for seed in range(10):
        result = build_groups(cohort, include_facilitator=False, rng=random.Random(seed))

        labels = sorted(group.label for group in result.groups)
        assert labels == ["agentic", "agentic", "non-agentic", "non-agentic"]
        assert [len(group.participant_ids) for group in result.groups] == [2, 2, 2, 2]
        agentic_ids = {
            member_id for group in result.groups if group.label == "agentic" for member_id in group.participant_ids
        }
        assert paid_ids <= agentic_ids
        assert not result.facilitator_included


@pytest.mark.parametrize("subscribed", [2, 3])
def test_facilitator_seeds_exactly_one_agentic_group(subscribed):
    cohort = make_cohort(8, subscribed)
    for seed in range(10):
        result = build_groups(cohort, include_facilitator=True, rng=random.Random(seed))

        assert result.facilitator_included
        labels = sorted(group.label for group in result.groups)
        assert labels == ["agentic", "agentic", "non-agentic", "non-agentic"]
        holders = [group for group in result.groups if FACILITATOR_ID in group.participant_ids]
        assert len(holders) == 1
        assert holders[0].label == "agentic"
        assert len(all_ids(result.groups)) == 9


@pytest.mark.parametrize("subscribed,include", [(0, False), (1, False), (1, True), (0, True)])
def test_too_few_subscribers_is_an_error(subscribed, include):
    with pytest.raises(GroupingError):
        build_groups(make_cohort(10, subscribed), include_facilitator=include, rng=random.Random(1))


@pytest.mark.parametrize("total", [6, 7])
def test_small_cohort_gets_three_non_agentic_groups(total):
    cohort = make_cohort(total, 0)
    result = build_groups(cohort, include_facilitator=True, rng=random.Random(5))

    assert len(result.groups) == 3
    assert all(group.label == "non-agentic" for group in result.groups)
    assert all(len(group.participant_ids) >= 2 for group in result.groups)
    assert sorted(all_ids(result.groups)) == sorted(participant.id for participant in cohort)
    assert FACILITATOR_ID not in all_ids(result.groups)


@pytest.mark.parametrize("total", [0, 1, 2, 3, 4, 5])
def test_small_cohort_too_small_for_three_groups(total):
    with pytest.raises(GroupingError):
        build_groups(make_cohort(total, 0), rng=random.Random(5))


def test_same_seed_reproduces_layout():
    cohort = make_cohort(13, 5)
    first = build_groups(cohort, rng=random.Random(99))
    second = build_groups(cohort, rng=random.Random(99))
    assert first.groups == second.groups


@pytest.mark.parametrize("total", range(2, 26))
def test_activity2_groups_never_leave_anyone_alone(total):
    cohort = make_cohort(total, total // 2)
    result = build_activity2_groups(cohort, rng=random.Random(total))

    assert all(group.label == "random" for group in result.groups)
    assert all(len(group.participant_ids) in (2, 3) for group in result.groups)
    assert sorted(all_ids(result.groups)) == sorted(participant.id for participant in cohort)


@pytest.mark.parametrize("total", [0, 1])
def test_activity2_groups_need_two_people(total):
    with pytest.raises(GroupingError):
        build_activity2_groups(make_cohort(total, 0))


def test_fill_groups_fails_when_capacity_runs_out():
    drafts = [GroupDraft(id="group-1", label="random", target_size=1), GroupDraft(id="group-2", label="random", target_size=1)]
    members = [GroupingMember(id=f"m-{index}", has_subscription=False) for index in range(3)]
    with pytest.raises(GroupingError):
        fill_groups(drafts, members, random.Random(0))


def test_fill_groups_respects_admission_predicate():
    drafts = [
        GroupDraft(id="group-1", label="agentic", target_size=2),
        GroupDraft(id="group-2", label="non-agentic", target_size=2),
    ]
    paid = [GroupingMember(id="paid-1", has_subscription=True), GroupingMember(id="paid-2", has_subscription=True)]
    fill_groups(drafts, paid, random.Random(3), can_assign=lambda member, draft: draft.label == "agentic")
    assert [member.id for member in drafts[0].members] == ["paid-1", "paid-2"]
    assert drafts[1].members == []

    with pytest.raises(GroupingError):
        fill_groups(drafts, [GroupingMember(id="paid-3", has_subscription=True)], random.Random(3),
                    can_assign=lambda member, draft: draft.label == "agentic")


def test_reporter_prefers_unsubscribed_member():
    participants = {"p-1": make_participant(1, True), "p-2": make_participant(2, False)}
    group = Group(id="group-1", label="agentic", participant_ids=[FACILITATOR_ID, "p-1", "p-2"])
    for seed in range(20):
        assert select_reporter(group, participants, random.Random(seed)) == "p-2"


def test_reporter_falls_back_to_subscribed_member_but_never_facilitator():
    participants = {"p-1": make_participant(1, True), "p-3": make_participant(3, True)}
    group = Group(id="group-1", label="agentic", participant_ids=[FACILITATOR_ID, "p-1", "p-3"])
    picks = {select_reporter(group, participants, random.Random(seed)) for seed in range(30)}
    assert picks <= {"p-1", "p-3"}

    lonely = Group(id="group-2", label="agentic", participant_ids=[FACILITATOR_ID])
    assert select_reporter(lonely, participants, random.Random(0)) is None
    assert select_random_reporter(lonely, random.Random(0)) is None


def test_random_reporter_ignores_subscription():
    group = Group(id="group-1", label="random", participant_ids=["p-1", "p-2", FACILITATOR_ID])
    picks = {select_random_reporter(group, random.Random(seed)) for seed in range(50)}
    assert picks == {"p-1", "p-2"}
