"""Tests for the suggested rehearsal time ranking."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.domain.constraints import InvalidConstraintError, InvalidRangeError
from backend.domain.models import (
    Availability,
    AvailabilityPoll,
    PollOption,
    PollResponse,
    PollStatus,
)
from backend.services.ranking_service import rank_suggested_slots


MONDAY = datetime(2026, 3, 2, tzinfo=timezone.utc)
WINDOW_START = MONDAY
WINDOW_END = MONDAY + timedelta(days=14)

AVAILABLE = Availability.AVAILABLE
MAYBE = Availability.MAYBE
UNAVAILABLE = Availability.UNAVAILABLE


def _option(
    option_id: int,
    *,
    day: int = 0,
    hour: int = 18,
    minutes: int = 180,
    responses: dict[int, Availability] | None = None,
) -> PollOption:
    start = MONDAY + timedelta(days=day, hours=hour)
    return PollOption(
        option_id=option_id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        responses=tuple(
            PollResponse(user_id=user_id, availability=availability, display_name=f"User {user_id}")
            for user_id, availability in (responses or {}).items()
        ),
    )


def _poll(poll_id: int, *options: PollOption, status: PollStatus = PollStatus.OPEN) -> AvailabilityPoll:
    return AvailabilityPoll(
        poll_id=poll_id,
        band_id=1,
        title=f"Poll {poll_id}",
        status=status,
        options=options,
    )


def _rank(polls, members, **kwargs):
    kwargs.setdefault("window_start", WINDOW_START)
    kwargs.setdefault("window_end", WINDOW_END)
    return rank_suggested_slots(polls, members, **kwargs)


# --- scenarios ---

def test_single_option_with_quorum_is_suggested() -> None:
    poll = _poll(1, _option(10, responses={1: AVAILABLE, 2: AVAILABLE, 3: MAYBE}))

    result = _rank([poll], {1, 2, 3, 4}, requested_duration_minutes=120, min_attendees=2)

    assert len(result.slots) == 1
    slot = result.slots[0]
    assert (slot.available_count, slot.maybe_count, slot.total_count) == (2, 1, 4)
    assert slot.poll_id == 1
    assert slot.option_id == 10
    assert [member.member_id for member in slot.available_members] == [1, 2]
    assert slot.available_members[0].display_name == "User 1"
    assert result.total_members == 4
    assert result.min_attendees == 2
    assert result.requested_duration_minutes == 120


def test_option_shorter_than_requested_duration_is_dropped() -> None:
    poll = _poll(1, _option(10, minutes=90, responses={1: AVAILABLE, 2: AVAILABLE, 3: MAYBE}))

    result = _rank([poll], {1, 2, 3, 4}, requested_duration_minutes=120, min_attendees=2)

    assert result.slots == []


def test_option_exactly_matching_duration_is_kept() -> None:
    poll = _poll(1, _option(10, minutes=120, responses={1: AVAILABLE}))

    result = _rank([poll], {1}, requested_duration_minutes=120, min_attendees=1)

    assert [slot.option_id for slot in result.slots] == [10]


def test_output_is_capped_at_ten_best_slots() -> None:
    members = {1, 2, 3, 4, 5}

    def responders(count: int) -> dict[int, Availability]:
        return {user_id: AVAILABLE for user_id in range(1, count + 1)}

    # Option k sits on day k; days 0-3 have 3 available, 4-7 have 2, 8-11 have 1.
    options = [_option(k, day=k, responses=responders(3 - k // 4)) for k in range(12)]
    polls = [_poll(1, *options[8:]), _poll(2, *options[4:8]), _poll(3, *options[:4])]

    result = _rank(polls, members, min_attendees=1)

    assert len(result.slots) == 10
    assert [slot.option_id for slot in result.slots] == list(range(10))


def test_default_quorum_is_half_of_active_members_rounded_up() -> None:
    members = {1, 2, 3, 4, 5, 6}
    poll = _poll(
        1,
        _option(10, day=0, responses={1: AVAILABLE, 2: AVAILABLE}),
        _option(11, day=1, responses={1: AVAILABLE, 2: AVAILABLE, 3: AVAILABLE}),
    )

    result = _rank([poll], members)

    assert result.min_attendees == 3
    assert result.requested_duration_minutes == 120
    assert [slot.option_id for slot in result.slots] == [11]


# --- filters ---

def test_responses_from_inactive_users_are_ignored() -> None:
    poll = _poll(
        1,
        _option(10, responses={1: AVAILABLE, 98: AVAILABLE, 99: MAYBE, 2: MAYBE}),
    )

    result = _rank([poll], {1, 2, 3}, min_attendees=1)

    slot = result.slots[0]
    assert slot.available_count == 1
    assert slot.maybe_count == 1
    assert [member.member_id for member in slot.available_members] == [1]


def test_unavailable_responses_count_for_nothing() -> None:
    poll = _poll(1, _option(10, responses={1: UNAVAILABLE, 2: UNAVAILABLE}))

    result = _rank([poll], {1, 2}, min_attendees=0)

    assert (result.slots[0].available_count, result.slots[0].maybe_count) == (0, 0)


def test_slots_below_quorum_are_dropped() -> None:
    poll = _poll(
        1,
        _option(10, day=0, responses={1: AVAILABLE}),
        _option(11, day=1, responses={1: AVAILABLE, 2: AVAILABLE}),
    )

    result = _rank([poll], {1, 2, 3, 4}, min_attendees=2)

    assert [slot.option_id for slot in result.slots] == [11]
    assert all(slot.available_count >= 2 for slot in result.slots)


def test_only_options_fully_inside_window_are_considered() -> None:
    members = {1}
    everyone = {1: AVAILABLE}
    poll = _poll(
        1,
        _option(10, day=-1, responses=everyone),
        # Starts inside the window but ends after it.
        _option(11, day=13, hour=23, minutes=180, responses=everyone),
        _option(12, day=0, hour=0, minutes=180, responses=everyone),
        _option(13, day=13, hour=21, minutes=180, responses=everyone),
    )

    result = _rank([poll], members, min_attendees=1)

    assert sorted(slot.option_id for slot in result.slots) == [12, 13]


def test_closed_polls_are_skipped() -> None:
    closed = _poll(1, _option(10, responses={1: AVAILABLE}), status=PollStatus.CLOSED)
    still_open = _poll(2, _option(20, day=1, responses={1: AVAILABLE}))

    result = _rank([closed, still_open], {1}, min_attendees=1)

    assert [slot.poll_id for slot in result.slots] == [2]


# --- ordering ---

def test_maybe_count_breaks_available_ties() -> None:
    poll = _poll(
        1,
        _option(10, day=0, responses={1: AVAILABLE, 2: MAYBE}),
        _option(11, day=1, responses={1: AVAILABLE, 2: MAYBE, 3: MAYBE}),
    )

    result = _rank([poll], {1, 2, 3}, min_attendees=1)

    assert [slot.option_id for slot in result.slots] == [11, 10]


def test_earlier_start_breaks_remaining_ties() -> None:
    poll = _poll(
        1,
        _option(10, day=3, responses={1: AVAILABLE}),
        _option(11, day=1, responses={1: AVAILABLE}),
        _option(12, day=2, responses={1: AVAILABLE}),
    )

    result = _rank([poll], {1}, min_attendees=1)

    assert [slot.option_id for slot in result.slots] == [11, 12, 10]


def test_full_ties_keep_input_order() -> None:
    first = _poll(1, _option(30, responses={1: AVAILABLE}))
    second = _poll(2, _option(20, responses={1: AVAILABLE}))

    result = _rank([first, second], {1}, min_attendees=1)

    assert [slot.option_id for slot in result.slots] == [30, 20]


def test_adjacent_slots_respect_total_order() -> None:
    members = {1, 2, 3, 4}
    patterns = [
        {1: AVAILABLE, 2: MAYBE},
        {1: AVAILABLE, 2: AVAILABLE},
        {1: MAYBE, 2: MAYBE, 3: AVAILABLE},
        {1: AVAILABLE, 2: AVAILABLE, 3: MAYBE, 4: MAYBE},
        {1: AVAILABLE, 2: AVAILABLE, 3: AVAILABLE},
        {3: AVAILABLE},
    ]
    options = [
        _option(index, day=(index * 5) % 7, hour=10 + index, responses=pattern)
        for index, pattern in enumerate(patterns)
    ]

    slots = _rank([_poll(1, *options)], members, min_attendees=0).slots

    for before, after in zip(slots, slots[1:]):
        assert (
            before.available_count > after.available_count
            or (
                before.available_count == after.available_count
                and before.maybe_count > after.maybe_count
            )
            or (
                before.available_count == after.available_count
                and before.maybe_count == after.maybe_count
                and before.start_time <= after.start_time
            )
        )


def test_identical_inputs_give_identical_output() -> None:
    poll = _poll(
        1,
        _option(10, day=0, responses={1: AVAILABLE, 2: MAYBE}),
        _option(11, day=1, responses={2: AVAILABLE, 1: AVAILABLE}),
        _option(12, day=2, responses={1: AVAILABLE}),
    )

    first = _rank([poll], [1, 2], min_attendees=1)
    second = _rank([poll], [1, 2], min_attendees=1)

    assert first == second


# --- empty inputs ---

def test_no_polls_gives_empty_result() -> None:
    result = _rank([], {1, 2})

    assert result.slots == []
    assert result.total_members == 2


def test_no_active_members_gives_zero_count_slots() -> None:
    poll = _poll(1, _option(10, responses={1: AVAILABLE}))

    result = _rank([poll], set())

    assert result.min_attendees == 0
    assert len(result.slots) == 1
    slot = result.slots[0]
    assert (slot.available_count, slot.maybe_count, slot.total_count) == (0, 0, 0)


def test_duplicate_member_ids_count_once() -> None:
    poll = _poll(1, _option(10, responses={1: AVAILABLE}))

    result = _rank([poll], [1, 1, 1, 1])

    assert result.total_members == 1
    assert result.min_attendees == 1
    assert len(result.slots) == 1
    assert result.slots[0].total_count == 1


# --- naive datetimes ---

def test_naive_option_times_are_read_as_utc() -> None:
    naive_start = datetime(2026, 3, 2, 18)
    naive = PollOption(
        option_id=10,
        start_time=naive_start,
        end_time=naive_start + timedelta(hours=3),
        responses=(PollResponse(user_id=1, availability=AVAILABLE),),
    )
    aware = _option(11, day=1, responses={1: AVAILABLE})

    result = _rank([_poll(1, aware, naive)], {1}, min_attendees=1)

    assert [slot.option_id for slot in result.slots] == [10, 11]
    assert result.slots[0].start_time == MONDAY + timedelta(hours=18)
    assert result.slots[0].start_time.tzinfo is not None


def test_naive_window_is_read_as_utc() -> None:
    poll = _poll(1, _option(10, responses={1: AVAILABLE}))

    result = _rank(
        [poll],
        {1},
        window_start=datetime(2026, 3, 2),
        window_end=datetime(2026, 3, 9),
        min_attendees=1,
    )

    assert [slot.option_id for slot in result.slots] == [10]


# --- errors ---

def test_inverted_window_raises() -> None:
    with pytest.raises(InvalidRangeError):
        _rank([], {1}, window_start=WINDOW_END, window_end=WINDOW_START)


def test_empty_window_raises() -> None:
    with pytest.raises(InvalidRangeError):
        _rank([], {1}, window_start=WINDOW_START, window_end=WINDOW_START)


@pytest.mark.parametrize(
    "overrides",
    [
        {"requested_duration_minutes": 0},
        {"requested_duration_minutes": -15},
        {"min_attendees": -1},
        {"limit": 0},
    ],
)
def test_invalid_constraints_raise(overrides) -> None:
    with pytest.raises(InvalidConstraintError):
        _rank([], {1}, **overrides)


def test_custom_limit_truncates() -> None:
    options = [_option(k, day=k, responses={1: AVAILABLE}) for k in range(5)]

    result = _rank([_poll(1, *options)], {1}, min_attendees=1, limit=2)

    assert [slot.option_id for slot in result.slots] == [0, 1]
