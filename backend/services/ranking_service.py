"""Suggested rehearsal times ranked from open availability polls."""

from __future__ import annotations

from datetime import datetime
from typing import Collection, Iterable, Iterator, Optional, Sequence

from backend.domain.constraints import SuggestionConstraints, resolve_constraints
from backend.domain.models import (
    Availability,
    AvailabilityPoll,
    MemberRef,
    PollOption,
    PollStatus,
    RankedSlot,
    SuggestionResult,
)
from backend.repository.data_repository import DataRepository
from backend.services.band_service import BandService
from backend.utils.clock import as_utc
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def _option_bounds(option: PollOption) -> tuple[datetime, datetime]:
    # Naive option times are read as UTC.
    return as_utc(option.start_time), as_utc(option.end_time)


def _candidate_options(
    polls: Iterable[AvailabilityPoll],
    constraints: SuggestionConstraints,
) -> Iterator[tuple[AvailabilityPoll, PollOption]]:
    for poll in polls:
        if poll.status is not PollStatus.OPEN:
            continue
        for option in poll.options:
            start, end = _option_bounds(option)
            # Full containment, not overlap.
            if start < constraints.window_start or end > constraints.window_end:
                continue
            if option.duration_minutes < constraints.requested_duration_minutes:
                continue
            yield poll, option


def build_slot(
    poll: AvailabilityPoll,
    option: PollOption,
    active_member_ids: Collection[int],
) -> RankedSlot:
    """Project one option into a slot, counting only active members' responses."""
    available = [
        response
        for response in option.responses
        if response.availability is Availability.AVAILABLE
        and response.user_id in active_member_ids
    ]
    maybe_count = sum(
        1
        for response in option.responses
        if response.availability is Availability.MAYBE
        and response.user_id in active_member_ids
    )
    start_time, end_time = _option_bounds(option)
    return RankedSlot(
        start_time=start_time,
        end_time=end_time,
        available_count=len(available),
        maybe_count=maybe_count,
        total_count=len(active_member_ids),
        available_members=tuple(
            MemberRef(member_id=response.user_id, display_name=response.display_name)
            for response in available
        ),
        poll_id=poll.poll_id,
        option_id=option.option_id,
    )


def slot_sort_key(slot: RankedSlot) -> tuple[int, int, datetime]:
    return (-slot.available_count, -slot.maybe_count, slot.start_time)


def rank_slots(
    polls: Sequence[AvailabilityPoll],
    active_member_ids: Collection[int],
    constraints: SuggestionConstraints,
) -> list[RankedSlot]:
    """Filter, rank and truncate candidate slots for validated constraints."""
    members = frozenset(active_member_ids)
    candidates = (
        build_slot(poll, option, members)
        for poll, option in _candidate_options(polls, constraints)
    )
    eligible = [slot for slot in candidates if slot.available_count >= constraints.min_attendees]
    # sorted() is stable: slots equal on every key keep input order.
    return sorted(eligible, key=slot_sort_key)[: constraints.max_results]


def rank_suggested_slots(
    polls: Sequence[AvailabilityPoll],
    active_member_ids: Collection[int],
    *,
    window_start: datetime,
    window_end: datetime,
    requested_duration_minutes: Optional[int] = None,
    min_attendees: Optional[int] = None,
    limit: int = 10,
    default_duration_minutes: int = 120,
) -> SuggestionResult:
    """Return the best rehearsal slots from a snapshot of polls and membership.

    Options must lie fully inside ``[window_start, window_end]`` and last at
    least ``requested_duration_minutes``. Only responses from
    ``active_member_ids`` are counted. Slots with fewer than ``min_attendees``
    available members are dropped; the rest are ordered by available count
    (desc), maybe count (desc) and start time (asc), and cut to ``limit``.

    Naive datetimes are read as UTC and duplicate member ids count once.
    Raises ``InvalidRangeError`` or ``InvalidConstraintError`` on bad input.
    """
    members = frozenset(active_member_ids)
    constraints = resolve_constraints(
        window_start=as_utc(window_start),
        window_end=as_utc(window_end),
        active_member_count=len(members),
        requested_duration_minutes=requested_duration_minutes,
        min_attendees=min_attendees,
        default_duration_minutes=default_duration_minutes,
        max_results=limit,
    )
    return SuggestionResult(
        slots=rank_slots(polls, members, constraints),
        total_members=len(members),
        min_attendees=constraints.min_attendees,
        requested_duration_minutes=constraints.requested_duration_minutes,
    )


class SuggestionService:
    """Snapshots band state from storage and runs the ranking over it."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        band_service: Optional[BandService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._band_service = band_service or BandService(
            repository=self._repository,
            settings=self._settings,
        )

    def suggest_times(
        self,
        *,
        band_id: int,
        requester_id: int,
        window_start: datetime,
        window_end: datetime,
        duration_minutes: Optional[int] = None,
        min_attendees: Optional[int] = None,
    ) -> SuggestionResult:
        self._band_service.require_member(band_id=band_id, user_id=requester_id)

        active_member_ids = self._repository.list_active_member_ids(band_id)
        polls = self._repository.list_open_polls_in_window(
            band_id=band_id,
            window_start=window_start,
            window_end=window_end,
        )
        result = rank_suggested_slots(
            polls,
            active_member_ids,
            window_start=window_start,
            window_end=window_end,
            requested_duration_minutes=duration_minutes,
            min_attendees=min_attendees,
            limit=self._settings.suggestion_max_results,
            default_duration_minutes=self._settings.suggestion_default_duration_minutes,
        )
        logger.info(
            (
                "Suggested times ranked | band_id=%s | polls=%s | members=%s | "
                "min_attendees=%s | duration=%s | slots=%s"
            ),
            band_id,
            len(polls),
            result.total_members,
            result.min_attendees,
            result.requested_duration_minutes,
            len(result.slots),
        )
        return result
