from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone

import pytest

from backend.domain.models import (
    Availability,
    MemberRole,
    MemberStatus,
    PollStatus,
    RecurrenceFrequency,
    RecurringPattern,
    TimeOfDay,
)
from backend.repository.data_repository import DataRepository
from backend.services.band_service import (
    BandAccessDeniedError,
    BandNotFoundError,
    BandService,
    BandValidationError,
    PollClosedError,
)
from backend.services.ranking_service import SuggestionService
from backend.services.rehearsal_service import (
    RehearsalNotFoundError,
    RehearsalService,
    RehearsalValidationError,
)
from backend.utils.config import get_settings


MONDAY = datetime(2026, 3, 2, tzinfo=timezone.utc)


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=False,
    )


def _build_services(tmp_path, filename: str):
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    band_service = BandService(repository=repository, settings=settings)
    suggestion_service = SuggestionService(
        repository=repository,
        band_service=band_service,
        settings=settings,
    )
    rehearsal_service = RehearsalService(
        repository=repository,
        band_service=band_service,
        settings=settings,
    )
    return repository, band_service, suggestion_service, rehearsal_service


def _seed_band(band_service: BandService) -> tuple[int, list[int]]:
    """Band of four; the first user is the admin."""
    users = [
        band_service.register_user(
            email=f"{name}@example.com", first_name=name.title(), last_name="Player"
        )
        for name in ("ana", "ben", "chloe", "dev")
    ]
    admin_id = users[0].user_id
    band = band_service.create_band(name="Night Shift", description=None, creator_id=admin_id)
    for user in users[1:]:
        band_service.add_member(band_id=band.band_id, requester_id=admin_id, user_id=user.user_id)
    return band.band_id, [user.user_id for user in users]


def _create_poll(band_service: BandService, band_id: int, admin_id: int):
    evening = MONDAY + timedelta(hours=18)
    return band_service.create_poll(
        band_id=band_id,
        requester_id=admin_id,
        title="Next week",
        options=[
            (evening, evening + timedelta(hours=3)),
            (evening + timedelta(days=1), evening + timedelta(days=1, minutes=90)),
        ],
    )


def _answer(
    band_service: BandService,
    poll_id: int,
    option_id: int,
    user_id: int,
    availability: Availability,
):
    return band_service.respond(
        poll_id=poll_id,
        option_id=option_id,
        requester_id=user_id,
        availability=availability,
    )


def _suggest(service: SuggestionService, band_id: int, requester_id: int, **kwargs):
    return service.suggest_times(
        band_id=band_id,
        requester_id=requester_id,
        window_start=MONDAY,
        window_end=MONDAY + timedelta(days=7),
        **kwargs,
    )


def test_suggestions_count_active_member_responses(tmp_path):
    _, band_service, suggestion_service, _ = _build_services(tmp_path, "suggest_basic.db")
    band_id, (ana, ben, chloe, dev) = _seed_band(band_service)
    poll = _create_poll(band_service, band_id, ana)
    long_option, short_option = poll.options

    _answer(band_service, poll.poll_id, long_option.option_id, ana, Availability.AVAILABLE)
    _answer(band_service, poll.poll_id, long_option.option_id, ben, Availability.AVAILABLE)
    _answer(band_service, poll.poll_id, long_option.option_id, chloe, Availability.MAYBE)
    for user_id in (ana, ben, chloe, dev):
        _answer(band_service, poll.poll_id, short_option.option_id, user_id, Availability.AVAILABLE)

    result = _suggest(suggestion_service, band_id, dev, min_attendees=2)

    assert result.total_members == 4
    assert result.requested_duration_minutes == 120
    assert len(result.slots) == 1
    slot = result.slots[0]
    assert slot.option_id == long_option.option_id
    assert (slot.available_count, slot.maybe_count, slot.total_count) == (2, 1, 4)
    assert [member.display_name for member in slot.available_members] == ["Ana Player", "Ben Player"]


def test_repeat_response_replaces_previous_answer(tmp_path):
    _, band_service, suggestion_service, _ = _build_services(tmp_path, "suggest_upsert.db")
    band_id, (ana, ben, _, _) = _seed_band(band_service)
    poll = _create_poll(band_service, band_id, ana)
    option_id = poll.options[0].option_id

    _answer(band_service, poll.poll_id, option_id, ben, Availability.AVAILABLE)
    updated = _answer(band_service, poll.poll_id, option_id, ben, Availability.MAYBE)

    assert [response.availability for response in updated.options[0].responses] == [Availability.MAYBE]
    result = _suggest(suggestion_service, band_id, ana, min_attendees=0)
    assert (result.slots[0].available_count, result.slots[0].maybe_count) == (0, 1)


def test_deactivated_member_responses_stop_counting(tmp_path):
    _, band_service, suggestion_service, _ = _build_services(tmp_path, "suggest_stale.db")
    band_id, (ana, ben, chloe, _) = _seed_band(band_service)
    poll = _create_poll(band_service, band_id, ana)
    option_id = poll.options[0].option_id
    for user_id in (ana, ben, chloe):
        _answer(band_service, poll.poll_id, option_id, user_id, Availability.AVAILABLE)

    member = band_service.deactivate_member(band_id=band_id, requester_id=ana, user_id=chloe)
    assert member.status is MemberStatus.INACTIVE

    result = _suggest(suggestion_service, band_id, ana)

    assert result.total_members == 3
    assert result.min_attendees == 2
    assert result.slots[0].available_count == 2
    assert chloe not in {ref.member_id for ref in result.slots[0].available_members}


def test_scheduling_from_poll_closes_it_and_clears_suggestions(tmp_path):
    repository, band_service, suggestion_service, rehearsal_service = _build_services(
        tmp_path, "suggest_closed.db"
    )
    band_id, (ana, ben, _, _) = _seed_band(band_service)
    poll = _create_poll(band_service, band_id, ana)
    option = poll.options[0]
    for user_id in (ana, ben):
        _answer(band_service, poll.poll_id, option.option_id, user_id, Availability.AVAILABLE)
    assert len(_suggest(suggestion_service, band_id, ana).slots) == 1

    rehearsal = rehearsal_service.create_rehearsal(
        band_id=band_id,
        requester_id=ana,
        title="Set run-through",
        start_time=option.start_time,
        end_time=option.end_time,
        poll_id=poll.poll_id,
    )

    assert rehearsal.poll_id == poll.poll_id
    assert len(rehearsal.attendance) == 4
    assert repository.get_poll(poll.poll_id).status is PollStatus.CLOSED
    assert _suggest(suggestion_service, band_id, ana).slots == []
    with pytest.raises(PollClosedError):
        band_service.respond(
            poll_id=poll.poll_id,
            option_id=option.option_id,
            requester_id=ben,
            availability=Availability.MAYBE,
        )


def test_polls_without_options_in_window_are_not_loaded(tmp_path):
    repository, band_service, _, _ = _build_services(tmp_path, "suggest_window.db")
    band_id, (ana, _, _, _) = _seed_band(band_service)
    _create_poll(band_service, band_id, ana)

    later = MONDAY + timedelta(days=30)
    assert repository.list_open_polls_in_window(band_id, later, later + timedelta(days=7)) == []
    assert len(repository.list_open_polls_in_window(band_id, MONDAY, MONDAY + timedelta(days=7))) == 1


def test_non_member_is_denied(tmp_path):
    _, band_service, suggestion_service, _ = _build_services(tmp_path, "suggest_denied.db")
    band_id, _ = _seed_band(band_service)
    outsider = band_service.register_user(email="eve@example.com", first_name="Eve", last_name="")

    with pytest.raises(BandAccessDeniedError):
        _suggest(suggestion_service, band_id, outsider.user_id)


def test_unknown_band_is_reported(tmp_path):
    _, band_service, suggestion_service, _ = _build_services(tmp_path, "suggest_missing.db")
    _, (ana, _, _, _) = _seed_band(band_service)

    with pytest.raises(BandNotFoundError):
        _suggest(suggestion_service, 999, ana)


def test_demo_seed_is_idempotent(tmp_path):
    repository, _, _, _ = _build_services(tmp_path, "suggest_seed.db")
    repository.seed_demo_data_if_empty()
    repository.seed_demo_data_if_empty()

    assert repository.count_users() == 5
    assert repository.list_active_member_ids(1) == [1, 2, 3, 4]


def test_last_active_admin_cannot_be_deactivated(tmp_path):
    _, band_service, _, _ = _build_services(tmp_path, "band_last_admin.db")
    band_id, (ana, ben, _, _) = _seed_band(band_service)

    with pytest.raises(BandValidationError):
        band_service.deactivate_member(band_id=band_id, requester_id=ana, user_id=ana)

    band_service.add_member(band_id=band_id, requester_id=ana, user_id=ben, role=MemberRole.ADMIN)
    member = band_service.deactivate_member(band_id=band_id, requester_id=ben, user_id=ana)

    assert member.status is MemberStatus.INACTIVE
    with pytest.raises(BandValidationError):
        band_service.deactivate_member(band_id=band_id, requester_id=ben, user_id=ben)


def test_update_of_rehearsal_removed_concurrently_reports_not_found(tmp_path, monkeypatch):
    repository, band_service, _, rehearsal_service = _build_services(
        tmp_path, "rehearsal_removed.db"
    )
    band_id, (ana, _, _, _) = _seed_band(band_service)
    start = MONDAY + timedelta(hours=18)
    rehearsal = rehearsal_service.create_rehearsal(
        band_id=band_id,
        requester_id=ana,
        title="Run-through",
        start_time=start,
        end_time=start + timedelta(hours=2),
    )
    repository.delete_rehearsal(rehearsal.rehearsal_id)
    # The existence check still sees the row that was just deleted.
    monkeypatch.setattr(repository, "get_rehearsal", lambda rehearsal_id: rehearsal)

    with pytest.raises(RehearsalNotFoundError):
        rehearsal_service.update_rehearsal(
            rehearsal_id=rehearsal.rehearsal_id,
            requester_id=ana,
            changes={"title": "Renamed"},
        )
    assert repository.update_rehearsal(rehearsal.rehearsal_id, {"title": "Renamed"}) is None


def _weekly_pattern(**overrides) -> RecurringPattern:
    values = {
        "frequency": RecurrenceFrequency.WEEKLY,
        "start_date": date(2026, 3, 2),
        "end_date": date(2026, 6, 1),
        "day_of_week": 1,
        "times_of_day": (
            TimeOfDay(start_time=time(18, 0), end_time=time(21, 0)),
            TimeOfDay(start_time=time(10, 30), end_time=time(12, 0)),
        ),
    }
    values.update(overrides)
    return RecurringPattern(**values)


def test_recurring_rehearsal_stores_and_removes_pattern(tmp_path):
    repository, band_service, _, rehearsal_service = _build_services(
        tmp_path, "rehearsal_recurring.db"
    )
    band_id, (ana, _, _, _) = _seed_band(band_service)
    start = MONDAY + timedelta(hours=18)

    created = rehearsal_service.create_rehearsal(
        band_id=band_id,
        requester_id=ana,
        title="Weekly practice",
        start_time=start,
        end_time=start + timedelta(hours=3),
        recurring_pattern=_weekly_pattern(),
    )

    loaded = repository.get_rehearsal(created.rehearsal_id)
    assert loaded.is_recurring is True
    pattern = loaded.recurring_pattern
    assert pattern.pattern_id is not None
    assert pattern.frequency is RecurrenceFrequency.WEEKLY
    assert (pattern.start_date, pattern.end_date, pattern.day_of_week) == (
        date(2026, 3, 2),
        date(2026, 6, 1),
        1,
    )
    assert [slot.start_time for slot in pattern.times_of_day] == [time(18, 0), time(10, 30)]
    assert len(loaded.attendance) == 4

    rehearsal_service.delete_rehearsal(rehearsal_id=created.rehearsal_id, requester_id=ana)

    with sqlite3.connect(repository.database_path) as conn:
        remaining = {
            table: conn.execute(f"SELECT COUNT(*) FROM {table};").fetchone()[0]
            for table in ("RecurringPatterns", "RecurringPatternTimes")
        }
    assert remaining == {"RecurringPatterns": 0, "RecurringPatternTimes": 0}


def test_one_off_rehearsal_has_no_pattern(tmp_path):
    _, band_service, _, rehearsal_service = _build_services(tmp_path, "rehearsal_one_off.db")
    band_id, (ana, _, _, _) = _seed_band(band_service)
    start = MONDAY + timedelta(hours=18)

    rehearsal = rehearsal_service.create_rehearsal(
        band_id=band_id,
        requester_id=ana,
        title="Gig prep",
        start_time=start,
        end_time=start + timedelta(hours=2),
    )

    assert rehearsal.is_recurring is False
    assert rehearsal.recurring_pattern is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"day_of_week": None},
        {"frequency": RecurrenceFrequency.BIWEEKLY, "day_of_week": None},
        {"frequency": RecurrenceFrequency.MONTHLY, "day_of_month": None},
        {"day_of_week": 7},
        {"frequency": RecurrenceFrequency.MONTHLY, "day_of_month": 32},
        {"end_date": date(2026, 3, 1)},
        {"times_of_day": (TimeOfDay(start_time=time(21, 0), end_time=time(18, 0)),)},
    ],
)
def test_invalid_recurring_patterns_are_rejected(tmp_path, overrides):
    repository, band_service, _, rehearsal_service = _build_services(
        tmp_path, "rehearsal_bad_pattern.db"
    )
    band_id, (ana, _, _, _) = _seed_band(band_service)
    start = MONDAY + timedelta(hours=18)

    with pytest.raises(RehearsalValidationError):
        rehearsal_service.create_rehearsal(
            band_id=band_id,
            requester_id=ana,
            title="Weekly practice",
            start_time=start,
            end_time=start + timedelta(hours=3),
            recurring_pattern=_weekly_pattern(**overrides),
        )
    assert repository.list_band_rehearsals(band_id) == []
