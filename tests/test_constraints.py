"""Tests for suggestion constraint defaults and validation.

Covers every branch in validate_suggestion_constraints() and the
defaults applied by resolve_constraints().
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.domain.constraints import (
    InvalidConstraintError,
    InvalidRangeError,
    SchedulingConstraintError,
    SuggestionConstraints,
    default_min_attendees,
    resolve_constraints,
    validate_suggestion_constraints,
)


WINDOW_START = datetime(2026, 3, 2, tzinfo=timezone.utc)
WINDOW_END = WINDOW_START + timedelta(days=7)


def valid_constraints(**overrides) -> SuggestionConstraints:
    """Return a valid baseline SuggestionConstraints, optionally overriding fields."""
    defaults = {
        "window_start": WINDOW_START,
        "window_end": WINDOW_END,
        "requested_duration_minutes": 120,
        "min_attendees": 2,
        "max_results": 10,
    }
    defaults.update(overrides)
    return SuggestionConstraints(**defaults)


# --- Baseline pass ---

def test_valid_constraints_pass() -> None:
    validate_suggestion_constraints(valid_constraints())


# --- window ---

def test_equal_window_bounds_raise_invalid_range() -> None:
    with pytest.raises(InvalidRangeError):
        validate_suggestion_constraints(valid_constraints(window_end=WINDOW_START))


def test_inverted_window_raises_invalid_range() -> None:
    with pytest.raises(InvalidRangeError):
        validate_suggestion_constraints(
            valid_constraints(window_start=WINDOW_END, window_end=WINDOW_START)
        )


def test_mixed_naive_and_aware_window_raises_invalid_range() -> None:
    with pytest.raises(InvalidRangeError):
        validate_suggestion_constraints(
            valid_constraints(window_end=datetime(2026, 3, 9))
        )


# --- requested_duration_minutes ---

def test_zero_duration_raises() -> None:
    with pytest.raises(InvalidConstraintError):
        validate_suggestion_constraints(valid_constraints(requested_duration_minutes=0))


def test_negative_duration_raises() -> None:
    with pytest.raises(InvalidConstraintError):
        validate_suggestion_constraints(valid_constraints(requested_duration_minutes=-30))


# --- min_attendees ---

def test_negative_min_attendees_raises() -> None:
    with pytest.raises(InvalidConstraintError):
        validate_suggestion_constraints(valid_constraints(min_attendees=-1))


def test_zero_min_attendees_passes() -> None:
    """Zero is a valid quorum (every slot qualifies)."""
    validate_suggestion_constraints(valid_constraints(min_attendees=0))


# --- max_results ---

def test_zero_max_results_raises() -> None:
    with pytest.raises(InvalidConstraintError):
        validate_suggestion_constraints(valid_constraints(max_results=0))


# --- error hierarchy ---

def test_errors_share_value_error_base() -> None:
    assert issubclass(InvalidRangeError, SchedulingConstraintError)
    assert issubclass(InvalidConstraintError, SchedulingConstraintError)
    assert issubclass(SchedulingConstraintError, ValueError)


# --- defaults ---

@pytest.mark.parametrize(
    ("member_count", "expected"),
    [(0, 0), (1, 1), (4, 2), (5, 3), (6, 3)],
)
def test_default_min_attendees_is_half_rounded_up(member_count: int, expected: int) -> None:
    assert default_min_attendees(member_count) == expected


def test_resolve_constraints_applies_defaults() -> None:
    constraints = resolve_constraints(
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        active_member_count=6,
        requested_duration_minutes=None,
        min_attendees=None,
    )
    assert constraints.requested_duration_minutes == 120
    assert constraints.min_attendees == 3
    assert constraints.max_results == 10


def test_resolve_constraints_keeps_explicit_values() -> None:
    constraints = resolve_constraints(
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        active_member_count=6,
        requested_duration_minutes=45,
        min_attendees=0,
        default_duration_minutes=90,
        max_results=3,
    )
    assert constraints.requested_duration_minutes == 45
    assert constraints.min_attendees == 0
    assert constraints.max_results == 3


def test_resolve_constraints_validates_result() -> None:
    with pytest.raises(InvalidConstraintError):
        resolve_constraints(
            window_start=WINDOW_START,
            window_end=WINDOW_END,
            active_member_count=4,
            requested_duration_minutes=None,
            min_attendees=None,
            default_duration_minutes=0,
        )
