"""Domain-level validation rules for rehearsal time suggestions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class SchedulingConstraintError(ValueError):
    """Base class for invalid suggestion inputs."""


class InvalidRangeError(SchedulingConstraintError):
    """Raised when the search window is empty or inverted."""


class InvalidConstraintError(SchedulingConstraintError):
    """Raised when duration, quorum or limit values are out of bounds."""


@dataclass(frozen=True)
class SuggestionConstraints:
    window_start: datetime
    window_end: datetime
    requested_duration_minutes: int
    min_attendees: int
    max_results: int


def default_min_attendees(active_member_count: int) -> int:
    """Half of the active members, rounded up."""
    return math.ceil(active_member_count / 2)


def resolve_constraints(
    *,
    window_start: datetime,
    window_end: datetime,
    active_member_count: int,
    requested_duration_minutes: Optional[int],
    min_attendees: Optional[int],
    default_duration_minutes: int = 120,
    max_results: int = 10,
) -> SuggestionConstraints:
    """Apply defaults and validate; the result is always safe to rank with."""
    constraints = SuggestionConstraints(
        window_start=window_start,
        window_end=window_end,
        requested_duration_minutes=(
            requested_duration_minutes
            if requested_duration_minutes is not None
            else default_duration_minutes
        ),
        min_attendees=(
            min_attendees
            if min_attendees is not None
            else default_min_attendees(active_member_count)
        ),
        max_results=max_results,
    )
    validate_suggestion_constraints(constraints)
    return constraints


def validate_suggestion_constraints(constraints: SuggestionConstraints) -> None:
    try:
        inverted = constraints.window_start >= constraints.window_end
    except TypeError as exc:
        raise InvalidRangeError(
            "window_start and window_end must both be timezone-aware or both naive"
        ) from exc
    if inverted:
        raise InvalidRangeError("window_start must be earlier than window_end")
    if constraints.requested_duration_minutes <= 0:
        raise InvalidConstraintError("requested_duration_minutes must be > 0")
    if constraints.min_attendees < 0:
        raise InvalidConstraintError("min_attendees must be >= 0")
    if constraints.max_results <= 0:
        raise InvalidConstraintError("max_results must be > 0")
