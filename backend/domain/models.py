"""Domain models for bands, availability polls and rehearsals."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from backend.utils.clock import as_utc


class PollStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Availability(str, Enum):
    AVAILABLE = "AVAILABLE"
    MAYBE = "MAYBE"
    UNAVAILABLE = "UNAVAILABLE"


class MemberRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class RehearsalStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class AttendanceStatus(str, Enum):
    ATTENDING = "ATTENDING"
    MAYBE = "MAYBE"
    NOT_ATTENDING = "NOT_ATTENDING"
    NO_RESPONSE = "NO_RESPONSE"


class RecurrenceFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class User:
    user_id: int
    email: str
    first_name: str
    last_name: str

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Band:
    band_id: int
    name: str
    description: Optional[str]
    created_by: int


@dataclass(frozen=True)
class BandMember:
    band_id: int
    user_id: int
    role: MemberRole
    status: MemberStatus
    display_name: str
    joined_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status is MemberStatus.ACTIVE


@dataclass(frozen=True)
class PollResponse:
    """One member's availability mark for one poll option."""

    user_id: int
    availability: Availability
    display_name: str = ""


@dataclass(frozen=True)
class PollOption:
    option_id: int
    start_time: datetime
    end_time: datetime
    responses: tuple[PollResponse, ...] = ()

    @property
    def duration_minutes(self) -> float:
        return (as_utc(self.end_time) - as_utc(self.start_time)).total_seconds() / 60.0


@dataclass(frozen=True)
class AvailabilityPoll:
    poll_id: int
    band_id: int
    title: str
    status: PollStatus
    options: tuple[PollOption, ...] = ()


@dataclass(frozen=True)
class MemberRef:
    member_id: int
    display_name: str


@dataclass(frozen=True)
class RankedSlot:
    """Suggested rehearsal slot derived from one poll option."""

    start_time: datetime
    end_time: datetime
    available_count: int
    maybe_count: int
    total_count: int
    available_members: tuple[MemberRef, ...]
    poll_id: int
    option_id: int


@dataclass(frozen=True)
class SuggestionResult:
    slots: list[RankedSlot]
    total_members: int
    min_attendees: int
    requested_duration_minutes: int


@dataclass(frozen=True)
class Attendance:
    rehearsal_id: int
    user_id: int
    status: AttendanceStatus
    display_name: str
    notes: Optional[str] = None
    response_time: Optional[datetime] = None


@dataclass(frozen=True)
class TimeOfDay:
    start_time: time
    end_time: time


@dataclass(frozen=True)
class RecurringPattern:
    """How a rehearsal repeats. ``day_of_week`` runs 0-6 starting on Sunday."""

    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    times_of_day: tuple[TimeOfDay, ...] = ()
    pattern_id: Optional[int] = None


@dataclass(frozen=True)
class Rehearsal:
    rehearsal_id: int
    band_id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: RehearsalStatus
    created_by: int
    location: Optional[str] = None
    notes: Optional[str] = None
    poll_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    attendance: tuple[Attendance, ...] = field(default_factory=tuple)
