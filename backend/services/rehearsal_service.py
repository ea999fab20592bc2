"""Rehearsal scheduling and attendance tracking."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from backend.domain.models import (
    Attendance,
    AttendanceStatus,
    PollStatus,
    RecurrenceFrequency,
    RecurringPattern,
    Rehearsal,
    RehearsalStatus,
)
from backend.repository.data_repository import DataRepository
from backend.services.band_service import BandService, PollClosedError, PollNotFoundError
from backend.utils.clock import as_utc, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class RehearsalNotFoundError(Exception):
    """Raised when a rehearsal id is unknown."""


class RehearsalValidationError(Exception):
    """Raised when rehearsal inputs are inconsistent."""


def _validate_window(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise RehearsalValidationError("end_time must be after start_time")


def _validate_recurring_pattern(pattern: RecurringPattern) -> None:
    if pattern.end_date is not None and pattern.end_date < pattern.start_date:
        raise RehearsalValidationError("Recurring pattern end_date must not precede start_date")
    if pattern.day_of_week is not None and not 0 <= pattern.day_of_week <= 6:
        raise RehearsalValidationError("day_of_week must be between 0 (Sunday) and 6")
    if pattern.day_of_month is not None and not 1 <= pattern.day_of_month <= 31:
        raise RehearsalValidationError("day_of_month must be between 1 and 31")
    if (
        pattern.frequency in (RecurrenceFrequency.WEEKLY, RecurrenceFrequency.BIWEEKLY)
        and pattern.day_of_week is None
    ):
        raise RehearsalValidationError(f"{pattern.frequency.value} patterns need day_of_week")
    if pattern.frequency is RecurrenceFrequency.MONTHLY and pattern.day_of_month is None:
        raise RehearsalValidationError("MONTHLY patterns need day_of_month")
    for slot in pattern.times_of_day:
        if slot.end_time <= slot.start_time:
            raise RehearsalValidationError("Each time of day must end after it starts")


class RehearsalService:
    """Coordinates band access checks with rehearsal persistence."""

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

    def _require_rehearsal(self, rehearsal_id: int) -> Rehearsal:
        rehearsal = self._repository.get_rehearsal(rehearsal_id)
        if rehearsal is None:
            raise RehearsalNotFoundError(f"Rehearsal {rehearsal_id} not found")
        return rehearsal

    def list_band_rehearsals(
        self,
        *,
        band_id: int,
        requester_id: int,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        status: Optional[RehearsalStatus] = None,
    ) -> list[Rehearsal]:
        self._band_service.require_member(band_id=band_id, user_id=requester_id)
        # The window only applies when both ends are given.
        if window_start is None or window_end is None:
            window_start = window_end = None
        else:
            window_start, window_end = as_utc(window_start), as_utc(window_end)
        return self._repository.list_band_rehearsals(
            band_id,
            window_start=window_start,
            window_end=window_end,
            status=status,
        )

    def get_rehearsal(self, *, rehearsal_id: int, requester_id: int) -> Rehearsal:
        rehearsal = self._require_rehearsal(rehearsal_id)
        self._band_service.require_member(band_id=rehearsal.band_id, user_id=requester_id)
        return rehearsal

    def create_rehearsal(
        self,
        *,
        band_id: int,
        requester_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        poll_id: Optional[int] = None,
        recurring_pattern: Optional[RecurringPattern] = None,
    ) -> Rehearsal:
        self._band_service.require_member(band_id=band_id, user_id=requester_id, admin=True)
        if not title.strip():
            raise RehearsalValidationError("title must be non-empty")
        start_time, end_time = as_utc(start_time), as_utc(end_time)
        _validate_window(start_time, end_time)
        if recurring_pattern is not None:
            _validate_recurring_pattern(recurring_pattern)

        if poll_id is not None:
            poll = self._repository.get_poll(poll_id)
            if poll is None or poll.band_id != band_id:
                raise PollNotFoundError(f"Poll {poll_id} not found for band {band_id}")
            if poll.status is not PollStatus.OPEN:
                raise PollClosedError(f"Poll {poll_id} is already closed")

        return self._repository.create_rehearsal(
            band_id=band_id,
            title=title.strip(),
            start_time=start_time,
            end_time=end_time,
            created_by=requester_id,
            location=location,
            notes=notes,
            poll_id=poll_id,
            recurring_pattern=recurring_pattern,
        )

    def update_rehearsal(
        self,
        *,
        rehearsal_id: int,
        requester_id: int,
        changes: dict[str, Any],
    ) -> Rehearsal:
        """Apply a partial update; ``None`` values in ``changes`` are ignored."""
        existing = self._require_rehearsal(rehearsal_id)
        self._band_service.require_member(
            band_id=existing.band_id,
            user_id=requester_id,
            admin=True,
        )

        updates = {key: value for key, value in changes.items() if value is not None}
        for key in ("start_time", "end_time"):
            if key in updates:
                updates[key] = as_utc(updates[key])
        if "title" in updates and not str(updates["title"]).strip():
            raise RehearsalValidationError("title must be non-empty")
        if "status" in updates:
            updates["status"] = RehearsalStatus(updates["status"])
        _validate_window(
            updates.get("start_time", existing.start_time),
            updates.get("end_time", existing.end_time),
        )
        if not updates:
            return existing

        updated = self._repository.update_rehearsal(rehearsal_id, updates)
        if updated is None:
            raise RehearsalNotFoundError(f"Rehearsal {rehearsal_id} not found")
        if updated.status is not existing.status:
            logger.info(
                "Rehearsal status changed | rehearsal_id=%s | %s -> %s",
                rehearsal_id,
                existing.status.value,
                updated.status.value,
            )
        return updated

    def delete_rehearsal(self, *, rehearsal_id: int, requester_id: int) -> None:
        existing = self._require_rehearsal(rehearsal_id)
        self._band_service.require_member(
            band_id=existing.band_id,
            user_id=requester_id,
            admin=True,
        )
        self._repository.delete_rehearsal(rehearsal_id)
        logger.info("Rehearsal deleted | rehearsal_id=%s", rehearsal_id)

    def update_attendance(
        self,
        *,
        rehearsal_id: int,
        requester_id: int,
        status: AttendanceStatus,
        notes: Optional[str] = None,
    ) -> Attendance:
        if status is AttendanceStatus.NO_RESPONSE:
            raise RehearsalValidationError("NO_RESPONSE cannot be submitted as attendance")
        rehearsal = self._require_rehearsal(rehearsal_id)
        self._band_service.require_member(band_id=rehearsal.band_id, user_id=requester_id)
        return self._repository.upsert_attendance(
            rehearsal_id,
            requester_id,
            status,
            notes or None,
            utc_now(),
        )
