"""HTTP controller layer for rehearsals, attendance and suggested times."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    get_rehearsal_service,
    get_suggestion_service,
    raise_band_error,
    require_user,
)
from backend.domain.constraints import SchedulingConstraintError
from backend.domain.models import (
    Attendance,
    AttendanceStatus,
    RankedSlot,
    RecurrenceFrequency,
    RecurringPattern,
    Rehearsal,
    RehearsalStatus,
    TimeOfDay,
)
from backend.services.band_service import BandServiceError
from backend.services.ranking_service import SuggestionService
from backend.services.rehearsal_service import (
    RehearsalNotFoundError,
    RehearsalService,
    RehearsalValidationError,
)
from backend.utils.clock import as_utc
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/rehearsals", tags=["rehearsals"])


class TimeOfDayModel(BaseModel):
    start_time: time
    end_time: time


class RecurringPatternRequest(BaseModel):
    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    times_of_day: list[TimeOfDayModel] = Field(default_factory=list)

    def to_domain(self) -> RecurringPattern:
        return RecurringPattern(
            frequency=self.frequency,
            start_date=self.start_date,
            end_date=self.end_date,
            day_of_week=self.day_of_week,
            day_of_month=self.day_of_month,
            times_of_day=tuple(
                TimeOfDay(start_time=slot.start_time, end_time=slot.end_time)
                for slot in self.times_of_day
            ),
        )


class RecurringPatternResponse(BaseModel):
    id: int
    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    times_of_day: list[TimeOfDayModel]


class CreateRehearsalRequest(BaseModel):
    band_id: int = Field(gt=0)
    title: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    notes: Optional[str] = None
    poll_id: Optional[int] = Field(default=None, gt=0)
    recurring_pattern: Optional[RecurringPatternRequest] = None


class UpdateRehearsalRequest(BaseModel):
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[RehearsalStatus] = None


class AttendanceRequest(BaseModel):
    status: AttendanceStatus
    notes: Optional[str] = None


class AttendanceResponse(BaseModel):
    rehearsal_id: int
    user_id: int
    display_name: str
    status: AttendanceStatus
    notes: Optional[str] = None
    response_time: Optional[datetime] = None


class RehearsalResponse(BaseModel):
    id: int
    band_id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: RehearsalStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    poll_id: Optional[int] = None
    created_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPatternResponse] = None
    attendance: list[AttendanceResponse]


class AvailableMemberResponse(BaseModel):
    id: int
    display_name: str


class SuggestedSlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    available_count: int = Field(ge=0)
    maybe_count: int = Field(ge=0)
    total_count: int = Field(ge=0)
    available_members: list[AvailableMemberResponse]
    poll_id: int
    option_id: int


class SuggestedTimesResponse(BaseModel):
    suggested_slots: list[SuggestedSlotResponse]
    total_members: int = Field(ge=0)
    min_attendees: int = Field(ge=0)
    requested_duration: int = Field(gt=0)


def _attendance_response(attendance: Attendance) -> AttendanceResponse:
    return AttendanceResponse(
        rehearsal_id=attendance.rehearsal_id,
        user_id=attendance.user_id,
        display_name=attendance.display_name,
        status=attendance.status,
        notes=attendance.notes,
        response_time=attendance.response_time,
    )


def _pattern_response(pattern: Optional[RecurringPattern]) -> Optional[RecurringPatternResponse]:
    if pattern is None or pattern.pattern_id is None:
        return None
    return RecurringPatternResponse(
        id=pattern.pattern_id,
        frequency=pattern.frequency,
        start_date=pattern.start_date,
        end_date=pattern.end_date,
        day_of_week=pattern.day_of_week,
        day_of_month=pattern.day_of_month,
        times_of_day=[
            TimeOfDayModel(start_time=slot.start_time, end_time=slot.end_time)
            for slot in pattern.times_of_day
        ],
    )


def _rehearsal_response(rehearsal: Rehearsal) -> RehearsalResponse:
    return RehearsalResponse(
        id=rehearsal.rehearsal_id,
        band_id=rehearsal.band_id,
        title=rehearsal.title,
        start_time=rehearsal.start_time,
        end_time=rehearsal.end_time,
        status=rehearsal.status,
        location=rehearsal.location,
        notes=rehearsal.notes,
        poll_id=rehearsal.poll_id,
        created_by=rehearsal.created_by,
        created_at=rehearsal.created_at,
        updated_at=rehearsal.updated_at,
        is_recurring=rehearsal.is_recurring,
        recurring_pattern=_pattern_response(rehearsal.recurring_pattern),
        attendance=[_attendance_response(item) for item in rehearsal.attendance],
    )


def _slot_response(slot: RankedSlot) -> SuggestedSlotResponse:
    return SuggestedSlotResponse(
        start_time=slot.start_time,
        end_time=slot.end_time,
        available_count=slot.available_count,
        maybe_count=slot.maybe_count,
        total_count=slot.total_count,
        available_members=[
            AvailableMemberResponse(id=member.member_id, display_name=member.display_name)
            for member in slot.available_members
        ],
        poll_id=slot.poll_id,
        option_id=slot.option_id,
    )


def _raise_rehearsal_error(exc: Exception) -> NoReturn:
    if isinstance(exc, BandServiceError):
        raise_band_error(exc)
    if isinstance(exc, RehearsalNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(exc),
    ) from exc


_HANDLED_ERRORS = (
    BandServiceError,
    RehearsalNotFoundError,
    RehearsalValidationError,
    SchedulingConstraintError,
)


@router.get("/suggested-times/{band_id}", response_model=SuggestedTimesResponse)
async def get_suggested_times(
    band_id: int,
    start_date: datetime,
    end_date: datetime,
    duration: Optional[int] = None,
    min_attendees: Optional[int] = None,
    user_id: int = Depends(require_user),
    service: SuggestionService = Depends(get_suggestion_service),
) -> SuggestedTimesResponse:
    """Rank open poll options for the band inside ``[start_date, end_date]``."""
    try:
        result = service.suggest_times(
            band_id=band_id,
            requester_id=user_id,
            window_start=as_utc(start_date),
            window_end=as_utc(end_date),
            duration_minutes=duration,
            min_attendees=min_attendees,
        )
        return SuggestedTimesResponse(
            suggested_slots=[_slot_response(slot) for slot in result.slots],
            total_members=result.total_members,
            min_attendees=result.min_attendees,
            requested_duration=result.requested_duration_minutes,
        )
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected suggested-times failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get suggested times",
        ) from exc


@router.get("/band/{band_id}", response_model=list[RehearsalResponse])
async def list_band_rehearsals(
    band_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status_filter: Optional[RehearsalStatus] = Query(default=None, alias="status"),
    user_id: int = Depends(require_user),
    service: RehearsalService = Depends(get_rehearsal_service),
) -> list[RehearsalResponse]:
    try:
        rehearsals = service.list_band_rehearsals(
            band_id=band_id,
            requester_id=user_id,
            window_start=start,
            window_end=end,
            status=status_filter,
        )
        return [_rehearsal_response(rehearsal) for rehearsal in rehearsals]
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected rehearsal listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get rehearsals",
        ) from exc


@router.post("", response_model=RehearsalResponse, status_code=status.HTTP_201_CREATED)
async def create_rehearsal(
    payload: CreateRehearsalRequest,
    user_id: int = Depends(require_user),
    service: RehearsalService = Depends(get_rehearsal_service),
) -> RehearsalResponse:
    try:
        pattern = None
        if payload.recurring_pattern is not None:
            pattern = payload.recurring_pattern.to_domain()
        rehearsal = service.create_rehearsal(
            band_id=payload.band_id,
            requester_id=user_id,
            title=payload.title,
            start_time=payload.start_time,
            end_time=payload.end_time,
            location=payload.location,
            notes=payload.notes,
            poll_id=payload.poll_id,
            recurring_pattern=pattern,
        )
        return _rehearsal_response(rehearsal)
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected rehearsal creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create rehearsal",
        ) from exc


@router.get("/{rehearsal_id}", response_model=RehearsalResponse)
async def get_rehearsal(
    rehearsal_id: int,
    user_id: int = Depends(require_user),
    service: RehearsalService = Depends(get_rehearsal_service),
) -> RehearsalResponse:
    try:
        rehearsal = service.get_rehearsal(rehearsal_id=rehearsal_id, requester_id=user_id)
        return _rehearsal_response(rehearsal)
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected rehearsal lookup failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get rehearsal details",
        ) from exc


@router.put("/{rehearsal_id}", response_model=RehearsalResponse)
async def update_rehearsal(
    rehearsal_id: int,
    payload: UpdateRehearsalRequest,
    user_id: int = Depends(require_user),
    service: RehearsalService = Depends(get_rehearsal_service),
) -> RehearsalResponse:
    try:
        rehearsal = service.update_rehearsal(
            rehearsal_id=rehearsal_id,
            requester_id=user_id,
            changes=payload.model_dump(exclude_unset=True),
        )
        return _rehearsal_response(rehearsal)
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected rehearsal update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update rehearsal",
        ) from exc


@router.delete("/{rehearsal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rehearsal(
    rehearsal_id: int,
    user_id: int = Depends(require_user),
    service: RehearsalService = Depends(get_rehearsal_service),
) -> Response:
    try:
        service.delete_rehearsal(rehearsal_id=rehearsal_id, requester_id=user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected rehearsal deletion failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete rehearsal",
        ) from exc


@router.put("/{rehearsal_id}/attendance", response_model=AttendanceResponse)
async def update_attendance(
    rehearsal_id: int,
    payload: AttendanceRequest,
    user_id: int = Depends(require_user),
    service: RehearsalService = Depends(get_rehearsal_service),
) -> AttendanceResponse:
    try:
        attendance = service.update_attendance(
            rehearsal_id=rehearsal_id,
            requester_id=user_id,
            status=payload.status,
            notes=payload.notes,
        )
        return _attendance_response(attendance)
    except _HANDLED_ERRORS as exc:
        _raise_rehearsal_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected attendance update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update attendance",
        ) from exc
