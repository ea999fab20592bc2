"""HTTP controller layer for users, bands, membership and availability polls."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_band_service,
    raise_band_error,
    require_user,
)
from backend.domain.models import (
    Availability,
    AvailabilityPoll,
    BandMember,
    MemberRole,
    MemberStatus,
    PollStatus,
    User,
)
from backend.services.auth_service import AuthService, UnknownUserError
from backend.services.band_service import BandService, BandServiceError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bands"])


class RegisterUserRequest(BaseModel):
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    first_name: str = Field(min_length=1)
    last_name: str = ""


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    display_name: str


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int


class CreateBandRequest(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class BandResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_by: int


class AddMemberRequest(BaseModel):
    user_id: int = Field(gt=0)
    role: MemberRole = MemberRole.MEMBER


class MemberResponse(BaseModel):
    user_id: int
    display_name: str
    role: MemberRole
    status: MemberStatus
    joined_at: datetime


class PollOptionRequest(BaseModel):
    start_time: datetime
    end_time: datetime


class CreatePollRequest(BaseModel):
    title: str = Field(min_length=1)
    options: list[PollOptionRequest]


class PollAnswerResponse(BaseModel):
    user_id: int
    display_name: str
    availability: Availability


class PollOptionResponse(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    responses: list[PollAnswerResponse]


class PollDetailResponse(BaseModel):
    id: int
    band_id: int
    title: str
    status: PollStatus
    options: list[PollOptionResponse]


class RespondRequest(BaseModel):
    availability: Availability


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.user_id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        display_name=user.display_name,
    )


def _member_response(member: BandMember) -> MemberResponse:
    return MemberResponse(
        user_id=member.user_id,
        display_name=member.display_name,
        role=member.role,
        status=member.status,
        joined_at=member.joined_at,
    )


def _poll_response(poll: AvailabilityPoll) -> PollDetailResponse:
    return PollDetailResponse(
        id=poll.poll_id,
        band_id=poll.band_id,
        title=poll.title,
        status=poll.status,
        options=[
            PollOptionResponse(
                id=option.option_id,
                start_time=option.start_time,
                end_time=option.end_time,
                responses=[
                    PollAnswerResponse(
                        user_id=response.user_id,
                        display_name=response.display_name,
                        availability=response.availability,
                    )
                    for response in option.responses
                ],
            )
            for option in poll.options
        ],
    )


def _unexpected(action: str) -> HTTPException:
    logger.exception("Unexpected failure while trying to %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: RegisterUserRequest,
    service: BandService = Depends(get_band_service),
) -> UserResponse:
    try:
        user = service.register_user(
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
        return _user_response(user)
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("register user") from exc


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        token, user_id = auth_service.login(payload.email)
        return LoginResponse(access_token=token, user_id=user_id)
    except UnknownUserError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("login") from exc


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if credentials is not None:
        auth_service.logout(credentials.credentials)


@router.post("/bands", response_model=BandResponse, status_code=status.HTTP_201_CREATED)
async def create_band(
    payload: CreateBandRequest,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> BandResponse:
    try:
        band = service.create_band(
            name=payload.name,
            description=payload.description,
            creator_id=user_id,
        )
        return BandResponse(
            id=band.band_id,
            name=band.name,
            description=band.description,
            created_by=band.created_by,
        )
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create band") from exc


@router.get("/bands/{band_id}/members", response_model=list[MemberResponse])
async def list_members(
    band_id: int,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> list[MemberResponse]:
    try:
        members = service.list_members(band_id=band_id, requester_id=user_id)
        return [_member_response(member) for member in members]
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("list band members") from exc


@router.post(
    "/bands/{band_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    band_id: int,
    payload: AddMemberRequest,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> MemberResponse:
    try:
        member = service.add_member(
            band_id=band_id,
            requester_id=user_id,
            user_id=payload.user_id,
            role=payload.role,
        )
        return _member_response(member)
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("add band member") from exc


@router.delete("/bands/{band_id}/members/{member_id}", response_model=MemberResponse)
async def deactivate_member(
    band_id: int,
    member_id: int,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> MemberResponse:
    try:
        member = service.deactivate_member(
            band_id=band_id,
            requester_id=user_id,
            user_id=member_id,
        )
        return _member_response(member)
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("remove band member") from exc


@router.post(
    "/bands/{band_id}/polls",
    response_model=PollDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_poll(
    band_id: int,
    payload: CreatePollRequest,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> PollDetailResponse:
    try:
        poll = service.create_poll(
            band_id=band_id,
            requester_id=user_id,
            title=payload.title,
            options=[(option.start_time, option.end_time) for option in payload.options],
        )
        return _poll_response(poll)
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("create poll") from exc


@router.get("/polls/{poll_id}", response_model=PollDetailResponse)
async def get_poll(
    poll_id: int,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> PollDetailResponse:
    try:
        return _poll_response(service.get_poll(poll_id=poll_id, requester_id=user_id))
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("load poll") from exc


@router.put("/polls/{poll_id}/options/{option_id}/response", response_model=PollDetailResponse)
async def respond_to_option(
    poll_id: int,
    option_id: int,
    payload: RespondRequest,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> PollDetailResponse:
    try:
        poll = service.respond(
            poll_id=poll_id,
            option_id=option_id,
            requester_id=user_id,
            availability=payload.availability,
        )
        return _poll_response(poll)
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("record poll response") from exc


@router.post("/polls/{poll_id}/close", response_model=PollDetailResponse)
async def close_poll(
    poll_id: int,
    user_id: int = Depends(require_user),
    service: BandService = Depends(get_band_service),
) -> PollDetailResponse:
    try:
        return _poll_response(service.close_poll(poll_id=poll_id, requester_id=user_id))
    except BandServiceError as exc:
        raise_band_error(exc)
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _unexpected("close poll") from exc
