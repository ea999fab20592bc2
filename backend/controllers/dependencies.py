"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import NoReturn

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.services.auth_service import AuthService, InvalidSessionTokenError
from backend.services.band_service import (
    BandAccessDeniedError,
    BandNotFoundError,
    BandService,
    BandServiceError,
    BandValidationError,
    DuplicateUserError,
    PollClosedError,
    PollNotFoundError,
    UserNotFoundError,
)
from backend.services.ranking_service import SuggestionService
from backend.services.rehearsal_service import RehearsalService


bearer_scheme = HTTPBearer(auto_error=False)


def _state_service(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    return _state_service(request, "auth_service", "Auth")


def get_band_service(request: Request) -> BandService:
    return _state_service(request, "band_service", "Band")


def get_rehearsal_service(request: Request) -> RehearsalService:
    return _state_service(request, "rehearsal_service", "Rehearsal")


def get_suggestion_service(request: Request) -> SuggestionService:
    return _state_service(request, "suggestion_service", "Suggestion")


async def require_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> int:
    """Resolve the bearer token to the calling user's id."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        return auth_service.resolve_bearer_token(credentials.credentials)
    except InvalidSessionTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


_BAND_ERROR_STATUS: tuple[tuple[type[BandServiceError], int], ...] = (
    (BandNotFoundError, status.HTTP_404_NOT_FOUND),
    (PollNotFoundError, status.HTTP_404_NOT_FOUND),
    (UserNotFoundError, status.HTTP_404_NOT_FOUND),
    (BandAccessDeniedError, status.HTTP_403_FORBIDDEN),
    (DuplicateUserError, status.HTTP_409_CONFLICT),
    (PollClosedError, status.HTTP_409_CONFLICT),
    (BandValidationError, status.HTTP_400_BAD_REQUEST),
)


def raise_band_error(exc: BandServiceError) -> NoReturn:
    """Translate a band workflow error into the matching HTTP error."""
    for error_type, status_code in _BAND_ERROR_STATUS:
        if isinstance(exc, error_type):
            raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(exc),
    ) from exc
