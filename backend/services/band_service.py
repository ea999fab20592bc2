"""Band membership, user registration and availability poll workflows."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional, Sequence

from backend.domain.models import (
    Availability,
    AvailabilityPoll,
    Band,
    BandMember,
    MemberRole,
    MemberStatus,
    PollStatus,
    User,
)
from backend.repository.data_repository import DataRepository
from backend.utils.clock import as_utc
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class BandServiceError(Exception):
    """Base band workflow failure."""


class UserNotFoundError(BandServiceError):
    """Raised when a referenced user does not exist."""


class DuplicateUserError(BandServiceError):
    """Raised when registering an email that is already taken."""


class BandNotFoundError(BandServiceError):
    """Raised when a referenced band does not exist."""


class BandAccessDeniedError(BandServiceError):
    """Raised when the caller lacks membership or admin rights."""


class PollNotFoundError(BandServiceError):
    """Raised when a poll or poll option does not exist."""


class PollClosedError(BandServiceError):
    """Raised when answering a poll that is no longer open."""


class BandValidationError(BandServiceError):
    """Raised when band or poll inputs are invalid."""


class BandService:
    """Owns user, band, membership and poll rules."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    # --- users ---

    def register_user(self, *, email: str, first_name: str, last_name: str) -> User:
        normalized_email = email.strip().lower()
        if not normalized_email:
            raise BandValidationError("email must be non-empty")
        if self._repository.get_user_by_email(normalized_email) is not None:
            raise DuplicateUserError(f"User with email {normalized_email} already exists")
        try:
            user = self._repository.create_user(
                normalized_email,
                first_name.strip(),
                last_name.strip(),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateUserError(
                f"User with email {normalized_email} already exists"
            ) from exc
        logger.info("User registered | user_id=%s", user.user_id)
        return user

    def get_user_by_email(self, email: str) -> User:
        user = self._repository.get_user_by_email(email.strip().lower())
        if user is None:
            raise UserNotFoundError("No user registered with that email")
        return user

    # --- access checks ---

    def require_member(
        self,
        *,
        band_id: int,
        user_id: int,
        admin: bool = False,
    ) -> BandMember:
        """Return the caller's membership or raise.

        Any membership row grants read access, matching how band pages are
        shown to former members; ``admin=True`` needs an active admin.
        """
        if self._repository.get_band(band_id) is None:
            raise BandNotFoundError(f"Band {band_id} not found")
        member = self._repository.get_member(band_id, user_id)
        if member is None:
            raise BandAccessDeniedError("You are not a member of this band")
        if admin and (member.role is not MemberRole.ADMIN or not member.is_active):
            raise BandAccessDeniedError("Only band admins can perform this action")
        return member

    # --- bands ---

    def create_band(self, *, name: str, description: Optional[str], creator_id: int) -> Band:
        if not name.strip():
            raise BandValidationError("Band name must be non-empty")
        if self._repository.get_user(creator_id) is None:
            raise UserNotFoundError(f"User {creator_id} not found")
        band = self._repository.create_band(name.strip(), description, creator_id)
        logger.info("Band created | band_id=%s | admin_id=%s", band.band_id, creator_id)
        return band

    def list_members(self, *, band_id: int, requester_id: int) -> list[BandMember]:
        self.require_member(band_id=band_id, user_id=requester_id)
        return self._repository.list_members(band_id)

    def add_member(
        self,
        *,
        band_id: int,
        requester_id: int,
        user_id: int,
        role: MemberRole = MemberRole.MEMBER,
    ) -> BandMember:
        self.require_member(band_id=band_id, user_id=requester_id, admin=True)
        if self._repository.get_user(user_id) is None:
            raise UserNotFoundError(f"User {user_id} not found")
        self._repository.upsert_member(band_id, user_id, role)
        member = self._repository.get_member(band_id, user_id)
        logger.info(
            "Member added | band_id=%s | user_id=%s | role=%s",
            band_id,
            user_id,
            role.value,
        )
        return member

    def deactivate_member(self, *, band_id: int, requester_id: int, user_id: int) -> BandMember:
        self.require_member(band_id=band_id, user_id=requester_id, admin=True)
        target = self._repository.get_member(band_id, user_id)
        if target is None:
            raise UserNotFoundError(f"User {user_id} is not a member of band {band_id}")
        if target.role is MemberRole.ADMIN and target.is_active:
            active_admins = [
                member
                for member in self._repository.list_members(band_id)
                if member.role is MemberRole.ADMIN and member.is_active
            ]
            if len(active_admins) <= 1:
                raise BandValidationError("A band must keep at least one active admin")
        self._repository.set_member_status(band_id, user_id, MemberStatus.INACTIVE)
        logger.info("Member deactivated | band_id=%s | user_id=%s", band_id, user_id)
        return self._repository.get_member(band_id, user_id)

    # --- polls ---

    def create_poll(
        self,
        *,
        band_id: int,
        requester_id: int,
        title: str,
        options: Sequence[tuple[datetime, datetime]],
    ) -> AvailabilityPoll:
        self.require_member(band_id=band_id, user_id=requester_id, admin=True)
        if not title.strip():
            raise BandValidationError("Poll title must be non-empty")
        if not options:
            raise BandValidationError("A poll needs at least one option")
        normalized = [(as_utc(start), as_utc(end)) for start, end in options]
        for start, end in normalized:
            if end <= start:
                raise BandValidationError("Poll option end_time must be after start_time")
        poll = self._repository.create_poll(band_id, title.strip(), requester_id, normalized)
        logger.info(
            "Poll created | poll_id=%s | band_id=%s | options=%s",
            poll.poll_id,
            band_id,
            len(poll.options),
        )
        return poll

    def _require_poll(self, poll_id: int) -> AvailabilityPoll:
        poll = self._repository.get_poll(poll_id)
        if poll is None:
            raise PollNotFoundError(f"Poll {poll_id} not found")
        return poll

    def get_poll(self, *, poll_id: int, requester_id: int) -> AvailabilityPoll:
        poll = self._require_poll(poll_id)
        self.require_member(band_id=poll.band_id, user_id=requester_id)
        return poll

    def respond(
        self,
        *,
        poll_id: int,
        option_id: int,
        requester_id: int,
        availability: Availability,
    ) -> AvailabilityPoll:
        poll = self._require_poll(poll_id)
        member = self.require_member(band_id=poll.band_id, user_id=requester_id)
        if not member.is_active:
            raise BandAccessDeniedError("Inactive members cannot answer polls")
        if poll.status is not PollStatus.OPEN:
            raise PollClosedError(f"Poll {poll_id} is closed")
        if all(option.option_id != option_id for option in poll.options):
            raise PollNotFoundError(f"Option {option_id} not found in poll {poll_id}")
        self._repository.upsert_poll_response(option_id, requester_id, availability)
        return self._require_poll(poll_id)

    def close_poll(self, *, poll_id: int, requester_id: int) -> AvailabilityPoll:
        poll = self._require_poll(poll_id)
        self.require_member(band_id=poll.band_id, user_id=requester_id, admin=True)
        self._repository.set_poll_status(poll_id, PollStatus.CLOSED)
        logger.info("Poll closed | poll_id=%s", poll_id)
        return self._require_poll(poll_id)
