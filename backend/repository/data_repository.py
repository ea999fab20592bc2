"""Repository layer responsible for all database access."""

from __future__ import annotations

import random
import sqlite3
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from backend.domain.models import (
    Attendance,
    AttendanceStatus,
    Availability,
    AvailabilityPoll,
    Band,
    BandMember,
    MemberRole,
    MemberStatus,
    PollOption,
    PollResponse,
    PollStatus,
    RecurrenceFrequency,
    RecurringPattern,
    Rehearsal,
    RehearsalStatus,
    TimeOfDay,
    User,
)
from backend.utils.clock import from_db_timestamp, to_db_timestamp, utc_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

# Columns a rehearsal update may touch.
_REHEARSAL_UPDATABLE_COLUMNS = ("title", "start_time", "end_time", "location", "notes", "status")


def _optional_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return from_db_timestamp(str(value))


def _display_name(row: sqlite3.Row) -> str:
    return f"{row['first_name']} {row['last_name']}".strip()


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        email TEXT NOT NULL UNIQUE,
                        first_name TEXT NOT NULL,
                        last_name TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bands (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        description TEXT,
                        created_by INTEGER NOT NULL,
                        created_at TEXT NOT NULL,
                        FOREIGN KEY (created_by) REFERENCES Users(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS BandMembers (
                        band_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        role TEXT NOT NULL DEFAULT 'MEMBER'
                            CHECK (role IN ('ADMIN', 'MEMBER')),
                        status TEXT NOT NULL DEFAULT 'ACTIVE'
                            CHECK (status IN ('ACTIVE', 'INACTIVE')),
                        joined_at TEXT NOT NULL,
                        PRIMARY KEY (band_id, user_id),
                        FOREIGN KEY (band_id) REFERENCES Bands(id),
                        FOREIGN KEY (user_id) REFERENCES Users(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AvailabilityPolls (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        band_id INTEGER NOT NULL,
                        title TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'OPEN'
                            CHECK (status IN ('OPEN', 'CLOSED')),
                        created_by INTEGER NOT NULL,
                        created_at TEXT NOT NULL,
                        FOREIGN KEY (band_id) REFERENCES Bands(id),
                        FOREIGN KEY (created_by) REFERENCES Users(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS PollOptions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        poll_id INTEGER NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        FOREIGN KEY (poll_id) REFERENCES AvailabilityPolls(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS PollResponses (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        option_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        availability TEXT NOT NULL
                            CHECK (availability IN ('AVAILABLE', 'MAYBE', 'UNAVAILABLE')),
                        responded_at TEXT NOT NULL,
                        UNIQUE (option_id, user_id),
                        FOREIGN KEY (option_id) REFERENCES PollOptions(id),
                        FOREIGN KEY (user_id) REFERENCES Users(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RecurringPatterns (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        frequency TEXT NOT NULL
                            CHECK (frequency IN ('DAILY', 'WEEKLY', 'BIWEEKLY', 'MONTHLY')),
                        day_of_week INTEGER CHECK (day_of_week BETWEEN 0 AND 6),
                        day_of_month INTEGER CHECK (day_of_month BETWEEN 1 AND 31),
                        start_date TEXT NOT NULL,
                        end_date TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RecurringPatternTimes (
                        pattern_id INTEGER NOT NULL,
                        position INTEGER NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        PRIMARY KEY (pattern_id, position),
                        FOREIGN KEY (pattern_id) REFERENCES RecurringPatterns(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rehearsals (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        band_id INTEGER NOT NULL,
                        title TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        location TEXT,
                        notes TEXT,
                        status TEXT NOT NULL DEFAULT 'SCHEDULED'
                            CHECK (status IN ('SCHEDULED', 'CANCELLED', 'COMPLETED')),
                        created_by INTEGER NOT NULL,
                        poll_id INTEGER,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        is_recurring INTEGER NOT NULL DEFAULT 0,
                        recurring_pattern_id INTEGER,
                        FOREIGN KEY (band_id) REFERENCES Bands(id),
                        FOREIGN KEY (created_by) REFERENCES Users(id),
                        FOREIGN KEY (poll_id) REFERENCES AvailabilityPolls(id),
                        FOREIGN KEY (recurring_pattern_id) REFERENCES RecurringPatterns(id)
                    );
                    """
                )

                cursor.execute("PRAGMA table_info(Rehearsals);")
                rehearsal_columns = {
                    str(row["name"]) for row in cursor.fetchall()
                }
                if "is_recurring" not in rehearsal_columns:
                    cursor.execute(
                        """
                        ALTER TABLE Rehearsals
                        ADD COLUMN is_recurring INTEGER NOT NULL DEFAULT 0;
                        """
                    )
                if "recurring_pattern_id" not in rehearsal_columns:
                    cursor.execute(
                        """
                        ALTER TABLE Rehearsals
                        ADD COLUMN recurring_pattern_id INTEGER
                        REFERENCES RecurringPatterns(id);
                        """
                    )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Attendance (
                        rehearsal_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        status TEXT NOT NULL DEFAULT 'NO_RESPONSE'
                            CHECK (status IN ('ATTENDING', 'MAYBE', 'NOT_ATTENDING', 'NO_RESPONSE')),
                        notes TEXT,
                        response_time TEXT,
                        PRIMARY KEY (rehearsal_id, user_id),
                        FOREIGN KEY (rehearsal_id) REFERENCES Rehearsals(id),
                        FOREIGN KEY (user_id) REFERENCES Users(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_polls_band_status
                    ON AvailabilityPolls(band_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_options_poll_window
                    ON PollOptions(poll_id, start_time, end_time);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_rehearsals_band_start
                    ON Rehearsals(band_id, start_time);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> User:
        return User(
            user_id=int(row["id"]),
            email=str(row["email"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
        )

    def create_user(self, email: str, first_name: str, last_name: str) -> User:
        """Insert a user; raises ``sqlite3.IntegrityError`` on duplicate email."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Users (email, first_name, last_name, created_at)
                VALUES (?, ?, ?, ?);
                """,
                (email, first_name, last_name, to_db_timestamp(utc_now())),
            )
            conn.commit()
            return User(
                user_id=int(cursor.lastrowid),
                email=email,
                first_name=first_name,
                last_name=last_name,
            )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, email, first_name, last_name FROM Users WHERE id = ?;",
                (user_id,),
            )
            row = cursor.fetchone()
            return None if row is None else self._user_from_row(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, email, first_name, last_name FROM Users WHERE email = ?;",
                (email,),
            )
            row = cursor.fetchone()
            return None if row is None else self._user_from_row(row)

    def count_users(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Users;")
            return int(cursor.fetchone()["count"])

    # ------------------------------------------------------------------
    # Bands and membership
    # ------------------------------------------------------------------

    def create_band(self, name: str, description: Optional[str], created_by: int) -> Band:
        """Insert the band and enrol its creator as an active admin."""
        now = to_db_timestamp(utc_now())
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Bands (name, description, created_by, created_at)
                VALUES (?, ?, ?, ?);
                """,
                (name, description, created_by, now),
            )
            band_id = int(cursor.lastrowid)
            cursor.execute(
                """
                INSERT INTO BandMembers (band_id, user_id, role, status, joined_at)
                VALUES (?, ?, 'ADMIN', 'ACTIVE', ?);
                """,
                (band_id, created_by, now),
            )
            conn.commit()
        return Band(band_id=band_id, name=name, description=description, created_by=created_by)

    def get_band(self, band_id: int) -> Optional[Band]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, description, created_by FROM Bands WHERE id = ?;",
                (band_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return Band(
                band_id=int(row["id"]),
                name=str(row["name"]),
                description=row["description"],
                created_by=int(row["created_by"]),
            )

    @staticmethod
    def _member_from_row(row: sqlite3.Row) -> BandMember:
        return BandMember(
            band_id=int(row["band_id"]),
            user_id=int(row["user_id"]),
            role=MemberRole(row["role"]),
            status=MemberStatus(row["status"]),
            display_name=_display_name(row),
            joined_at=from_db_timestamp(str(row["joined_at"])),
        )

    def get_member(self, band_id: int, user_id: int) -> Optional[BandMember]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT bm.band_id, bm.user_id, bm.role, bm.status, bm.joined_at,
                       u.first_name, u.last_name
                FROM BandMembers AS bm
                INNER JOIN Users AS u ON u.id = bm.user_id
                WHERE bm.band_id = ? AND bm.user_id = ?;
                """,
                (band_id, user_id),
            )
            row = cursor.fetchone()
            return None if row is None else self._member_from_row(row)

    def list_members(self, band_id: int) -> list[BandMember]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT bm.band_id, bm.user_id, bm.role, bm.status, bm.joined_at,
                       u.first_name, u.last_name
                FROM BandMembers AS bm
                INNER JOIN Users AS u ON u.id = bm.user_id
                WHERE bm.band_id = ?
                ORDER BY bm.user_id ASC;
                """,
                (band_id,),
            )
            return [self._member_from_row(row) for row in cursor.fetchall()]

    def list_active_member_ids(self, band_id: int) -> list[int]:
        """Active membership snapshot used for ranking and attendance rows."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT user_id
                FROM BandMembers
                WHERE band_id = ? AND status = 'ACTIVE'
                ORDER BY user_id ASC;
                """,
                (band_id,),
            )
            return [int(row["user_id"]) for row in cursor.fetchall()]

    def upsert_member(self, band_id: int, user_id: int, role: MemberRole) -> None:
        """Add a member, or re-activate an existing one with the given role."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO BandMembers (band_id, user_id, role, status, joined_at)
                VALUES (?, ?, ?, 'ACTIVE', ?)
                ON CONFLICT (band_id, user_id)
                DO UPDATE SET role = excluded.role, status = 'ACTIVE';
                """,
                (band_id, user_id, role.value, to_db_timestamp(utc_now())),
            )
            conn.commit()

    def set_member_status(self, band_id: int, user_id: int, status: MemberStatus) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE BandMembers SET status = ? WHERE band_id = ? AND user_id = ?;",
                (status.value, band_id, user_id),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Availability polls
    # ------------------------------------------------------------------

    def create_poll(
        self,
        band_id: int,
        title: str,
        created_by: int,
        options: Sequence[tuple[datetime, datetime]],
    ) -> AvailabilityPoll:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO AvailabilityPolls (band_id, title, status, created_by, created_at)
                VALUES (?, ?, 'OPEN', ?, ?);
                """,
                (band_id, title, created_by, to_db_timestamp(utc_now())),
            )
            poll_id = int(cursor.lastrowid)
            cursor.executemany(
                """
                INSERT INTO PollOptions (poll_id, start_time, end_time)
                VALUES (?, ?, ?);
                """,
                [
                    (poll_id, to_db_timestamp(start_time), to_db_timestamp(end_time))
                    for start_time, end_time in options
                ],
            )
            conn.commit()
            polls = self._load_polls(conn, [poll_id])
        return polls[0]

    def get_poll(self, poll_id: int) -> Optional[AvailabilityPoll]:
        with self._connect() as conn:
            polls = self._load_polls(conn, [poll_id])
        return polls[0] if polls else None

    def set_poll_status(self, poll_id: int, status: PollStatus) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE AvailabilityPolls SET status = ? WHERE id = ?;",
                (status.value, poll_id),
            )
            conn.commit()

    def upsert_poll_response(
        self,
        option_id: int,
        user_id: int,
        availability: Availability,
    ) -> None:
        """One response per (option, user); a repeat answer replaces the old one."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO PollResponses (option_id, user_id, availability, responded_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (option_id, user_id)
                DO UPDATE SET
                    availability = excluded.availability,
                    responded_at = excluded.responded_at;
                """,
                (option_id, user_id, availability.value, to_db_timestamp(utc_now())),
            )
            conn.commit()

    def list_open_polls_in_window(
        self,
        band_id: int,
        window_start: datetime,
        window_end: datetime,
    ) -> list[AvailabilityPoll]:
        """Open polls with at least one option fully inside the window.

        Polls come back with all of their options; narrowing options to the
        window is left to the ranking step.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT p.id
                FROM AvailabilityPolls AS p
                WHERE p.band_id = ?
                  AND p.status = 'OPEN'
                  AND EXISTS (
                      SELECT 1
                      FROM PollOptions AS o
                      WHERE o.poll_id = p.id
                        AND o.start_time >= ?
                        AND o.end_time <= ?
                  )
                ORDER BY p.id ASC;
                """,
                (band_id, to_db_timestamp(window_start), to_db_timestamp(window_end)),
            )
            poll_ids = [int(row["id"]) for row in cursor.fetchall()]
            return self._load_polls(conn, poll_ids)

    def _load_polls(
        self,
        conn: sqlite3.Connection,
        poll_ids: Sequence[int],
    ) -> list[AvailabilityPoll]:
        """Hydrate polls with options and responses in id order."""
        if not poll_ids:
            return []
        placeholders = ",".join("?" for _ in poll_ids)
        cursor = conn.cursor()

        cursor.execute(
            f"""
            SELECT pr.option_id, pr.user_id, pr.availability, u.first_name, u.last_name
            FROM PollResponses AS pr
            INNER JOIN PollOptions AS o ON o.id = pr.option_id
            INNER JOIN Users AS u ON u.id = pr.user_id
            WHERE o.poll_id IN ({placeholders})
            ORDER BY pr.id ASC;
            """,
            tuple(poll_ids),
        )
        responses_by_option: dict[int, list[PollResponse]] = {}
        for row in cursor.fetchall():
            responses_by_option.setdefault(int(row["option_id"]), []).append(
                PollResponse(
                    user_id=int(row["user_id"]),
                    availability=Availability(row["availability"]),
                    display_name=_display_name(row),
                )
            )

        cursor.execute(
            f"""
            SELECT id, poll_id, start_time, end_time
            FROM PollOptions
            WHERE poll_id IN ({placeholders})
            ORDER BY id ASC;
            """,
            tuple(poll_ids),
        )
        options_by_poll: dict[int, list[PollOption]] = {}
        for row in cursor.fetchall():
            option_id = int(row["id"])
            options_by_poll.setdefault(int(row["poll_id"]), []).append(
                PollOption(
                    option_id=option_id,
                    start_time=from_db_timestamp(str(row["start_time"])),
                    end_time=from_db_timestamp(str(row["end_time"])),
                    responses=tuple(responses_by_option.get(option_id, ())),
                )
            )

        cursor.execute(
            f"""
            SELECT id, band_id, title, status
            FROM AvailabilityPolls
            WHERE id IN ({placeholders})
            ORDER BY id ASC;
            """,
            tuple(poll_ids),
        )
        return [
            AvailabilityPoll(
                poll_id=int(row["id"]),
                band_id=int(row["band_id"]),
                title=str(row["title"]),
                status=PollStatus(row["status"]),
                options=tuple(options_by_poll.get(int(row["id"]), ())),
            )
            for row in cursor.fetchall()
        ]

    # ------------------------------------------------------------------
    # Rehearsals and attendance
    # ------------------------------------------------------------------

    def create_rehearsal(
        self,
        *,
        band_id: int,
        title: str,
        start_time: datetime,
        end_time: datetime,
        created_by: int,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        poll_id: Optional[int] = None,
        recurring_pattern: Optional[RecurringPattern] = None,
    ) -> Rehearsal:
        """Create a rehearsal with its attendance rows in one transaction.

        The recurring pattern, when given, is stored first, and the source
        poll, when given, is closed.
        """
        now = to_db_timestamp(utc_now())
        with self._connect() as conn:
            cursor = conn.cursor()
            pattern_id = None
            if recurring_pattern is not None:
                pattern_id = self._insert_recurring_pattern(cursor, recurring_pattern)
            cursor.execute(
                """
                INSERT INTO Rehearsals (
                    band_id, title, start_time, end_time, location, notes,
                    status, created_by, poll_id, created_at, updated_at,
                    is_recurring, recurring_pattern_id
                )
                VALUES (?, ?, ?, ?, ?, ?, 'SCHEDULED', ?, ?, ?, ?, ?, ?);
                """,
                (
                    band_id,
                    title,
                    to_db_timestamp(start_time),
                    to_db_timestamp(end_time),
                    location,
                    notes,
                    created_by,
                    poll_id,
                    now,
                    now,
                    int(pattern_id is not None),
                    pattern_id,
                ),
            )
            rehearsal_id = int(cursor.lastrowid)
            cursor.execute(
                """
                INSERT INTO Attendance (rehearsal_id, user_id, status)
                SELECT ?, user_id, 'NO_RESPONSE'
                FROM BandMembers
                WHERE band_id = ? AND status = 'ACTIVE';
                """,
                (rehearsal_id, band_id),
            )
            if poll_id is not None:
                cursor.execute(
                    "UPDATE AvailabilityPolls SET status = 'CLOSED' WHERE id = ?;",
                    (poll_id,),
                )
            conn.commit()
            rehearsal = self._load_rehearsal(conn, rehearsal_id)
        logger.info(
            "Rehearsal created | rehearsal_id=%s | band_id=%s | attendees=%s | recurring=%s",
            rehearsal_id,
            band_id,
            len(rehearsal.attendance),
            rehearsal.is_recurring,
        )
        return rehearsal

    def get_rehearsal(self, rehearsal_id: int) -> Optional[Rehearsal]:
        with self._connect() as conn:
            return self._load_rehearsal(conn, rehearsal_id)

    def list_band_rehearsals(
        self,
        band_id: int,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        status: Optional[RehearsalStatus] = None,
    ) -> list[Rehearsal]:
        clauses = ["band_id = ?"]
        params: list[Any] = [band_id]
        if window_start is not None and window_end is not None:
            clauses.append("start_time >= ?")
            clauses.append("end_time <= ?")
            params.extend([to_db_timestamp(window_start), to_db_timestamp(window_end)])
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT id
                FROM Rehearsals
                WHERE {" AND ".join(clauses)}
                ORDER BY start_time ASC, id ASC;
                """,
                tuple(params),
            )
            rehearsal_ids = [int(row["id"]) for row in cursor.fetchall()]
            rehearsals = [self._load_rehearsal(conn, rehearsal_id) for rehearsal_id in rehearsal_ids]
        return [rehearsal for rehearsal in rehearsals if rehearsal is not None]

    def update_rehearsal(
        self,
        rehearsal_id: int,
        changes: Mapping[str, Any],
    ) -> Optional[Rehearsal]:
        """Apply column changes; returns ``None`` when the rehearsal no longer exists."""
        unknown = set(changes) - set(_REHEARSAL_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported rehearsal fields: {sorted(unknown)}")

        assignments: list[str] = []
        params: list[Any] = []
        for column in _REHEARSAL_UPDATABLE_COLUMNS:
            if column not in changes:
                continue
            value = changes[column]
            if isinstance(value, datetime):
                value = to_db_timestamp(value)
            elif isinstance(value, RehearsalStatus):
                value = value.value
            assignments.append(f"{column} = ?")
            params.append(value)
        assignments.append("updated_at = ?")
        params.append(to_db_timestamp(utc_now()))
        params.append(rehearsal_id)

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE Rehearsals SET {', '.join(assignments)} WHERE id = ?;",
                tuple(params),
            )
            if cursor.rowcount == 0:
                return None
            conn.commit()
            return self._load_rehearsal(conn, rehearsal_id)

    def delete_rehearsal(self, rehearsal_id: int) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT recurring_pattern_id FROM Rehearsals WHERE id = ?;",
                (rehearsal_id,),
            )
            row = cursor.fetchone()
            cursor.execute("DELETE FROM Attendance WHERE rehearsal_id = ?;", (rehearsal_id,))
            cursor.execute("DELETE FROM Rehearsals WHERE id = ?;", (rehearsal_id,))
            if row is not None and row["recurring_pattern_id"] is not None:
                pattern_id = int(row["recurring_pattern_id"])
                cursor.execute(
                    "DELETE FROM RecurringPatternTimes WHERE pattern_id = ?;",
                    (pattern_id,),
                )
                cursor.execute("DELETE FROM RecurringPatterns WHERE id = ?;", (pattern_id,))
            conn.commit()

    def _insert_recurring_pattern(
        self,
        cursor: sqlite3.Cursor,
        pattern: RecurringPattern,
    ) -> int:
        cursor.execute(
            """
            INSERT INTO RecurringPatterns (
                frequency, day_of_week, day_of_month, start_date, end_date
            )
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                pattern.frequency.value,
                pattern.day_of_week,
                pattern.day_of_month,
                pattern.start_date.isoformat(),
                None if pattern.end_date is None else pattern.end_date.isoformat(),
            ),
        )
        pattern_id = int(cursor.lastrowid)
        cursor.executemany(
            """
            INSERT INTO RecurringPatternTimes (pattern_id, position, start_time, end_time)
            VALUES (?, ?, ?, ?);
            """,
            [
                (
                    pattern_id,
                    position,
                    slot.start_time.isoformat(timespec="minutes"),
                    slot.end_time.isoformat(timespec="minutes"),
                )
                for position, slot in enumerate(pattern.times_of_day)
            ],
        )
        return pattern_id

    def _load_recurring_pattern(
        self,
        conn: sqlite3.Connection,
        pattern_id: int,
    ) -> Optional[RecurringPattern]:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id, frequency, day_of_week, day_of_month, start_date, end_date
            FROM RecurringPatterns
            WHERE id = ?;
            """,
            (pattern_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        cursor.execute(
            """
            SELECT start_time, end_time
            FROM RecurringPatternTimes
            WHERE pattern_id = ?
            ORDER BY position ASC;
            """,
            (pattern_id,),
        )
        times_of_day = tuple(
            TimeOfDay(
                start_time=time.fromisoformat(str(slot["start_time"])),
                end_time=time.fromisoformat(str(slot["end_time"])),
            )
            for slot in cursor.fetchall()
        )
        return RecurringPattern(
            pattern_id=int(row["id"]),
            frequency=RecurrenceFrequency(row["frequency"]),
            start_date=date.fromisoformat(str(row["start_date"])),
            end_date=None if row["end_date"] is None else date.fromisoformat(str(row["end_date"])),
            day_of_week=None if row["day_of_week"] is None else int(row["day_of_week"]),
            day_of_month=None if row["day_of_month"] is None else int(row["day_of_month"]),
            times_of_day=times_of_day,
        )

    def upsert_attendance(
        self,
        rehearsal_id: int,
        user_id: int,
        status: AttendanceStatus,
        notes: Optional[str],
        response_time: datetime,
    ) -> Attendance:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Attendance (rehearsal_id, user_id, status, notes, response_time)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (rehearsal_id, user_id)
                DO UPDATE SET
                    status = excluded.status,
                    notes = excluded.notes,
                    response_time = excluded.response_time;
                """,
                (rehearsal_id, user_id, status.value, notes, to_db_timestamp(response_time)),
            )
            conn.commit()
            attendance = self._load_attendance(conn, rehearsal_id, user_id=user_id)
        return attendance[0]

    def _load_attendance(
        self,
        conn: sqlite3.Connection,
        rehearsal_id: int,
        user_id: Optional[int] = None,
    ) -> list[Attendance]:
        query = """
            SELECT a.rehearsal_id, a.user_id, a.status, a.notes, a.response_time,
                   u.first_name, u.last_name
            FROM Attendance AS a
            INNER JOIN Users AS u ON u.id = a.user_id
            WHERE a.rehearsal_id = ?
        """
        params: list[Any] = [rehearsal_id]
        if user_id is not None:
            query += " AND a.user_id = ?"
            params.append(user_id)
        query += " ORDER BY a.user_id ASC;"

        cursor = conn.cursor()
        cursor.execute(query, tuple(params))
        return [
            Attendance(
                rehearsal_id=int(row["rehearsal_id"]),
                user_id=int(row["user_id"]),
                status=AttendanceStatus(row["status"]),
                display_name=_display_name(row),
                notes=row["notes"],
                response_time=_optional_timestamp(row["response_time"]),
            )
            for row in cursor.fetchall()
        ]

    def _load_rehearsal(
        self,
        conn: sqlite3.Connection,
        rehearsal_id: int,
    ) -> Optional[Rehearsal]:
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT id, band_id, title, start_time, end_time, location, notes,
                   status, created_by, poll_id, created_at, updated_at,
                   is_recurring, recurring_pattern_id
            FROM Rehearsals
            WHERE id = ?;
            """,
            (rehearsal_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        pattern = None
        if row["recurring_pattern_id"] is not None:
            pattern = self._load_recurring_pattern(conn, int(row["recurring_pattern_id"]))
        return Rehearsal(
            rehearsal_id=int(row["id"]),
            band_id=int(row["band_id"]),
            title=str(row["title"]),
            start_time=from_db_timestamp(str(row["start_time"])),
            end_time=from_db_timestamp(str(row["end_time"])),
            status=RehearsalStatus(row["status"]),
            created_by=int(row["created_by"]),
            location=row["location"],
            notes=row["notes"],
            poll_id=None if row["poll_id"] is None else int(row["poll_id"]),
            created_at=_optional_timestamp(row["created_at"]),
            updated_at=_optional_timestamp(row["updated_at"]),
            is_recurring=bool(row["is_recurring"]),
            recurring_pattern=pattern,
            attendance=tuple(self._load_attendance(conn, rehearsal_id)),
        )

    # ------------------------------------------------------------------
    # Demo data
    # ------------------------------------------------------------------

    def seed_demo_data_if_empty(self) -> None:
        """Seed one deterministic demo band with an open poll when no users exist."""
        if self.count_users() > 0:
            logger.info("Users already present; skipping demo seed")
            return

        rng = random.Random(self._settings.demo_random_seed)
        people = [
            ("ana@example.com", "Ana", "Reyes"),
            ("ben@example.com", "Ben", "Okafor"),
            ("chloe@example.com", "Chloe", "Martin"),
            ("dev@example.com", "Dev", "Patel"),
            ("eli@example.com", "Eli", "Novak"),
        ]
        users = [self.create_user(email, first, last) for email, first, last in people]
        admin = users[0]
        band = self.create_band("The Demo Tapes", "Seeded demo band", admin.user_id)
        for user in users[1:]:
            self.upsert_member(band.band_id, user.user_id, MemberRole.MEMBER)
        # A former member whose old answers must not count.
        self.set_member_status(band.band_id, users[-1].user_id, MemberStatus.INACTIVE)

        first_day = utc_now().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        options: list[tuple[datetime, datetime]] = []
        for day in range(self._settings.demo_poll_days):
            evening = first_day + timedelta(days=day, hours=18)
            options.append((evening, evening + timedelta(minutes=rng.choice((90, 120, 180)))))
        poll = self.create_poll(band.band_id, "Next week's rehearsal", admin.user_id, options)

        choices = (Availability.AVAILABLE, Availability.MAYBE, Availability.UNAVAILABLE)
        response_count = 0
        for option in poll.options:
            for user in users:
                if rng.random() < 0.2:
                    continue
                self.upsert_poll_response(option.option_id, user.user_id, rng.choice(choices))
                response_count += 1
        logger.info(
            "Demo seed completed | band_id=%s | options=%s | responses=%s",
            band.band_id,
            len(poll.options),
            response_count,
        )
