#!/usr/bin/env python3
"""Validate local rehearsal scheduler environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sqlite3
import sys
import tempfile
from dataclasses import replace
from datetime import timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.data_repository import DataRepository
from backend.services.ranking_service import rank_suggested_slots
from backend.utils.clock import utc_now
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44

REQUIRED_PACKAGES = [
    ("fastapi", "fastapi"),
    ("uvicorn", "uvicorn"),
    ("pydantic", "pydantic"),
    ("httpx", "httpx"),
    ("pytest", "pytest"),
]

EXPECTED_TABLES = {
    "Users",
    "Bands",
    "BandMembers",
    "AvailabilityPolls",
    "PollOptions",
    "PollResponses",
    "RecurringPatterns",
    "RecurringPatternTimes",
    "Rehearsals",
    "Attendance",
}


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="rehearsal-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    import_errors: list[str] = []
    for module_name, dist_name in REQUIRED_PACKAGES:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        temp_db_path = Path(temp_dir) / "rehearsal_validation.db"
        validation_settings = replace(get_settings(), database_path=temp_db_path)
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            with sqlite3.connect(temp_db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table';")
                tables = {str(row[0]) for row in cursor.fetchall()}
            missing = EXPECTED_TABLES - tables
            if missing:
                raise RuntimeError(f"missing tables: {sorted(missing)}")
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo seed + suggested-times ranking
        try:
            repository.seed_demo_data_if_empty()
            now = utc_now()
            window_start, window_end = now, now + timedelta(days=30)
            band_id = 1
            polls = repository.list_open_polls_in_window(band_id, window_start, window_end)
            members = repository.list_active_member_ids(band_id)
            result = rank_suggested_slots(
                polls,
                members,
                window_start=window_start,
                window_end=window_end,
                min_attendees=0,
            )
            if not polls:
                raise RuntimeError("demo seed produced no open polls")
            ok, line = _print_result(
                "Suggested-times ranking",
                True,
                f": {len(result.slots)} slots for {result.total_members} members",
            )
        except Exception as exc:
            ok, line = _print_result("Suggested-times ranking", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Rehearsal Scheduler Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
