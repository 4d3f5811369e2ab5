"""Conversion between Project entities and persisted rows.

Timestamps are stored as RFC 3339 strings in UTC with a fixed nine-digit
fraction and a "Z" suffix, so text order equals chronological order.
Python datetimes carry microseconds; the last three fraction digits are
always zero on write and truncated on read.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from vibedash.core.errors import ProjectValidationError, StorageError
from vibedash.persistence.sqlite.schema import ProjectRow
from vibedash.projects.models import Confidence, Project, ProjectState, Stage

_TIMESTAMP_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def format_timestamp(value: datetime) -> str:
    """Format an instant as a UTC RFC 3339 string with nanosecond precision.

    Years are always four digits, so every instant from year 1 on sorts and
    parses the same way.

    Raises:
        ProjectValidationError: The instant cannot be expressed in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        value = value.astimezone(timezone.utc)
    except OverflowError as e:
        raise ProjectValidationError.invalid_field(
            "timestamp", value, "timestamp is outside the UTC range"
        ) from e
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
        f".{value.microsecond:06d}000Z"
    )


def parse_timestamp(value: str, column: str = "timestamp") -> datetime:
    """Parse an RFC 3339 string (up to nine fraction digits) into an aware datetime.

    Raises:
        StorageError: The string is not a valid RFC 3339 timestamp, or names
            an offset or instant outside the representable range.
    """
    match = _TIMESTAMP_RE.match(value or "")
    if match is None:
        raise StorageError.decode_failed(column, value, "not an RFC 3339 timestamp")

    frac = (match.group("frac") or "").ljust(6, "0")[:6]
    tz_token = match.group("tz")
    try:
        if tz_token == "Z":
            tz = timezone.utc
        else:
            sign = 1 if tz_token[0] == "+" else -1
            hours, minutes = int(tz_token[1:3]), int(tz_token[4:6])
            tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

        parsed = datetime.strptime(
            f"{match.group('date')}T{match.group('time')}", "%Y-%m-%dT%H:%M:%S"
        )
        return parsed.replace(microsecond=int(frac), tzinfo=tz).astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        raise StorageError.decode_failed(column, value, str(e)) from e


def _null_if_empty(value: str) -> str | None:
    return value or None


def encode_project(project: Project) -> dict[str, Any]:
    """Row values for a project, keyed by column name."""
    if project.created_at is None or project.last_activity_at is None:
        raise ProjectValidationError.invalid_field(
            "created_at", project.created_at, "timestamps are required"
        )
    updated_at = project.updated_at or project.created_at
    return {
        "id": project.id,
        "name": project.name,
        "path": project.path,
        "display_name": _null_if_empty(project.display_name),
        "detected_method": _null_if_empty(project.detected_method),
        "current_stage": project.current_stage.value,
        "confidence": project.confidence.value if project.confidence else None,
        "detection_reasoning": _null_if_empty(project.detection_reasoning),
        "is_favorite": int(project.is_favorite),
        "state": project.state.value,
        "notes": _null_if_empty(project.notes),
        "path_missing": int(project.path_missing),
        "last_activity_at": format_timestamp(project.last_activity_at),
        "created_at": format_timestamp(project.created_at),
        "updated_at": format_timestamp(updated_at),
    }


def decode_project(row: ProjectRow) -> Project:
    """Build a Project from a persisted row.

    Only malformed timestamps fail; every other column has a fallback.

    Raises:
        StorageError: A timestamp column does not parse.
    """
    return Project(
        id=row.id,
        name=row.name,
        path=row.path,
        display_name=row.display_name or "",
        detected_method=row.detected_method or "",
        current_stage=Stage.parse(row.current_stage),
        confidence=Confidence.parse(row.confidence),
        detection_reasoning=row.detection_reasoning or "",
        is_favorite=bool(row.is_favorite),
        state=ProjectState.parse(row.state),
        notes=row.notes or "",
        path_missing=bool(row.path_missing),
        last_activity_at=parse_timestamp(row.last_activity_at, "last_activity_at"),
        created_at=parse_timestamp(row.created_at, "created_at"),
        updated_at=parse_timestamp(row.updated_at, "updated_at"),
    )
