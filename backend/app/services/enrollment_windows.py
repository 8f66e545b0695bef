"""Per-semester quota and enrollment window rules configured on a degree."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from .. import models

logger = logging.getLogger(__name__)

# purpose: read the degree-level {semester: {count, enrollment_start, enrollment_end}} map
# status: active


@dataclass(frozen=True)
class SemesterRule:
    semester: int
    count: int
    enrollment_start: datetime | None
    enrollment_end: datetime | None

    def window(self) -> dict[str, str | None]:
        return {
            "enrollment_start": self.enrollment_start.isoformat() if self.enrollment_start else None,
            "enrollment_end": self.enrollment_end.isoformat() if self.enrollment_end else None,
        }


def _parse_instant(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("unparseable enrollment window bound %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_count(value: Any) -> int:
    # counts are often stored as strings by the admin UI
    try:
        count = int(str(value).strip()) if value not in (None, "") else 0
    except ValueError:
        logger.warning("unparseable course count %r", value)
        return 0
    return max(count, 0)


def semester_rule(degree: models.Degree, semester: int) -> SemesterRule:
    config = (degree.courses_per_semester or {}).get(str(semester)) or {}
    if not isinstance(config, dict):
        config = {}
    return SemesterRule(
        semester=semester,
        count=_parse_count(config.get("count")),
        enrollment_start=_parse_instant(config.get("enrollment_start")),
        enrollment_end=_parse_instant(config.get("enrollment_end")),
    )


def is_window_open(degree: models.Degree, semester: int, now: datetime | None = None) -> bool:
    """Return True when ``start <= now <= end``; missing bounds keep the window closed."""

    rule = semester_rule(degree, semester)
    if rule.enrollment_start is None or rule.enrollment_end is None:
        return False
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return rule.enrollment_start <= moment <= rule.enrollment_end


def required_count(degree: models.Degree, semester: int) -> int:
    """Exact number of courses to select, or 0 for "at least one"."""

    return semester_rule(degree, semester).count
