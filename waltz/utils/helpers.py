"""Shared utility functions.

as_utc:              normalise naive datetimes read back from SQLite
minus_months:        calendar-month subtraction with end-of-month clamping
to_iso_date:         date / datetime → "YYYY-MM-DD"
commit_or_conflict:  commit, turning IntegrityError into ConflictError
"""
import calendar
import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError

from waltz.core.exceptions import ConflictError
from waltz.models import db

logger = logging.getLogger(__name__)


def as_utc(value):
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on ``DateTime(timezone=True)`` columns, so values
    read back are naive. Naive values are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minus_months(moment, months: int):
    """Subtract calendar months, clamping the day to the target month's length.

    >>> minus_months(datetime(2024, 3, 31), 1)
    datetime.datetime(2024, 2, 29, 0, 0)
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month0 = divmod(month_index, 12)
    month = month0 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def to_iso_date(value):
    """Render a date or datetime as ``YYYY-MM-DD``; None stays None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_conflict(resource: str, field: str, value=None, message: str | None = None):
    """Commit the current session; on IntegrityError roll back and raise ConflictError.

    Service-layer counterpart of the blueprint commit helpers: callers get a
    typed exception instead of a response tuple.

    Raises:
        ConflictError: a unique or foreign-key constraint rejected the write.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError(resource, field, value, message=message) from exc
