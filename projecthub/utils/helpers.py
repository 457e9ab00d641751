"""Shared utility functions for services and blueprints.

parse_date:     lenient date parsing (None on bad input)
require_date:   strict date parsing (ValidationError on bad input)
to_utc:         naive-as-UTC datetime normalisation
commit_or_raise: commit with IntegrityError/SQLAlchemyError translation
"""
import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from projecthub.core.exceptions import (
    ConflictError,
    InfrastructureError,
    ValidationError,
)
from projecthub.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO date or ISO datetime) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        return None


def require_date(value, field):
    """Same as parse_date() but raises ValidationError on bad input."""
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", details={field: "invalid date"})
    return parsed


def to_utc(dt):
    """Normalise a datetime to UTC-aware.

    SQLite returns naive datetimes; stored values are always UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Database commit helper ───────────────────────────────────────────────────


def commit_or_raise(resource="Record", field="id", value=None):
    """Commit the current session, translating driver failures.

    IntegrityError   → ConflictError (duplicate / constraint violation)
    SQLAlchemyError  → InfrastructureError (connection / lock issues)

    The session is rolled back before raising so the stored state is
    unchanged.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError(resource, field, value) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise InfrastructureError("Database error on commit") from exc
