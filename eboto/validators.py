import re
import datetime

from eboto.constants import PUBLICITY, TAKEN_SLUGS
from eboto.errors import InvalidRequest

# election and candidate slugs: lower-case words joined by single dashes
SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_slug(slug) -> str:
    if not slug or not isinstance(slug, str):
        raise InvalidRequest("slug required")
    slug = slug.strip().lower()
    if not SLUG_RE.match(slug):
        raise InvalidRequest("slug may only contain letters, digits and single dashes")
    return slug


def is_taken_slug(slug: str) -> bool:
    return slug in TAKEN_SLUGS


def normalize_email(email) -> str:
    if not email or not isinstance(email, str):
        raise InvalidRequest("email required")
    email = email.strip().lower()
    if not EMAIL_RE.match(email):
        raise InvalidRequest("invalid email address")
    return email


def require_text(value, field):
    if not value or not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"{field} required")
    return value.strip()


def parse_datetime(value, field="date"):
    """Accept a datetime or an ISO 8601 string and return an aware UTC datetime.

    Naive values are read as UTC, which is also what pymongo hands back.
    """
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.datetime.fromisoformat(raw)
        except ValueError:
            raise InvalidRequest(f"{field} must be an ISO 8601 timestamp")
    if not isinstance(value, datetime.datetime):
        raise InvalidRequest(f"{field} required")
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def validate_date_range(start_date, end_date):
    start = parse_datetime(start_date, "start_date")
    end = parse_datetime(end_date, "end_date")
    if start >= end:
        raise InvalidRequest("start_date must be before end_date")
    return start, end


def validate_voting_hours(value):
    # None means voting is open around the clock within the date range
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidRequest("voting_hours must be an object with start and end")
    start, end = value.get("start"), value.get("end")
    for hour in (start, end):
        if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 24:
            raise InvalidRequest("voting hours must be whole hours between 0 and 24")
    if start >= end:
        raise InvalidRequest("voting hours start must be before end")
    return {"start": start, "end": end}


def validate_publicity(value):
    value = (value or "").strip().upper()
    if value not in PUBLICITY:
        raise InvalidRequest(f"publicity must be one of {', '.join(PUBLICITY)}")
    return value


def validate_min_max(min_value=0, max_value=1):
    for v in (min_value, max_value):
        if isinstance(v, bool) or not isinstance(v, int) or v < 0:
            raise InvalidRequest("min and max must be non-negative integers")
    if max_value < 1:
        raise InvalidRequest("max must be at least 1")
    if min_value > max_value:
        raise InvalidRequest("min can't be greater than max")
    return min_value, max_value
