from datetime import date, datetime, time, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Stored instants are naive UTC; aware values are converted, naive kept."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(
    value: str | datetime | None, time_value: str | time | None = None
) -> datetime | None:
    """Parse ISO datetimes or a separate date + time pair into naive UTC.

    ``parse_datetime("2025-01-15", "09:00")`` and
    ``parse_datetime("2025-01-15T09:00:00Z")`` are equivalent.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if time_value not in (None, ""):
        day = date.fromisoformat(text[:10])
        if isinstance(time_value, str):
            time_value = time.fromisoformat(time_value.strip())
        return datetime.combine(day, time_value)
    return to_naive_utc(datetime.fromisoformat(text))


def fmt_dt(value: datetime | date | None) -> str:
    """Format datetimes without seconds; dates use D MMM YYYY."""
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%-d %b %Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%-d %b %Y")
    return str(value)


def fmt_long_date(value: datetime | date | None) -> str:
    """Certificate date style, e.g. ``15 January 2025``."""
    if not value:
        return ""
    return value.strftime("%d %B %Y").lstrip("0")


def iso(value: datetime | date | None) -> str | None:
    if not value:
        return None
    return value.isoformat()
