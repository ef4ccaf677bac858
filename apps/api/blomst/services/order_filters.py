"""Delivery-date and received-date filter windows for order listings.

Every window is a half-open ``[start, end)`` pair of aware UTC datetimes, with
either side possibly open (None). Civil days are taken in the delivery
timezone, so "today" means the Copenhagen day regardless of where the API
runs.
"""

import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from blomst.services.ingestion.delivery import DEFAULT_TIMEZONE

DateWindow = tuple[datetime | None, datetime | None]

_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _zone(tz: str | ZoneInfo) -> ZoneInfo:
    return tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)


def parse_day(value: str | None) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` string; anything else is None."""
    if not value or not _ISO_DAY.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def day_bounds(day: date, tz: str | ZoneInfo = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
    """Return the UTC instants of local midnight on ``day`` and the day after."""
    zone = _zone(tz)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(UTC), end.astimezone(UTC)


def _local_today(zone: ZoneInfo, now: datetime | None) -> date:
    return (now or datetime.now(UTC)).astimezone(zone).date()


def _range(
    from_: str | None, to: str | None, zone: ZoneInfo
) -> DateWindow | None:
    start_day = parse_day(from_)
    end_day = parse_day(to)
    if start_day is None and end_day is None:
        return None
    start = day_bounds(start_day, zone)[0] if start_day else None
    end = day_bounds(end_day, zone)[1] if end_day else None
    return start, end


def delivery_date_window(
    preset: str | None = None,
    day: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    *,
    tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> DateWindow | None:
    """Build the delivery-date window for a listing request.

    An explicit ``day`` wins, then a ``from_``/``to`` range, then the
    ``today``/``tomorrow`` presets. Returns None when nothing applies.
    """
    zone = _zone(tz)

    exact = parse_day(day)
    if exact is not None:
        return day_bounds(exact, zone)

    if from_ or to:
        return _range(from_, to, zone)

    today = _local_today(zone, now)
    if preset == "today":
        return day_bounds(today, zone)
    if preset == "tomorrow":
        return day_bounds(today + timedelta(days=1), zone)
    return None


def received_window(
    preset: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    *,
    tz: str | ZoneInfo = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> DateWindow | None:
    """Build the received-time window for a listing request.

    A ``from_``/``to`` range wins over presets. ``last24h`` is relative to
    ``now``; ``week`` is the local Monday-to-Sunday week containing ``now``.
    """
    zone = _zone(tz)

    if from_ or to:
        return _range(from_, to, zone)

    current = now or datetime.now(UTC)
    today = _local_today(zone, current)
    if preset == "today":
        return day_bounds(today, zone)
    if preset == "last24h":
        return current.astimezone(UTC) - timedelta(hours=24), None
    if preset == "week":
        monday = today - timedelta(days=today.weekday())
        return day_bounds(monday, zone)[0], day_bounds(monday + timedelta(days=6), zone)[1]
    return None
