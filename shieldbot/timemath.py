import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Optional

from shieldbot.errors import ParseError, PersistedStateError

DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
OFFSET_RE = re.compile(r"^([+-])(\d{2}):(\d{2})$")

# Derived instants and a few cycles of roll-forward must stay representable.
HEADROOM = timedelta(days=366)


@dataclass(frozen=True)
class ScheduleTimes:
    drop: datetime
    ping_at: datetime
    reshield_at: datetime


def check_headroom(instant: datetime) -> None:
    """Raise OverflowError when instant is too close to datetime.min or datetime.max."""
    earliest = datetime.min.replace(tzinfo=timezone.utc) + HEADROOM
    latest = datetime.max.replace(tzinfo=timezone.utc) - HEADROOM
    if not earliest <= instant <= latest:
        raise OverflowError("date value out of range")


def parse_offset_minutes(offset_str: str) -> int:
    """Parse "UTC" or a signed HH:MM offset into minutes east of UTC."""
    raw = (offset_str or "").strip()
    if raw.upper() == "UTC":
        return 0
    match = OFFSET_RE.match(raw)
    if not match:
        raise ParseError(f"Invalid UTC offset: {offset_str!r} (use UTC or +02:00)")
    sign = -1 if match.group(1) == "-" else 1
    hours = int(match.group(2))
    minutes = int(match.group(3))
    if minutes > 59:
        raise ParseError(f"Invalid UTC offset: {offset_str!r}")
    return sign * (hours * 60 + minutes)


def resolve_local_instant(date_str: str, time_str: str, offset_str: str) -> datetime:
    """Treat date/time as wall-clock time at a fixed UTC offset and convert to UTC."""
    if not date_str or not time_str or not offset_str:
        raise ParseError("Date, time and offset are all required.")

    date_match = DATE_RE.match(date_str.strip())
    time_match = TIME_RE.match(time_str.strip())
    if not date_match:
        raise ParseError(f"Invalid date: {date_str!r} (use YYYY-MM-DD)")
    if not time_match:
        raise ParseError(f"Invalid time: {time_str!r} (use HH:MM, 24h)")

    year, month, day = (int(g) for g in date_match.groups())
    hour, minute = (int(g) for g in time_match.groups())
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        raise ParseError(f"Invalid date: {date_str!r}")
    if hour > 23 or minute > 59:
        raise ParseError(f"Invalid time: {time_str!r}")

    offset_minutes = parse_offset_minutes(offset_str)

    # Calendar overflow (Feb 30, Apr 31) is rejected rather than rolled over.
    try:
        wall = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
        instant = wall - timedelta(minutes=offset_minutes)
        check_headroom(instant)
    except (ValueError, OverflowError) as exc:
        raise ParseError(f"Invalid date: {date_str!r} ({exc})") from exc
    return instant


def compute_times(drop: datetime, ping_hours_before: int, unshielded_hours: int) -> ScheduleTimes:
    return ScheduleTimes(
        drop=drop,
        ping_at=drop - timedelta(hours=ping_hours_before),
        reshield_at=drop + timedelta(hours=unshielded_hours),
    )


def encode_instant(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def decode_instant(raw: object, key: str = "nextShieldDropISO") -> Optional[datetime]:
    """Parse a stored ISO-8601 instant. Naive values are taken as UTC."""
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise PersistedStateError(key, raw)
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        parsed = parsed.astimezone(timezone.utc)
        check_headroom(parsed)
    except (ValueError, OverflowError) as exc:
        raise PersistedStateError(key, raw) from exc
    return parsed


def format_utc(value: datetime) -> str:
    """RFC 1123 text, e.g. "Fri, 13 Feb 2026 16:31:00 GMT"."""
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def discord_timestamp(value: datetime, style: str = "f") -> str:
    return f"<t:{int(value.timestamp())}:{style}>"


def format_remaining(seconds: int) -> str:
    if seconds <= 0:
        return "0 minutes"
    minutes_total = seconds // 60
    days = minutes_total // (24 * 60)
    hours = (minutes_total // 60) % 24
    minutes = minutes_total % 60
    parts = []
    if days:
        parts.append(f"{days} day" + ("s" if days != 1 else ""))
    if hours:
        parts.append(f"{hours} hour" + ("s" if hours != 1 else ""))
    if minutes or not parts:
        parts.append(f"{minutes} minute" + ("s" if minutes != 1 else ""))
    return " ".join(parts)
