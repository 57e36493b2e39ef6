import re
from datetime import datetime, timezone

import pytz

from services.exceptions import ValidationError

DEFAULT_PATTERN = "dd/MM/yyyy HH:mm:ss"

# date-pattern tokens -> strftime directives
_TOKENS = {
    "yyyy": "%Y",
    "yy": "%y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
# quoted text is copied through as-is, e.g. yyyy-MM-dd'T'HH:mm:ss
_TOKEN_RE = re.compile(r"'[^']*'|yyyy|yy|MM|dd|HH|mm|ss")


def get_zone(name: str):
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def _to_strftime(pattern: str) -> str:
    out = []
    pos = 0
    for m in _TOKEN_RE.finditer(pattern):
        out.append(pattern[pos:m.start()].replace("%", "%%"))
        token = m.group(0)
        if token.startswith("'"):
            # '' is an escaped single quote
            out.append(token[1:-1].replace("%", "%%") or "'")
        else:
            out.append(_TOKENS[token])
        pos = m.end()
    out.append(pattern[pos:].replace("%", "%%"))
    return "".join(out)


def parse_local_to_absolute(value: str, zone: str) -> datetime:
    """
    Read an ISO-8601 string as wall-clock time in ``zone`` and return the
    matching UTC instant. Strings that carry their own offset keep it.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("scheduled_at is required", details={"field": "scheduled_at"})

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(
            "Invalid datetime format. Use ISO e.g. 2025-03-10T09:00:00",
            details={"field": "scheduled_at", "value": value},
        ) from exc

    if parsed.tzinfo is None:
        parsed = get_zone(zone).localize(parsed)
    return parsed.astimezone(timezone.utc)


def format_absolute_in_zone(instant: datetime, zone: str, pattern: str = DEFAULT_PATTERN) -> str:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(get_zone(zone))
    return local.strftime(_to_strftime(pattern))


def start_of_today(zone: str, now: datetime) -> datetime:
    """Midnight of ``now``'s calendar day in ``zone``, expressed in UTC."""
    tz = get_zone(zone)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_day = now.astimezone(tz).date()
    midnight = tz.localize(datetime(local_day.year, local_day.month, local_day.day))
    return midnight.astimezone(timezone.utc)
