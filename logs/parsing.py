"""Level and timestamp heuristics for unstructured log lines.

Timestamp extraction walks TIMESTAMP_FORMATS in order. The first regex that
matches and has a layout that parses wins; the matched span is cut out of the
line together with any level token left at its front, giving the cleaned
message. Lines with no recognisable timestamp come back untouched with a
``None`` timestamp, and callers sort them last using ``sentinel_timestamp``.

Naive timestamps are interpreted as local time. Every datetime returned is
timezone-aware.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

LEVELS = ("TRACE", "DEBUG", "INFO", "WARN", "ERROR", "FATAL")
DEFAULT_LEVEL = "INFO"

_LEVEL_RE = re.compile(r"\[?\b(TRACE|DEBUG|INFO|WARN|ERROR|FATAL)", re.IGNORECASE)
_LEADING_LEVEL_RE = re.compile(
    r"^\[?(?:TRACE|DEBUG|INFO|WARN(?:ING)?|ERROR|FATAL)\b\]?:?", re.IGNORECASE
)
_SEPARATORS = " \t-|:,"


def parse_level(line: str) -> str:
    """Return the first level token in the line, upper-cased, or INFO."""
    m = _LEVEL_RE.search(line)
    if m:
        return m.group(1).upper()
    return DEFAULT_LEVEL


def _fraction(text):
    return re.sub(r"[.,](\d+)", lambda m: "." + m.group(1)[:6], text)


def _datetime_text(text):
    return _fraction(text.replace("/", "-"))


def _us_text(text):
    text = text.replace(",", "")
    return re.sub(r"\s*([AaPp][Mm])$", lambda m: " " + m.group(1).upper(), text)


def _collapse(text):
    return " ".join(text.split())


@dataclass(frozen=True)
class TimestampFormat:
    """One format family: a regex with a ``ts`` group and the layouts to try on it.

    ``fill`` says what the layout leaves out: ``"year"`` takes the current
    year, ``"date"`` the current date, ``"epoch"`` means the group is a Unix
    timestamp in seconds or milliseconds.
    """
    name: str
    regex: re.Pattern
    layouts: tuple = ()
    fill: Optional[str] = None
    normalize: Optional[Callable[[str], str]] = None


TIMESTAMP_FORMATS = (
    TimestampFormat(
        "iso8601",
        re.compile(r"\[?(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?)\]?"),
        ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%dT%H:%M:%S"),
        normalize=_fraction,
    ),
    TimestampFormat(
        "macos_unified",
        re.compile(r"\[?(?P<ts>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d+[+-]\d{4})\]?"),
        ("%Y-%m-%d %H:%M:%S.%f%z",),
        normalize=_fraction,
    ),
    TimestampFormat(
        "datetime",
        re.compile(r"\[?(?P<ts>\d{4}[-/]\d{2}[-/]\d{2} \d{2}:\d{2}:\d{2}(?:[.,]\d+)?)\]?"),
        ("%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d %H:%M:%S"),
        normalize=_datetime_text,
    ),
    TimestampFormat(
        "us",
        re.compile(r"\[?(?P<ts>\d{1,2}/\d{1,2}/\d{4},? \d{1,2}:\d{2}:\d{2}(?:\s?[AaPp][Mm])?)\]?"),
        ("%m/%d/%Y %I:%M:%S %p", "%m/%d/%Y %H:%M:%S"),
        normalize=_us_text,
    ),
    TimestampFormat(
        "european",
        re.compile(r"\[?(?P<ts>\d{1,2}\.\d{1,2}\.\d{4} \d{2}:\d{2}:\d{2})\]?"),
        ("%d.%m.%Y %H:%M:%S",),
    ),
    TimestampFormat(
        "web_server",
        re.compile(r"\[(?P<ts>\d{2}/[A-Za-z]{3}/\d{4}:\d{2}:\d{2}:\d{2} [+-]\d{4})\]"),
        ("%d/%b/%Y:%H:%M:%S %z",),
    ),
    TimestampFormat(
        "syslog_year",
        re.compile(r"^\[?(?P<ts>[A-Z][a-z]{2}\s+\d{1,2} \d{4} \d{2}:\d{2}:\d{2})\]?"),
        ("%b %d %Y %H:%M:%S",),
        normalize=_collapse,
    ),
    TimestampFormat(
        "macos_ctime",
        re.compile(r"^\[?(?P<ts>[A-Z][a-z]{2} [A-Z][a-z]{2}\s+\d{1,2} \d{2}:\d{2}:\d{2} \d{4})\]?"),
        ("%a %b %d %H:%M:%S %Y",),
        normalize=_collapse,
    ),
    TimestampFormat(
        "macos_ctime_short",
        re.compile(r"^\[?(?P<ts>[A-Z][a-z]{2} [A-Z][a-z]{2}\s+\d{1,2} \d{2}:\d{2}:\d{2})\]?"),
        ("%Y %a %b %d %H:%M:%S",),
        fill="year",
        normalize=_collapse,
    ),
    TimestampFormat(
        "syslog",
        re.compile(r"^\[?(?P<ts>[A-Z][a-z]{2}\s+\d{1,2} \d{2}:\d{2}:\d{2})\]?"),
        ("%Y %b %d %H:%M:%S",),
        fill="year",
        normalize=_collapse,
    ),
    TimestampFormat(
        "epoch",
        re.compile(r"^\[?(?P<ts>\d{13}|\d{10}(?:\.\d{1,6})?)\]?(?![\d.])"),
        fill="epoch",
    ),
    TimestampFormat(
        "time_only",
        re.compile(r"\[?(?P<ts>\b\d{2}:\d{2}:\d{2}(?:[.,]\d{1,6})?)\b\]?"),
        ("%H:%M:%S.%f", "%H:%M:%S"),
        fill="date",
        normalize=_fraction,
    ),
)


def _parse_with(fmt, text, local_now):
    if fmt.normalize:
        text = fmt.normalize(text)

    if fmt.fill == "epoch":
        value = float(text)
        if len(text.split(".")[0]) >= 13:
            value /= 1000.0
        return datetime.fromtimestamp(value, tz=timezone.utc)

    if fmt.fill == "year":
        text = f"{local_now.year} {text}"

    for layout in fmt.layouts:
        try:
            dt = datetime.strptime(text, layout)
        except ValueError:
            continue
        if fmt.fill == "date":
            dt = datetime.combine(local_now.date(), dt.time())
        if dt.tzinfo is None:
            dt = dt.astimezone()
        return dt
    return None


def _clean(line, start, end):
    before = line[:start].rstrip()
    after = line[end:].lstrip()
    rest = f"{before} {after}" if before and after else before or after
    rest = rest.lstrip(_SEPARATORS)
    rest = _LEADING_LEVEL_RE.sub("", rest, count=1)
    return rest.lstrip(_SEPARATORS).rstrip()


def parse_timestamp(line: str, now: Optional[datetime] = None):
    """Extract a timestamp and the cleaned message from a log line.

    Returns ``(datetime, cleaned_message)`` or ``(None, line)`` when no
    format family matches.
    """
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    for fmt in TIMESTAMP_FORMATS:
        m = fmt.regex.search(line)
        if not m:
            continue
        try:
            ts = _parse_with(fmt, m.group("ts"), local_now)
        except (ValueError, OverflowError, OSError):
            ts = None
        if ts is None:
            continue
        return ts, _clean(line, m.start(), m.end())
    return None, line


def sentinel_timestamp(now: Optional[datetime] = None) -> datetime:
    """Timestamp for unparsed lines: old enough to sort after real entries."""
    return (now or datetime.now(timezone.utc)) - timedelta(days=365)
