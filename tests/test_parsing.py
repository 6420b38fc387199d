"""Tests for level and timestamp heuristics."""
import pytest
from datetime import datetime, time, timedelta, timezone
from logs.parsing import parse_level, parse_timestamp, sentinel_timestamp, TIMESTAMP_FORMATS

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def local(*args):
    """Naive wall-clock time interpreted in the local zone, like the parser does."""
    return datetime(*args).astimezone()


# ── Levels ─────────────────────────────────────────────

@pytest.mark.parametrize("line,expected", [
    ("2024-03-01 10:00:00 ERROR db down", "ERROR"),
    ("[warn] disk almost full", "WARN"),
    ("WARNING: deprecated call", "WARN"),
    ("something fatal happened", "FATAL"),
    ("a debug message", "DEBUG"),
    ("no level here", "INFO"),
    ("terror alert level", "INFO"),
])
def test_parse_level(line, expected):
    assert parse_level(line) == expected


# ── Timestamps ─────────────────────────────────────────

@pytest.mark.parametrize("line,expected_ts,expected_msg", [
    ("2024-03-01T10:15:30Z ERROR something failed",
     datetime(2024, 3, 1, 10, 15, 30, tzinfo=timezone.utc), "something failed"),
    ("[2024-03-01T10:15:30.123+02:00] INFO started",
     datetime(2024, 3, 1, 10, 15, 30, 123000, tzinfo=timezone(timedelta(hours=2))), "started"),
    ("2024-03-01 10:15:30.123456-0800 localhost kernel[0]: wake",
     datetime(2024, 3, 1, 10, 15, 30, 123456, tzinfo=timezone(timedelta(hours=-8))),
     "localhost kernel[0]: wake"),
    ("2024/03/01 10:15:30 WARN disk", local(2024, 3, 1, 10, 15, 30), "disk"),
    ("2024-03-01 10:15:30,123 ERROR boom", local(2024, 3, 1, 10, 15, 30, 123000), "boom"),
    ("3/1/2024 10:15:30 PM ERROR oops", local(2024, 3, 1, 22, 15, 30), "oops"),
    ("01.03.2024 10:15:30 INFO european", local(2024, 3, 1, 10, 15, 30), "european"),
    ("Mar  1 2024 10:15:30 host app: msg", local(2024, 3, 1, 10, 15, 30), "host app: msg"),
    ("Fri Mar  1 10:15:30 2024 kernel: ctime", local(2024, 3, 1, 10, 15, 30), "kernel: ctime"),
    ("Mar  1 10:15:30 host sshd[12]: Accepted", local(2024, 3, 1, 10, 15, 30), "host sshd[12]: Accepted"),
    ("1709288130 job done", datetime.fromtimestamp(1709288130, tz=timezone.utc), "job done"),
    ("1709288130123 job done", datetime.fromtimestamp(1709288130.123, tz=timezone.utc), "job done"),
])
def test_parse_timestamp_families(line, expected_ts, expected_msg):
    ts, msg = parse_timestamp(line, now=NOW)
    assert ts == expected_ts
    assert ts.tzinfo is not None
    assert msg == expected_msg


def test_web_server_format():
    line = '127.0.0.1 - - [01/Mar/2024:10:15:30 +0000] "GET / HTTP/1.1" 200'
    ts, msg = parse_timestamp(line, now=NOW)
    assert ts == datetime(2024, 3, 1, 10, 15, 30, tzinfo=timezone.utc)
    assert msg == '127.0.0.1 - - "GET / HTTP/1.1" 200'


def test_time_only_uses_current_date():
    ts, msg = parse_timestamp("10:15:30 worker started", now=NOW)
    expected = datetime.combine(NOW.astimezone().date(), time(10, 15, 30)).astimezone()
    assert ts == expected
    assert msg == "worker started"


def test_syslog_takes_current_year():
    ts, _ = parse_timestamp("Jan  5 08:00:00 host cron: ran", now=datetime(2031, 2, 1, tzinfo=timezone.utc))
    assert ts.year == 2031


def test_no_timestamp_returns_line_unchanged():
    line = "plain message without any time in it"
    assert parse_timestamp(line, now=NOW) == (None, line)


def test_invalid_date_falls_through():
    # Matches the ISO shape but is not a real date; no later family fits either
    line = "2024-13-45T99:99:99 broken"
    ts, msg = parse_timestamp(line, now=NOW)
    assert ts is None
    assert msg == line


def test_sentinel_is_one_year_back():
    assert sentinel_timestamp(NOW) == NOW - timedelta(days=365)
    assert sentinel_timestamp(NOW) < parse_timestamp("1709288130 x", now=NOW)[0]


def test_format_table_is_named_and_ordered():
    names = [f.name for f in TIMESTAMP_FORMATS]
    assert names[0] == "iso8601"
    assert names[-1] == "time_only"
    assert len(set(names)) == len(names)
