"""Unit tests for timestamp helpers and the monotonic clock."""

from datetime import datetime, timedelta, timezone

import pytest

from swarm_factory.core.dates import MonotonicClock, ensure_utc, format_iso


@pytest.mark.unit
def test_format_iso_uses_milliseconds_and_z_suffix():
    value = datetime(2026, 10, 19, 7, 37, 1, 123456, tzinfo=timezone.utc)
    assert format_iso(value) == "2026-10-19T07:37:01.123Z"


@pytest.mark.unit
def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc


@pytest.mark.unit
def test_monotonic_clock_strictly_increases_on_frozen_wall_clock():
    frozen = datetime(2026, 10, 19, 7, 37, 1, 123000, tzinfo=timezone.utc)
    clock = MonotonicClock(now=lambda: frozen)

    readings = [clock.now_iso() for _ in range(3)]

    assert readings == [
        "2026-10-19T07:37:01.123Z",
        "2026-10-19T07:37:01.124Z",
        "2026-10-19T07:37:01.125Z",
    ]


@pytest.mark.unit
def test_monotonic_clock_survives_wall_clock_stepping_back():
    start = datetime(2026, 10, 19, 7, 37, 1, tzinfo=timezone.utc)
    ticks = iter([start, start - timedelta(seconds=5), start + timedelta(seconds=1)])
    clock = MonotonicClock(now=lambda: next(ticks))

    first, second, third = clock.now(), clock.now(), clock.now()

    assert first < second < third
    assert second - first == timedelta(milliseconds=1)
    assert third == start + timedelta(seconds=1)
