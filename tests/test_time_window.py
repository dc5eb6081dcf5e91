"""Tests de resolución de la ventana temporal."""

from datetime import datetime, timedelta, timezone

from faro.search import TimeRange, resolve_time_window
from faro.search.time_window import to_unix

from helpers.fakes import make_criteria

T = datetime(2025, 5, 20, 8, 30, tzinfo=timezone.utc)


def test_checkpoint_is_lower_bound(fixed_now):
    window = resolve_time_window(make_criteria(last_run_at=T), now=fixed_now)

    assert window.date_from == to_unix(T)
    assert window.date_to is None
    assert window.source == "checkpoint"


def test_full_rescan_has_no_lower_bound_and_no_lookback(fixed_now):
    criteria = make_criteria(
        last_run_at=T,
        date_from=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    window = resolve_time_window(criteria, full_rescan=True, now=fixed_now)

    assert window.is_unbounded
    assert window.source == "full_rescan"


def test_custom_override_wins_over_checkpoint(fixed_now):
    since = datetime(2025, 3, 1, tzinfo=timezone.utc)
    until = datetime(2025, 3, 15, tzinfo=timezone.utc)
    window = resolve_time_window(
        make_criteria(last_run_at=T),
        custom_range=TimeRange(date_from=since, date_to=until),
        now=fixed_now,
    )

    assert (window.date_from, window.date_to) == (to_unix(since), to_unix(until))
    assert window.source == "custom"


def test_custom_override_applies_under_full_rescan(fixed_now):
    since = datetime(2025, 3, 1, tzinfo=timezone.utc)
    window = resolve_time_window(
        make_criteria(),
        full_rescan=True,
        custom_range=TimeRange(date_from=since),
        now=fixed_now,
    )

    assert window.date_from == to_unix(since)
    assert window.source == "custom"


def test_empty_override_is_ignored(fixed_now):
    window = resolve_time_window(
        make_criteria(last_run_at=T), custom_range=TimeRange(), now=fixed_now
    )

    assert window.source == "checkpoint"


def test_checkpoint_beats_configured_window(fixed_now):
    criteria = make_criteria(
        last_run_at=T,
        date_from=datetime(2025, 1, 1, tzinfo=timezone.utc),
        date_to=datetime(2025, 2, 1, tzinfo=timezone.utc),
    )

    assert resolve_time_window(criteria, now=fixed_now).source == "checkpoint"


def test_configured_window_without_checkpoint(fixed_now):
    date_from = datetime(2025, 1, 1, tzinfo=timezone.utc)
    date_to = datetime(2025, 2, 1, tzinfo=timezone.utc)
    window = resolve_time_window(
        make_criteria(date_from=date_from, date_to=date_to), now=fixed_now
    )

    assert (window.date_from, window.date_to) == (to_unix(date_from), to_unix(date_to))
    assert window.source == "criteria"


def test_default_lookback(fixed_now):
    window = resolve_time_window(make_criteria(), now=fixed_now)

    assert window.date_from == to_unix(fixed_now - timedelta(days=7))
    assert window.date_to is None
    assert window.source == "default_lookback"


def test_custom_lookback_days(fixed_now):
    window = resolve_time_window(make_criteria(), now=fixed_now, default_lookback_days=30)

    assert window.date_from == to_unix(fixed_now - timedelta(days=30))


def test_naive_datetimes_are_utc():
    naive = datetime(2025, 5, 20, 8, 30)

    assert to_unix(naive) == to_unix(T)
