from dataclasses import replace
from datetime import datetime, timedelta, timezone

from playtime_log.models import Session
from playtime_log.tracker import PlaytimeLedger


HOUR_NS = 3600 * 10**9


def at(hour: int, minute: int = 0, second: int = 0, microsecond: int = 0, day: int = 24) -> datetime:
    return datetime(2021, 3, day, hour, minute, second, microsecond, tzinfo=timezone.utc)


def test_join_opens_session() -> None:
    ledger = PlaytimeLedger(day=at(9))

    assert ledger.apply_join("Ralea2", at(12, 35)) is True

    assert ledger.get("Ralea2") == Session(player_name="Ralea2", latest_start=at(12, 35))


def test_leave_after_join_adds_interval() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("Ralea2", at(12, 35))

    tracked = ledger.apply_leave("Ralea2", at(12, 45))

    assert tracked == timedelta(minutes=10)
    assert ledger.get("Ralea2") == Session(
        player_name="Ralea2",
        latest_start=at(12, 35),
        latest_end=at(12, 45),
        duration_ns=600_000_000_000,
    )


def test_leave_without_join_assumes_online_since_midnight() -> None:
    ledger = PlaytimeLedger(day=at(0))

    ledger.apply_leave("Ralea2", at(0, 31))

    session = ledger.get("Ralea2")
    assert session.latest_start == at(0, 0, 1)
    assert session.latest_end == at(0, 31)
    assert session.duration == timedelta(minutes=30, seconds=59)


def test_leave_before_synthesized_start_adds_nothing() -> None:
    ledger = PlaytimeLedger(day=at(0))

    assert ledger.apply_leave("Ralea2", at(0, 0, 0, 500000)) == timedelta(0)
    assert ledger.get("Ralea2").duration == timedelta(0)


def test_duration_is_sum_of_completed_intervals() -> None:
    ledger = PlaytimeLedger(day=at(0))
    intervals = [(at(8), at(8, 20)), (at(10, 5), at(11)), (at(18, 30), at(18, 31, 15))]

    expected = timedelta(0)
    for start, end in intervals:
        ledger.apply_join("adidfr", start)
        ledger.apply_leave("adidfr", end)
        expected += end - start
        assert ledger.get("adidfr").duration == expected


def test_second_join_restarts_clock_without_losing_duration() -> None:
    ledger = PlaytimeLedger(day=at(0))
    ledger.apply_join("adidfr", at(10))
    ledger.apply_leave("adidfr", at(10, 10))

    ledger.apply_join("adidfr", at(11))
    ledger.apply_join("adidfr", at(11, 30))
    ledger.apply_leave("adidfr", at(11, 40))

    assert ledger.get("adidfr").duration == timedelta(minutes=20)


def test_empty_player_names_are_skipped() -> None:
    ledger = PlaytimeLedger(day=at(0))

    assert ledger.apply_join("", at(10)) is False
    assert ledger.apply_leave("", at(11)) == timedelta(0)
    assert len(ledger) == 0
    assert "" not in ledger


def test_reconcile_closes_session_without_end() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("Ralea2", at(13))

    closed = ledger.reconcile(at(12, 35))

    assert closed == ["Ralea2"]
    assert ledger.get("Ralea2") == Session(
        player_name="Ralea2",
        latest_start=at(13),
        latest_end=at(23, 59, 59, 999999),
        latest_end_nanos=999,
        duration_ns=11 * HOUR_NS - 1,
    )


def test_reconcile_credits_up_to_last_nanosecond_of_day() -> None:
    ledger = PlaytimeLedger(day=at(0))
    ledger.apply_join("Ralea2", at(12))

    ledger.reconcile(at(12))

    assert ledger.get("Ralea2").duration_ns == 43_199_999_999_999


def test_reconcile_closes_session_with_old_end() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("Ralea2", at(9, 35))
    ledger.apply_leave("Ralea2", at(11, 35))
    ledger.apply_join("Ralea2", at(13))

    ledger.reconcile(at(12, 35))

    session = ledger.get("Ralea2")
    assert session.duration_ns == 2 * HOUR_NS + 11 * HOUR_NS - 1
    assert session.latest_end == at(23, 59, 59, 999999)


def test_reconcile_leaves_closed_sessions_alone() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("adidfr", at(13))
    ledger.apply_leave("adidfr", at(13, 22))

    assert ledger.reconcile(at(9)) == []
    assert ledger.get("adidfr").latest_end == at(13, 22)
    assert ledger.get("adidfr").duration == timedelta(minutes=22)


def test_reconcile_is_idempotent() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("Ralea2", at(20))
    ledger.apply_join("adidfr", at(13))
    ledger.apply_leave("adidfr", at(13, 22))

    ledger.reconcile(at(9))
    once = [replace(session) for session in ledger.sessions()]
    assert ledger.reconcile(at(9)) == []

    assert ledger.sessions() == once


def test_reset_starts_an_empty_day() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("Ralea2", at(20))

    ledger.reset(at(0, 5, day=25))

    assert len(ledger) == 0
    assert ledger.day == at(0, 5, day=25)
    assert ledger.is_later_day(at(0, day=26))
    assert not ledger.is_later_day(at(23, day=25))
    assert not ledger.is_later_day(at(23, day=24))


def test_totals_without_live_sessions() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("adidfr", at(13))
    ledger.apply_leave("adidfr", at(13, 22))
    ledger.apply_join("Ralea2", at(20))

    assert ledger.totals(include_live=False) == {
        "adidfr": timedelta(minutes=22),
        "Ralea2": timedelta(0),
    }


def test_totals_include_open_sessions_up_to_now() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("adidfr", at(13))
    ledger.apply_leave("adidfr", at(13, 22))
    ledger.apply_join("adidfr", at(19, 55))

    totals = ledger.totals(include_live=True, now=at(20))

    assert totals == {"adidfr": timedelta(minutes=27)}
    assert ledger.get("adidfr").duration == timedelta(minutes=22)


def test_live_totals_stop_at_end_of_day() -> None:
    ledger = PlaytimeLedger(day=at(9))
    ledger.apply_join("Ralea2", at(23))

    totals = ledger.totals(include_live=True, now=at(1, day=25))

    assert totals["Ralea2"] == timedelta(minutes=59, seconds=59, microseconds=999999)
