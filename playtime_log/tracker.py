from __future__ import annotations

import logging
from datetime import datetime, timedelta

from .clock import END_OF_DAY_EXTRA_NS, end_of_day, missing_start_for, to_nanoseconds, to_utc, utc_day, utc_now
from .models import Session


class PlaytimeLedger:
    """Per-player sessions for one UTC calendar day."""

    def __init__(self, day: datetime, logger: logging.Logger | None = None) -> None:
        self.day = to_utc(day)
        self.logger = logger or logging.getLogger(__name__)
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, player_name: object) -> bool:
        return player_name in self._sessions

    def get(self, player_name: str) -> Session | None:
        return self._sessions.get(player_name)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def is_later_day(self, moment: datetime) -> bool:
        return utc_day(moment) > self.day.date()

    def apply_join(self, player_name: str, joined_at: datetime) -> bool:
        if not player_name:
            self.logger.warning("Ignoring join without a player name")
            return False

        session = self._sessions.get(player_name)
        if session is None:
            session = Session(player_name=player_name)
            self._sessions[player_name] = session

        # Restarting the clock keeps whatever was already folded into duration.
        session.latest_start = to_utc(joined_at)
        return True

    def apply_leave(self, player_name: str, left_at: datetime) -> timedelta:
        if not player_name:
            self.logger.warning("Ignoring leave without a player name")
            return timedelta(0)

        left = to_utc(left_at)
        session = self._sessions.get(player_name)
        if session is None:
            session = Session(player_name=player_name, latest_start=missing_start_for(left))
            self._sessions[player_name] = session
            self.logger.debug("No join seen for %s, assuming online since %s", player_name, session.latest_start)

        tracked = left - session.latest_start
        if tracked < timedelta(0):
            self.logger.warning("Leave for %s at %s precedes its start %s", player_name, left, session.latest_start)
            tracked = timedelta(0)

        session.latest_end = left
        session.latest_end_nanos = 0
        session.duration_ns += to_nanoseconds(tracked)
        return tracked

    def reconcile(self, reference_day: datetime) -> list[str]:
        """Close every open session at the last nanosecond of reference_day.

        Returns the names of the sessions that were closed. Time past the end
        of the day is not carried into the next ledger.
        """
        before_midnight = end_of_day(reference_day)
        closed: list[str] = []
        for session in self._sessions.values():
            if not session.is_open:
                continue
            elapsed = to_nanoseconds(before_midnight - session.latest_start) + END_OF_DAY_EXTRA_NS
            session.duration_ns += max(elapsed, 0)
            session.latest_end = before_midnight
            session.latest_end_nanos = END_OF_DAY_EXTRA_NS
            closed.append(session.player_name)
        return closed

    def totals(self, *, include_live: bool, now: datetime | None = None) -> dict[str, timedelta]:
        """Day-so-far time per player, optionally counting sessions still open."""
        totals = {session.player_name: session.duration for session in self._sessions.values()}

        if not include_live:
            return totals

        current = min(to_utc(now or utc_now()), end_of_day(self.day))
        for session in self._sessions.values():
            if not session.is_open:
                continue
            live = current - session.latest_start
            if live > timedelta(0):
                totals[session.player_name] += live

        return totals

    def reset(self, day: datetime) -> None:
        self.day = to_utc(day)
        self._sessions = {}
