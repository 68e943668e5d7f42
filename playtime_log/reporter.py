from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from .clock import to_utc
from .models import DaySnapshot, PlayTimeRecord
from .tracker import PlaytimeLedger

SNAPSHOT_PREFIX = "playtime_log"


def snapshot_filename(day: datetime, *, interrupted: bool) -> str:
    day_utc = to_utc(day)
    if interrupted:
        return f"{SNAPSHOT_PREFIX}-{day_utc:%Y-%m-%dT%H:%M:%S}-interrupt.json"
    return f"{SNAPSHOT_PREFIX}-{day_utc:%Y-%m-%d}.json"


def build_snapshot(ledger: PlaytimeLedger, day: datetime | None = None) -> DaySnapshot:
    records = [PlayTimeRecord.from_session(session) for session in ledger.sessions()]
    records.sort(key=lambda item: (-item.duration_ns, item.player_name.lower()))
    return DaySnapshot(day=day or ledger.day, play_times=records)


def load_snapshot(path: str | Path) -> DaySnapshot:
    return DaySnapshot.model_validate_json(Path(path).read_text(encoding="utf-8"))


def build_summary_content(snapshot: DaySnapshot) -> str:
    day_label = to_utc(snapshot.day).date().isoformat()
    header = f"Playtime - {day_label}"

    if not snapshot.play_times:
        return f"{header}\nNo tracked activity for {day_label}."

    lines = [f"- {record.player_name}: {record.readable_duration}" for record in snapshot.play_times]
    return header + "\n" + "\n".join(lines)


class SnapshotWriter:
    """Writes day snapshots into an existing output directory."""

    def __init__(self, output_dir: str | Path, logger: logging.Logger | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.logger = logger or logging.getLogger(__name__)

    def path_for(self, day: datetime, *, interrupted: bool) -> Path:
        return self.output_dir / snapshot_filename(day, interrupted=interrupted)

    def write(self, ledger: PlaytimeLedger, day: datetime | None = None, *, interrupted: bool = False) -> Path | None:
        """Persist the ledger and return the written path, or None on failure.

        Write errors are logged, not raised; the ledger is left as it was.
        """
        snapshot = build_snapshot(ledger, day)
        path = self.path_for(snapshot.day, interrupted=interrupted)

        try:
            path.write_text(snapshot.to_json(), encoding="utf-8")
        except OSError:
            self.logger.exception("Failed to write playtime snapshot %s", path)
            return None

        self.logger.info("Wrote %d playtime records to %s", len(snapshot.play_times), path)
        return path
