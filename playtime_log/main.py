from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import typer
from dotenv import load_dotenv

from .classifier import classify
from .clock import format_duration, to_nanoseconds, utc_now
from .config import Config, load_config
from .follower import LogFollower, SourceUnavailableError
from .models import LineReceived, ShutdownRequested, Tick
from .reporter import SnapshotWriter, build_summary_content, load_snapshot
from .tracker import PlaytimeLedger

__version__ = "0.1.0"

EXIT_OK = 0
EXIT_FAILURE = 1
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

QueueItem = LineReceived | Tick | ShutdownRequested

app = typer.Typer(help="Track Minecraft playtime per player and day")


class PlaytimeService:
    """Sole owner of the ledger. Lines, ticks and signals are applied in queue order."""

    def __init__(
        self,
        config: Config,
        writer: SnapshotWriter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.clock = clock
        self.writer = writer or SnapshotWriter(config.output_dir)
        self.ledger = PlaytimeLedger(day=clock())
        self.queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        self.logger = logging.getLogger("playtime-logger")

        self.shutting_down = False
        self._loop: asyncio.AbstractEventLoop | None = None

    def post(self, item: QueueItem) -> None:
        """Queue an item for the consumer. Safe to call from any thread."""
        if self._loop is None:
            self.queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, item)

    def post_line(self, text: str, observed_at: datetime) -> None:
        self.post(LineReceived(text=text, observed_at=observed_at))

    def request_shutdown(self, signal_name: str) -> None:
        if self.shutting_down:
            self.logger.warning("Ignoring %s, shutdown already in progress", signal_name)
            return
        self.shutting_down = True
        self.post(ShutdownRequested(signal_name=signal_name))

    def handle_line(self, text: str, observed_at: datetime) -> None:
        self.logger.debug("Got new line: %s", text)
        # Roll over first so the line lands in the ledger of the day it was seen.
        self.check_rollover(observed_at)

        for event in classify(text):
            if event.kind == "leave":
                self.logger.info("Logout detected: %s", event.player_name)
                self.ledger.apply_leave(event.player_name, observed_at)
            else:
                self.logger.info("Login detected: %s", event.player_name)
                self.ledger.apply_join(event.player_name, observed_at)

    def handle_tick(self, now: datetime) -> None:
        self.check_rollover(now)
        if self.logger.isEnabledFor(logging.DEBUG):
            totals = self.ledger.totals(include_live=True, now=now)
            self.logger.debug(
                "Day so far: %s",
                ", ".join(f"{name}={format_duration(to_nanoseconds(value))}" for name, value in totals.items()) or "nobody",
            )

    def check_rollover(self, now: datetime) -> Path | None:
        if not self.ledger.is_later_day(now):
            return None

        self.logger.info("New day new file: %s", self.ledger.day.date().isoformat())
        path = self.flush(interrupted=False)
        self.ledger.reset(now)
        return path

    def flush(self, *, interrupted: bool) -> Path | None:
        closed = self.ledger.reconcile(self.ledger.day)
        if closed:
            self.logger.info("Closed %d open sessions at end of %s", len(closed), self.ledger.day.date().isoformat())
        return self.writer.write(self.ledger, interrupted=interrupted)

    async def process(self) -> int:
        """Consume queued items until a shutdown request has been flushed."""
        self._loop = asyncio.get_running_loop()
        while True:
            item = await self.queue.get()
            if isinstance(item, LineReceived):
                self.handle_line(item.text, item.observed_at)
            elif isinstance(item, Tick):
                self.handle_tick(item.now)
            elif isinstance(item, ShutdownRequested):
                self.logger.info("Received %s, writing interrupt snapshot", item.signal_name)
                self.flush(interrupted=True)
                return EXIT_FAILURE

    async def _tick_loop(self, follower: LogFollower) -> None:
        while True:
            await asyncio.sleep(self.config.rollover_check_seconds)
            # Backup for missed filesystem events; lines are queued ahead of the tick.
            follower.poll()
            self.post(Tick(now=self.clock()))

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except NotImplementedError:
                signal.signal(sig, lambda signum, _frame: self.request_shutdown(signal.Signals(signum).name))

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)

    async def run(self, follower: LogFollower | None = None) -> int:
        loop = asyncio.get_running_loop()
        self._loop = loop

        if not self.config.output_dir.is_dir():
            self.logger.warning("Output directory %s does not exist, snapshots will fail", self.config.output_dir)

        follower = follower or LogFollower(self.config.log_path, self.post_line, clock=self.clock)
        try:
            follower.start()
        except SourceUnavailableError as exc:
            self.logger.error("%s", exc)
            return EXIT_FAILURE

        self._install_signal_handlers(loop)
        ticker = asyncio.create_task(self._tick_loop(follower))
        try:
            return await self.process()
        finally:
            ticker.cancel()
            follower.stop()
            self._remove_signal_handlers(loop)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


@app.command()
def run(
    minecraft_log_path: Path | None = typer.Option(
        None,
        "--minecraft-log-path",
        "--minecraftLogPath",
        help="Minecraft log file to follow (overrides MINECRAFT_LOG_PATH).",
    ),
    output_log_path: Path | None = typer.Option(
        None,
        "--output-log-path",
        "--outputLogPath",
        help="Existing folder the daily snapshots are written to (overrides PLAYTIME_OUTPUT_DIR).",
    ),
) -> None:
    """Follow the server log and write a playtime snapshot per day."""
    config = load_config().with_overrides(log_path=minecraft_log_path, output_dir=output_log_path)
    configure_logging(config.log_level)

    service = PlaytimeService(config)
    exit_code = asyncio.run(service.run())
    raise typer.Exit(code=exit_code)


@app.command()
def summary(
    snapshot_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Snapshot JSON file."),
) -> None:
    """Print the players and durations stored in a snapshot file."""
    typer.echo(build_summary_content(load_snapshot(snapshot_path)))


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(f"playtime-logger: {__version__}")


def main() -> None:
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
