from __future__ import annotations

import re

from .models import LineEvent

LEFT_PATTERN = re.compile("left the game")
JOINED_PATTERN = re.compile("joined the game")

# "[13:13:26] [Server thread/INFO]: Ralea2 joined the game" -> name sits 4 tokens from the end.
NAME_OFFSET_FROM_END = 4


def get_player_name(line: str) -> str:
    words = line.split()
    if len(words) <= NAME_OFFSET_FROM_END:
        return ""
    return words[-NAME_OFFSET_FROM_END]


def classify(line: str) -> tuple[LineEvent, ...]:
    """Return the leave/join events reported by a log line.

    Both checks run independently, so a line containing both phrases yields a
    leave followed by a join. Unrelated lines yield an empty tuple.
    """
    events: list[LineEvent] = []
    if LEFT_PATTERN.search(line):
        events.append(LineEvent(kind="leave", player_name=get_player_name(line)))
    if JOINED_PATTERN.search(line):
        events.append(LineEvent(kind="join", player_name=get_player_name(line)))
    return tuple(events)
