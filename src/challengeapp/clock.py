from datetime import date
from typing import Optional


class Clock:
    """Supplies "today" as a local calendar date."""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """Clock pinned to one date, for tests and replays."""

    def __init__(self, today: date):
        self._today = today

    def today(self) -> date:
        return self._today

    def set(self, today: date) -> None:
        self._today = today


def resolve_clock(clock: Optional[Clock]) -> Clock:
    return clock if clock is not None else Clock()
