from typing import Callable, List

import pytest

from charsheet.normalize.normalizer import normalize
from charsheet.notify import NotificationBroker
from charsheet.store import SheetStore


class _Handle:
    def __init__(self, when_ms: int, callback: Callable[[], None]):
        self.when_ms = when_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Scheduler whose time only moves when a test calls advance_to()."""

    def __init__(self):
        self.now_ms = 0
        self.pending: List[_Handle] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(self.now_ms + round(delay_s * 1000), callback)
        self.pending.append(handle)
        return handle

    def advance_to(self, t_ms: int) -> None:
        self.now_ms = t_ms
        due = sorted(
            (h for h in self.pending if not h.cancelled and h.when_ms <= t_ms),
            key=lambda h: h.when_ms,
        )
        for h in due:
            self.pending.remove(h)
            h.callback()

    @property
    def scheduled(self) -> List[_Handle]:
        return [h for h in self.pending if not h.cancelled]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def broker(clock):
    return NotificationBroker(scheduler=clock)


@pytest.fixture
def store(tmp_path, broker):
    return SheetStore(
        tmp_path / "charsheet.sqlite",
        broker=broker,
        sheet_key="currentSheet",
        raw_text_key="rawSheetText",
    )


@pytest.fixture
def sample_sheet():
    return normalize(
        {
            "info": {
                "name": "Aria Moonwhisper",
                "class": "Wizard",
                "level": 5,
                "hitPoints": {"current": 27, "maximum": 32},
            },
            "abilities": {"intelligence": {"score": 18, "modifier": 4}},
            "spellcasting": {
                "spellcastingClass": "Wizard",
                "slots": [{"level": 1, "current": 3, "maximum": 4}],
                "spells": [{"name": "Magic Missile", "level": 1, "school": "Evocation"}],
            },
            "inventory": {
                "items": [{"name": "Rope", "quantity": 2}],
                "currency": {"gold": 50},
            },
        }
    )
