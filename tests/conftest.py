import random

import pytest

from tierdeck.application.persistence import DebouncedSaver
from tierdeck.application.registry import DeckRegistry
from tierdeck.application.scheduler import Scheduler
from tierdeck.application.service import StudyService
from tierdeck.domain.models import Deck, DeckConfig
from tierdeck.infrastructure.adapters.memory_store import MemoryStore


class FakeTimer:
    """Stands in for threading.Timer; fires only when the test says so."""

    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn()


class FakeTimers:
    def __init__(self):
        self.created: list[FakeTimer] = []

    def __call__(self, delay, fn):
        timer = FakeTimer(delay, fn)
        self.created.append(timer)
        return timer

    def fire_all(self):
        for timer in list(self.created):
            timer.fire()


class FixedRandom:
    """Deterministic stand-in for random.Random."""

    def __init__(self, draw: float = 0.0, jitter: int = 0):
        self.draw = draw
        self.jitter = jitter

    def random(self):
        return self.draw

    def randint(self, a, b):
        return max(a, min(b, self.jitter))


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keeps tests away from the real ~/.config and TIERDECK_* variables."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in (
        "BACKEND",
        "DB_PATH",
        "DEBOUNCE_SECONDS",
        "SEED",
        "VERBOSE",
        "CORRECT_MULTIPLIER",
        "INCORRECT_MULTIPLIER",
        "MIN_COOLDOWN",
        "REVIEW_WEIGHT",
        "JITTER",
    ):
        monkeypatch.delenv(f"TIERDECK_{var}", raising=False)
    return home


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def saver(store, timers):
    return DebouncedSaver(store, delay=0.5, timer_factory=timers)


@pytest.fixture
def registry(store, saver):
    return DeckRegistry(store, saver=saver)


@pytest.fixture
def scheduler():
    return Scheduler(rng=random.Random(1234))


@pytest.fixture
def service(registry, scheduler):
    return StudyService(registry, scheduler)


@pytest.fixture
def deck():
    return Deck(id="birds", config=DeckConfig(jitter=0))


def _make_cards(*rows):
    """(("a", Tier.BEGINNER), ("b", 1, 5)) -> list of card descriptors."""
    cards = []
    for row in rows:
        card_id, tier, *rest = row
        d = {"id": card_id, "label": f"Taxon {card_id}", "tier": tier}
        if rest:
            d["cooldown"] = rest[0]
        cards.append(d)
    return cards


@pytest.fixture
def make_cards():
    return _make_cards


@pytest.fixture
def fixed_random():
    return FixedRandom
