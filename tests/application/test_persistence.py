"""Tests for the deck codec and the debounced saver."""

import json
import logging
import threading
import time

import pytest

from tierdeck.application.persistence import (
    CatalogueEntry,
    DebouncedSaver,
    DeckCodec,
    deck_key,
)
from tierdeck.application.scheduler import Scheduler
from tierdeck.domain.models import Card, Deck, DeckConfig, Queue, Tier
from tierdeck.infrastructure.adapters.memory_store import MemoryStore


@pytest.fixture
def codec():
    return DeckCodec()


def _populated_deck(make_cards) -> Deck:
    deck = Deck(id="birds", config=DeckConfig(review_weight=0.5, jitter=0))
    deck.meta.name = "Birds of the Cerrado"
    scheduler = Scheduler()
    scheduler.admit(deck, make_cards(("a", 0), ("b", 0), ("c", 1), ("d", 2)))
    scheduler.answer(deck, "a", True)
    deck.place(Card(id="r", tier=Tier.BEGINNER, cooldown=2, last_seen_at=1), Queue.REVIEW)
    return deck


def _rows(cards):
    return [(c.id, c.tier, c.label, c.cooldown, c.last_seen_at) for c in cards]


class TestCodec:
    def test_round_trip(self, codec, make_cards):
        deck = _populated_deck(make_cards)

        restored = codec.load_into(Deck(id="birds"), codec.dump(deck))

        assert restored.counter == deck.counter == 1
        assert restored.current_tier is Tier.BEGINNER
        assert restored.config == deck.config
        assert restored.meta == deck.meta
        for queue in Queue:
            assert _rows(restored.queue(queue)) == _rows(deck.queue(queue))

    def test_dump_uses_tier_names(self, codec, make_cards):
        data = json.loads(codec.dump(_populated_deck(make_cards)))
        assert data["current_tier"] == "BEGINNER"
        assert [c["tier"] for c in data["new_queue"]] == ["BEGINNER", "INTERMEDIATE", "ADVANCED"]
        assert data["version"] == 1

    def test_missing_state_keeps_defaults(self, codec):
        deck = Deck(id="x")
        assert codec.load_into(deck, None) is deck
        assert len(deck) == 0

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"', ""])
    def test_garbage_keeps_defaults(self, codec, raw, caplog):
        with caplog.at_level(logging.WARNING):
            deck = codec.load_into(Deck(id="x"), raw)
        assert deck.counter == 0
        assert deck.config == DeckConfig()
        assert "using defaults" in caplog.text

    def test_partial_state_merges_over_defaults(self, codec):
        defaults = DeckConfig(min_cooldown=5)
        raw = json.dumps({"counter": 12, "config": {"review_weight": 0.9}})

        deck = codec.load_into(Deck(id="x", config=defaults), raw)

        assert deck.counter == 12
        assert deck.config.review_weight == 0.9
        assert deck.config.min_cooldown == 5
        assert deck.current_tier is Tier.BEGINNER

    def test_corrupted_fields_fall_back_individually(self, codec, caplog):
        raw = json.dumps(
            {
                "counter": -4,
                "current_tier": "mythic",
                "config": {"correct_multiplier": 0.2, "incorrect_multiplier": 0.25},
                "meta": {"name": "Frogs", "favorite": "very"},
            }
        )
        with caplog.at_level(logging.WARNING):
            deck = codec.load_into(Deck(id="x"), raw)

        assert deck.counter == 0
        assert deck.current_tier is Tier.BEGINNER
        assert deck.config.correct_multiplier == 2.0
        assert deck.config.incorrect_multiplier == 0.25
        assert deck.meta.name == "Frogs"
        assert deck.meta.favorite is False
        assert "correct_multiplier" in caplog.text

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_multiplier_falls_back(self, codec, value, caplog):
        raw = json.dumps(
            {
                "config": {"correct_multiplier": value, "jitter": 0},
                "new_queue": [{"id": "a", "tier": 0, "cooldown": 4}],
            }
        )
        with caplog.at_level(logging.WARNING):
            deck = codec.load_into(Deck(id="x"), raw)

        assert deck.config.correct_multiplier == 2.0
        assert "correct_multiplier" in caplog.text
        assert Scheduler().answer(deck, "a", True).cooldown == 8

    def test_malformed_cards_are_dropped(self, codec):
        raw = json.dumps(
            {
                "new_queue": [
                    {"id": "ok", "tier": "EXPERT"},
                    {"id": "bad-tier", "tier": "legendary"},
                    {"tier": 0},
                    {"id": "neg", "tier": 0, "cooldown": -3},
                    "garbage",
                ],
                "review_queue": "not-a-list",
            }
        )
        deck = codec.load_into(Deck(id="x"), raw)

        assert [c.id for c in deck.new_queue] == ["ok"]
        assert deck.get("ok").tier is Tier.EXPERT

    def test_duplicate_ids_keep_most_advanced_copy(self, codec):
        raw = json.dumps(
            {
                "new_queue": [{"id": "a", "tier": 0}, {"id": "b", "tier": 0}],
                "cooldown_queue": [{"id": "a", "tier": 0, "cooldown": 9, "last_seen_at": 3}],
                "review_queue": [{"id": "b", "tier": 0, "last_seen_at": 1}],
            }
        )
        deck = codec.load_into(Deck(id="x"), raw)

        assert len(deck) == 2
        assert deck.new_queue == []
        assert deck.get("a").queue is Queue.COOLDOWN
        assert deck.get("a").cooldown == 9
        assert deck.get("b").queue is Queue.REVIEW

    def test_catalogue_round_trip(self, codec):
        entries = {
            "b": CatalogueEntry(id="b", name="Birds", favorite=True),
            "a": CatalogueEntry(id="a", name="Amphibians"),
        }
        assert codec.load_catalogue(codec.dump_catalogue(entries)) == entries

    def test_catalogue_tolerates_garbage(self, codec):
        assert codec.load_catalogue(None) == {}
        assert codec.load_catalogue("{{") == {}
        assert codec.load_catalogue('{"a": 1}') == {}
        assert list(codec.load_catalogue('[{"id": "ok"}, {"name": "no id"}, 3]')) == ["ok"]


def test_deck_key():
    assert deck_key("birds") == "deck:birds"


class FlakyStore(MemoryStore):
    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.puts: list[tuple[str, str]] = []

    def put(self, key, value):
        if self.failures:
            self.failures -= 1
            raise OSError("disk full")
        self.puts.append((key, value))
        super().put(key, value)


class TestDebouncedSaver:
    def test_burst_coalesces_into_one_write(self, timers):
        store = FlakyStore()
        saver = DebouncedSaver(store, delay=0.5, timer_factory=timers)

        for i in range(10):
            saver.schedule("deck:a", f"v{i}")

        assert len(timers.created) == 1
        assert timers.created[0].started
        assert timers.created[0].delay == 0.5
        assert store.puts == []

        timers.fire_all()

        assert store.puts == [("deck:a", "v9")]
        assert saver.pending() == []

    def test_keys_are_independent(self, timers):
        store = FlakyStore()
        saver = DebouncedSaver(store, timer_factory=timers)
        saver.schedule("deck:a", "1")
        saver.schedule("deck:b", "2")

        assert len(timers.created) == 2
        assert saver.pending() == ["deck:a", "deck:b"]

    def test_new_timer_after_fire(self, saver, timers, store):
        saver.schedule("k", "one")
        timers.created[0].fire()
        saver.schedule("k", "two")

        assert len(timers.created) == 2
        timers.created[1].fire()
        assert store.get("k") == "two"

    def test_flush_writes_now_and_cancels_timer(self, saver, timers, store):
        saver.schedule("k", "payload")

        assert saver.flush() == 1
        assert store.get("k") == "payload"
        assert timers.created[0].cancelled
        assert saver.flush() == 0

    def test_flush_single_key(self, saver, store):
        saver.schedule("a", "1")
        saver.schedule("b", "2")

        saver.flush("a")

        assert store.get("a") == "1"
        assert store.get("b") is None
        assert saver.pending() == ["b"]

    def test_cancel_drops_payload(self, saver, timers, store):
        saver.schedule("k", "payload")
        saver.cancel("k")
        timers.fire_all()

        assert store.get("k") is None
        assert saver.pending() == []

    def test_discard_deletes_stored_value(self, saver, store):
        store.put("k", "old")
        saver.schedule("k", "newer")

        saver.discard("k")
        saver.flush()

        assert store.get("k") is None

    def test_failure_is_logged_and_next_save_retries(self, timers, caplog):
        store = FlakyStore(failures=1)
        saver = DebouncedSaver(store, timer_factory=timers)

        saver.schedule("k", "first")
        with caplog.at_level(logging.ERROR):
            timers.created[0].fire()
        assert "Failed to save k" in caplog.text
        assert store.get("k") is None

        saver.schedule("k", "second")
        timers.created[1].fire()
        assert store.get("k") == "second"

    def test_stale_write_is_skipped(self, saver, store):
        saver.schedule("k", "old")
        saver.flush()
        # A write carrying an older generation must not overwrite newer data.
        saver._write("k", 0, "ancient")
        assert store.get("k") == "old"

    def test_real_timer_thread(self):
        written = threading.Event()

        class SignallingStore(FlakyStore):
            def put(self, key, value):
                super().put(key, value)
                written.set()

        store = SignallingStore()
        saver = DebouncedSaver(store, delay=0.05)
        for i in range(5):
            saver.schedule("k", str(i))

        assert written.wait(timeout=5)
        time.sleep(0.1)
        assert store.puts == [("k", "4")]
