"""
Deck persistence: JSON codec and debounced saving.

The codec turns a Deck into a JSON document and merges a stored document back
over a default Deck, keeping whatever parts of it are valid. The saver
coalesces bursts of save requests for the same key into a single store write.
"""

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import asdict
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator

from tierdeck.domain.constants import DEBOUNCE_SECONDS, DECK_KEY_PREFIX, STATE_VERSION
from tierdeck.domain.models import Card, Deck, DeckConfig, DeckMeta, Queue, Tier
from tierdeck.domain.ports import KeyValueStore

logger = logging.getLogger(__name__)


def deck_key(deck_id: str) -> str:
    return f"{DECK_KEY_PREFIX}{deck_id}"


# ---------------------------------------------------------------------------
# Serialized schema
# ---------------------------------------------------------------------------


class CardRecord(BaseModel):
    id: str = Field(min_length=1)
    tier: Tier
    label: str = ""
    cooldown: int = Field(default=0, ge=0)
    last_seen_at: int = Field(default=0, ge=0)

    @field_validator("tier", mode="before")
    @classmethod
    def parse_tier(cls, v: Any) -> Tier:
        return Tier.parse(v)

    @field_serializer("tier")
    def dump_tier(self, tier: Tier) -> str:
        return tier.name


class ConfigRecord(BaseModel):
    correct_multiplier: float = Field(gt=1, allow_inf_nan=False)
    incorrect_multiplier: float = Field(gt=0, lt=1, allow_inf_nan=False)
    min_cooldown: int = Field(ge=0)
    review_weight: float = Field(gt=0, le=1, allow_inf_nan=False)
    jitter: int = Field(ge=0)


class MetaRecord(BaseModel):
    name: str = ""
    description: str = ""
    source: str = ""
    favorite: bool = False
    created_at: str = ""


class DeckRecord(BaseModel):
    version: int = STATE_VERSION
    id: str
    counter: int = Field(ge=0)
    current_tier: Tier
    new_queue: list[CardRecord]
    cooldown_queue: list[CardRecord]
    review_queue: list[CardRecord]
    config: ConfigRecord
    meta: MetaRecord

    @field_serializer("current_tier")
    def dump_tier(self, tier: Tier) -> str:
        return tier.name


class CatalogueEntry(BaseModel):
    """One line of the deck listing, readable without loading the deck."""

    id: str
    name: str = ""
    description: str = ""
    source: str = ""
    favorite: bool = False
    created_at: str = ""


# Queue sections in precedence order: when a card id shows up in more than one
# section of a stored document, the first section listed here keeps it.
_SECTIONS = (
    ("review_queue", Queue.REVIEW),
    ("cooldown_queue", Queue.COOLDOWN),
    ("new_queue", Queue.NEW),
)


class DeckCodec:
    """Serializes decks and merges stored state over defaults."""

    def dump(self, deck: Deck) -> str:
        record = DeckRecord(
            id=deck.id,
            counter=deck.counter,
            current_tier=deck.current_tier,
            new_queue=[_card_record(c) for c in deck.new_queue],
            cooldown_queue=[_card_record(c) for c in deck.cooldown_queue],
            review_queue=[_card_record(c) for c in deck.review_queue],
            config=ConfigRecord(**asdict(deck.config)),
            meta=MetaRecord(**asdict(deck.meta)),
        )
        return record.model_dump_json()

    def load_into(self, deck: Deck, raw: str | None) -> Deck:
        """
        Merge a stored document over `deck` (normally a fresh default deck).

        Stored fields win when they are valid. Anything malformed is logged
        and skipped, so a document with one corrupted field still restores
        the rest. Never raises.
        """
        if raw is None:
            return deck

        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[{deck.id}] Stored state is not valid JSON, using defaults: {e}")
            return deck

        if not isinstance(data, dict):
            logger.warning(f"[{deck.id}] Stored state is not an object, using defaults")
            return deck

        stored_id = data.get("id")
        if stored_id is not None and stored_id != deck.id:
            logger.warning(f"[{deck.id}] Stored state carries id {stored_id!r}, ignoring it")

        deck.config = _merge_config(deck, data.get("config"))
        deck.meta = _merge_meta(deck, data.get("meta"))

        if "counter" in data:
            counter = data["counter"]
            if isinstance(counter, int) and not isinstance(counter, bool) and counter >= 0:
                deck.counter = counter
            else:
                logger.warning(f"[{deck.id}] Ignoring invalid counter {counter!r}")

        if "current_tier" in data:
            try:
                deck.current_tier = Tier.parse(data["current_tier"])
            except ValueError as e:
                logger.warning(f"[{deck.id}] {e}, keeping {deck.current_tier.name}")

        _merge_cards(deck, data)
        return deck

    def dump_catalogue(self, entries: dict[str, CatalogueEntry]) -> str:
        return json.dumps([entries[k].model_dump() for k in sorted(entries)])

    def load_catalogue(self, raw: str | None) -> dict[str, CatalogueEntry]:
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Deck catalogue is not valid JSON, starting empty: {e}")
            return {}
        if not isinstance(data, list):
            logger.warning("Deck catalogue is not a list, starting empty")
            return {}

        entries: dict[str, CatalogueEntry] = {}
        for item in data:
            try:
                entry = CatalogueEntry.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Dropping malformed catalogue entry {item!r}: {e}")
                continue
            entries[entry.id] = entry
        return entries


def _card_record(card: Card) -> CardRecord:
    return CardRecord(
        id=card.id,
        tier=card.tier,
        label=card.label,
        cooldown=card.cooldown,
        last_seen_at=card.last_seen_at,
    )


def _merge_config(deck: Deck, raw: Any) -> DeckConfig:
    merged = asdict(deck.config)
    if raw is None:
        return deck.config
    if not isinstance(raw, dict):
        logger.warning(f"[{deck.id}] Ignoring non-object config {raw!r}")
        return deck.config

    for name in list(merged):
        if name not in raw:
            continue
        try:
            record = ConfigRecord.model_validate({**merged, name: raw[name]})
        except ValidationError:
            logger.warning(
                f"[{deck.id}] Ignoring invalid config {name}={raw[name]!r}, "
                f"keeping {merged[name]!r}"
            )
            continue
        merged[name] = getattr(record, name)
    return DeckConfig(**merged)


def _merge_meta(deck: Deck, raw: Any) -> DeckMeta:
    merged = asdict(deck.meta)
    if raw is None:
        return deck.meta
    if not isinstance(raw, dict):
        logger.warning(f"[{deck.id}] Ignoring non-object meta {raw!r}")
        return deck.meta

    for name in list(merged):
        if name not in raw:
            continue
        try:
            record = MetaRecord.model_validate({**merged, name: raw[name]})
        except ValidationError:
            logger.warning(f"[{deck.id}] Ignoring invalid meta {name}={raw[name]!r}")
            continue
        merged[name] = getattr(record, name)
    return DeckMeta(**merged)


def _merge_cards(deck: Deck, data: dict) -> None:
    restored = 0
    for section, queue in _SECTIONS:
        items = data.get(section)
        if items is None:
            continue
        if not isinstance(items, list):
            logger.warning(f"[{deck.id}] Ignoring non-list {section}")
            continue

        for item in items:
            try:
                record = CardRecord.model_validate(item)
            except ValidationError as e:
                logger.warning(f"[{deck.id}] Dropping malformed card in {section}: {e}")
                continue
            if record.id in deck:
                logger.warning(f"[{deck.id}] Card {record.id} stored twice, keeping first copy")
                continue
            deck.place(
                Card(
                    id=record.id,
                    tier=record.tier,
                    label=record.label,
                    cooldown=record.cooldown,
                    last_seen_at=record.last_seen_at,
                ),
                queue,
            )
            restored += 1

    logger.debug(f"[{deck.id}] Restored {restored} cards")


# ---------------------------------------------------------------------------
# Debounced saving
# ---------------------------------------------------------------------------


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def thread_timer(delay: float, fn: Callable[[], None]) -> Timer:
    t = threading.Timer(delay, fn)
    t.daemon = True
    return t


class DebouncedSaver:
    """
    Coalesces save requests per key.

    The first `schedule(key, payload)` starts a timer; later requests for the
    same key only replace the payload. When the timer fires the latest payload
    is written, so a burst of mutations produces a single write. Store errors
    are logged and swallowed here: the next scheduled save retries with the
    newest state.
    """

    def __init__(
        self,
        store: KeyValueStore,
        delay: float = DEBOUNCE_SECONDS,
        timer_factory: TimerFactory | None = None,
    ):
        self.store = store
        self.delay = delay
        self._timer_factory = timer_factory or thread_timer
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending: dict[str, tuple[int, str]] = {}
        self._timers: dict[str, Timer] = {}
        self._generation: dict[str, int] = {}
        self._written: dict[str, int] = {}

    def schedule(self, key: str, payload: str) -> None:
        with self._lock:
            gen = self._generation.get(key, 0) + 1
            self._generation[key] = gen
            self._pending[key] = (gen, payload)
            if key in self._timers:
                return
            timer = self._timer_factory(self.delay, lambda: self._fire(key))
            self._timers[key] = timer
        timer.start()

    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def _fire(self, key: str) -> None:
        with self._lock:
            self._timers.pop(key, None)
            item = self._pending.pop(key, None)
        if item is not None:
            self._write(key, *item)

    def _write(self, key: str, gen: int, payload: str) -> bool:
        with self._write_lock:
            if gen <= self._written.get(key, 0):
                logger.debug(f"Skipping stale save for {key}")
                return True
            try:
                self.store.put(key, payload)
            except Exception as e:
                logger.error(f"Failed to save {key}: {e}")
                return False
            self._written[key] = gen
        logger.debug(f"Saved {key} ({len(payload)} bytes)")
        return True

    def flush(self, key: str | None = None) -> int:
        """
        Write pending payloads immediately.

        Returns:
            Number of successful writes.
        """
        with self._lock:
            keys = [key] if key is not None else list(self._pending)
            items = []
            for k in keys:
                timer = self._timers.pop(k, None)
                if timer is not None:
                    timer.cancel()
                item = self._pending.pop(k, None)
                if item is not None:
                    items.append((k, item))

        return sum(1 for k, (gen, payload) in items if self._write(k, gen, payload))

    def cancel(self, key: str) -> None:
        """Drop the pending payload for key, and any write still in flight."""
        with self._lock:
            timer = self._timers.pop(key, None)
            if timer is not None:
                timer.cancel()
            self._pending.pop(key, None)
            gen = self._generation.get(key, 0) + 1
            self._generation[key] = gen
        with self._write_lock:
            self._written[key] = gen

    def discard(self, key: str) -> None:
        """Cancel pending saves for key and delete its stored value."""
        self.cancel(key)
        with self._write_lock:
            self.store.delete(key)

    def close(self) -> int:
        return self.flush()
