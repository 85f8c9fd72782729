"""
Domain models for tiered decks.

These are pure data structures with no I/O or external dependencies.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum

from .constants import (
    DEFAULT_CORRECT_MULTIPLIER,
    DEFAULT_INCORRECT_MULTIPLIER,
    DEFAULT_JITTER,
    DEFAULT_MIN_COOLDOWN,
    DEFAULT_REVIEW_WEIGHT,
    TIER_COOLDOWN_OFFSETS,
)


class Tier(IntEnum):
    """Ordered difficulty level gating which new cards are introduced."""

    BEGINNER = 0
    INTERMEDIATE = 1
    ADVANCED = 2
    EXPERT = 3

    @classmethod
    def parse(cls, value: "Tier | int | str") -> "Tier":
        """
        Accepts a Tier, its integer value, or its name (any case, '-' or '_').

        Raises:
            ValueError: if the value does not name a tier.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid tier: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise ValueError(f"Invalid tier: {value!r}") from None
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            if key.isdigit():
                return cls.parse(int(key))
            try:
                return cls[key]
            except KeyError:
                raise ValueError(f"Invalid tier: {value!r}") from None
        raise ValueError(f"Invalid tier: {value!r}")

    @property
    def next(self) -> "Tier | None":
        if self.value + 1 < len(Tier):
            return Tier(self.value + 1)
        return None

    @property
    def is_last(self) -> bool:
        return self.next is None


class Queue(str, Enum):
    """The three queues a card can live in."""

    NEW = "new"
    COOLDOWN = "cooldown"
    REVIEW = "review"


def default_cooldown(tier: Tier, min_cooldown: int) -> int:
    """Starting cooldown for a tier: easier tiers rest longer."""
    return min_cooldown + TIER_COOLDOWN_OFFSETS[tier.value]


@dataclass
class Card:
    """
    The schedulable unit.

    Attributes:
        id: Stable identifier, unique within a deck.
        tier: Difficulty tier.
        label: Display key (taxon name or similar). Never interpreted.
        cooldown: Turns that must elapse before the card can be re-studied.
        last_seen_at: Deck counter value at the last answer (0 = never seen).
        queue: The single queue currently holding the card.
        position: Order key inside that queue. Assigned by the deck.
    """

    id: str
    tier: Tier
    label: str = ""
    cooldown: int = 0
    last_seen_at: int = 0
    queue: Queue = Queue.NEW
    position: int = 0


@dataclass(frozen=True)
class DeckConfig:
    """
    Tunable scheduling parameters.

    Attributes:
        correct_multiplier: Cooldown growth on a correct answer (> 1).
        incorrect_multiplier: Cooldown shrink on a wrong answer (0 < x < 1).
        min_cooldown: Floor applied after a wrong answer.
        review_weight: Dampens review cards against new cards (0 < w <= 1).
        jitter: Magnitude of the signed random offset added to cooldowns.
    """

    correct_multiplier: float = DEFAULT_CORRECT_MULTIPLIER
    incorrect_multiplier: float = DEFAULT_INCORRECT_MULTIPLIER
    min_cooldown: int = DEFAULT_MIN_COOLDOWN
    review_weight: float = DEFAULT_REVIEW_WEIGHT
    jitter: int = DEFAULT_JITTER

    def __post_init__(self):
        for name in ("correct_multiplier", "incorrect_multiplier", "review_weight"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite, got {getattr(self, name)}")
        if not self.correct_multiplier > 1:
            raise ValueError(f"correct_multiplier must be > 1, got {self.correct_multiplier}")
        if not 0 < self.incorrect_multiplier < 1:
            raise ValueError(
                f"incorrect_multiplier must be in (0, 1), got {self.incorrect_multiplier}"
            )
        if self.min_cooldown < 0:
            raise ValueError(f"min_cooldown must be >= 0, got {self.min_cooldown}")
        if not 0 < self.review_weight <= 1:
            raise ValueError(f"review_weight must be in (0, 1], got {self.review_weight}")
        if self.jitter < 0:
            raise ValueError(f"jitter must be >= 0, got {self.jitter}")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DeckMeta:
    """Descriptive data shown in deck listings."""

    name: str = ""
    description: str = ""
    source: str = ""
    favorite: bool = False
    created_at: str = field(default_factory=_utcnow)


@dataclass
class Deck:
    """
    Queues, configuration and progression state for one collection of cards.

    Cards are owned by a single id-indexed store; each card carries the tag
    of the queue it is in, so a card can never sit in two queues at once.
    Queue views are ordered by the position assigned when the card entered
    the queue.
    """

    id: str
    config: DeckConfig = field(default_factory=DeckConfig)
    meta: DeckMeta = field(default_factory=DeckMeta)
    counter: int = 0
    current_tier: Tier = Tier.BEGINNER
    _cards: dict[str, Card] = field(default_factory=dict, init=False, repr=False)
    _next_position: int = field(default=0, init=False, repr=False)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def __len__(self) -> int:
        return len(self._cards)

    def get(self, card_id: str) -> Card | None:
        return self._cards.get(card_id)

    def cards(self) -> list[Card]:
        return list(self._cards.values())

    def queue(self, queue: Queue) -> list[Card]:
        cards = [c for c in self._cards.values() if c.queue is queue]
        cards.sort(key=lambda c: c.position)
        return cards

    @property
    def new_queue(self) -> list[Card]:
        return self.queue(Queue.NEW)

    @property
    def cooldown_queue(self) -> list[Card]:
        return self.queue(Queue.COOLDOWN)

    @property
    def review_queue(self) -> list[Card]:
        return self.queue(Queue.REVIEW)

    def place(self, card: Card, queue: Queue) -> Card:
        """
        Put a card at the end of a queue.

        Inserts the card if its id is unknown, otherwise replaces the stored
        card and re-tags it, which removes it from whatever queue held it.
        """
        card.queue = queue
        card.position = self._next_position
        self._next_position += 1
        self._cards[card.id] = card
        return card

    def discard(self, card_id: str) -> Card | None:
        return self._cards.pop(card_id, None)
