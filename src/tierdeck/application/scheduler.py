"""
Tiered card scheduler.

Decides turn by turn which card to show next, re-queues a card once it is
answered, and unlocks the next difficulty tier:

1. New cards of the current tier are introduced in admission order
2. Answered cards rest in the cooldown queue for `cooldown` turns
3. Rested cards move to the review queue, oldest first
4. New and review cards compete through a weighted random draw
"""

import logging
import math
import random
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

from tierdeck.domain.models import Card, Deck, DeckConfig, Queue, Tier, default_cooldown

logger = logging.getLogger(__name__)

CardDescriptor = Card | Mapping[str, Any]


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def card_from_descriptor(descriptor: CardDescriptor) -> Card:
    """
    Build a fresh Card from a Card or a mapping like {id, label, tier, cooldown}.

    Raises:
        ValueError: if the id is missing or the tier/cooldown cannot be parsed.
    """
    if isinstance(descriptor, Card):
        return replace(descriptor)

    if not isinstance(descriptor, Mapping):
        raise ValueError(f"Card descriptor must be a mapping, got {type(descriptor).__name__}")

    card_id = descriptor.get("id")
    if card_id is None or str(card_id) == "":
        raise ValueError(f"Card descriptor without id: {dict(descriptor)!r}")
    if "tier" not in descriptor:
        raise ValueError(f"Card descriptor without tier: {dict(descriptor)!r}")

    cooldown = descriptor.get("cooldown")
    try:
        cooldown = int(cooldown) if cooldown is not None else 0
    except (TypeError, ValueError):
        raise ValueError(f"Invalid cooldown for card {card_id}: {cooldown!r}") from None

    return Card(
        id=str(card_id),
        tier=Tier.parse(descriptor["tier"]),
        label=str(descriptor.get("label") or ""),
        cooldown=cooldown,
    )


class Scheduler:
    """
    Stateless scheduling policy applied to Deck objects.

    Every mutation notifies `on_change(deck)` so the caller can schedule a
    persist. Randomness (selection draw and cooldown jitter) comes from the
    injected `rng`, which makes runs reproducible under a fixed seed.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        on_change: Callable[[Deck], None] | None = None,
    ):
        self.rng = rng or random.Random()
        self.on_change = on_change

    def _changed(self, deck: Deck) -> None:
        if self.on_change is not None:
            self.on_change(deck)

    # ---------- Admission ----------

    def admit(self, deck: Deck, cards: Iterable[CardDescriptor]) -> list[Card]:
        """
        Append unseen cards to the new queue.

        Ids already present anywhere in the deck (or repeated within the
        batch) are ignored, so admitting the same list twice is a no-op.

        Returns:
            The cards actually added.

        Raises:
            ValueError: if any descriptor is malformed. Nothing is admitted then.
        """
        batch = [card_from_descriptor(d) for d in cards]

        admitted: list[Card] = []
        for card in batch:
            if card.id in deck:
                logger.debug(f"[{deck.id}] Skipping duplicate card {card.id}")
                continue

            if card.cooldown <= 0:
                card.cooldown = default_cooldown(card.tier, deck.config.min_cooldown)
            card.last_seen_at = 0
            deck.place(card, Queue.NEW)
            admitted.append(card)

        if admitted:
            logger.info(f"[{deck.id}] Admitted {len(admitted)} cards")
            self._changed(deck)
        return admitted

    # ---------- Selection ----------

    def drawable_new(self, deck: Deck) -> list[Card]:
        """New cards of the current tier, in admission order."""
        return [c for c in deck.new_queue if c.tier == deck.current_tier]

    def peek_next(self, deck: Deck) -> Card | None:
        """
        Pick the card to show next without touching any queue.

        Review cards are weighted by `review_weight` against new cards of
        the current tier. Within the review queue the card seen longest ago
        wins; within the new queue the earliest admitted wins.
        """
        fresh = self.drawable_new(deck)
        review = deck.review_queue

        if not fresh and not review:
            return None
        if not fresh:
            return _oldest(review)
        if not review:
            return fresh[0]

        w_new = len(fresh)
        w_review = len(review) * deck.config.review_weight
        x = self.rng.random() * (w_new + w_review)
        if x < w_review:
            return _oldest(review)
        return fresh[0]

    def next_card(self, deck: Deck) -> Card | None:
        """
        Like peek_next, but unlocks further tiers while nothing is drawable.

        Bounded by the number of tiers, so it terminates even when every
        tier is empty.
        """
        for _ in range(len(Tier)):
            card = self.peek_next(deck)
            if card is not None:
                return card
            if not self.advance(deck):
                return None
        return None

    # ---------- Answers ----------

    def next_cooldown(self, config: DeckConfig, card: Card, was_correct: bool) -> int:
        base = card.cooldown
        if base <= 0:
            base = default_cooldown(card.tier, config.min_cooldown)

        jitter = self.rng.randint(-config.jitter, config.jitter) if config.jitter else 0

        if was_correct:
            value = _round_half_up(base * config.correct_multiplier)
        else:
            value = max(config.min_cooldown, _round_half_up(base * config.incorrect_multiplier))
        return max(0, value + jitter)

    def answer(self, deck: Deck, card: Card | str, was_correct: bool) -> Card | None:
        """
        Record the outcome of one turn for a card.

        Advances the deck clock, releases rested cards to the review queue,
        recomputes the card's cooldown and moves it to the cooldown queue.
        Must be called exactly once per answered card.

        Returns:
            The updated card, or None if the card is not in this deck.
        """
        card_id = card if isinstance(card, str) else card.id
        stored = deck.get(card_id)
        if stored is None:
            logger.warning(f"[{deck.id}] Ignoring answer for unknown card {card_id}")
            return None

        deck.counter += 1
        self._release_ready(deck)

        stored.cooldown = self.next_cooldown(deck.config, stored, was_correct)
        stored.last_seen_at = deck.counter
        deck.place(stored, Queue.COOLDOWN)

        logger.debug(
            f"[{deck.id}] turn={deck.counter} card={stored.id} "
            f"correct={was_correct} cooldown={stored.cooldown}"
        )
        self._changed(deck)
        return stored

    # ---------- Review queue ----------

    def _release_ready(self, deck: Deck) -> list[Card]:
        ready = [
            c for c in deck.cooldown_queue if deck.counter - c.last_seen_at >= c.cooldown
        ]
        ready.sort(key=lambda c: c.last_seen_at)
        for c in ready:
            deck.place(c, Queue.REVIEW)
        return ready

    def refresh_review_queue(self, deck: Deck) -> list[Card]:
        """
        Move cards whose cooldown has elapsed to the end of the review queue.

        Returns:
            The released cards, oldest first. Empty if nothing was ready.
        """
        ready = self._release_ready(deck)
        if ready:
            self._changed(deck)
        return ready

    # ---------- Progression ----------

    def can_advance(self, deck: Deck) -> bool:
        if deck.current_tier.is_last:
            return False
        return not any(c.tier == deck.current_tier for c in deck.new_queue)

    def advance(self, deck: Deck) -> bool:
        """Unlock the next tier. Returns False (no-op) when the gate is closed."""
        next_tier = deck.current_tier.next
        if next_tier is None or not self.can_advance(deck):
            return False
        logger.info(f"[{deck.id}] Advancing {deck.current_tier.name} -> {next_tier.name}")
        deck.current_tier = next_tier
        self._changed(deck)
        return True


def _oldest(cards: list[Card]) -> Card:
    return min(cards, key=lambda c: (c.last_seen_at, c.position))
