"""
Study Service: application layer orchestrator.

Exposes the scheduler as operations on the registry's active deck. With no
active deck every operation is a no-op returning a neutral value.
"""

import logging
from collections.abc import Iterable

from tierdeck.domain.models import Card, Deck, DeckConfig, Queue

from .registry import DeckRegistry
from .scheduler import CardDescriptor, Scheduler
from .stats import DeckStats, deck_stats

logger = logging.getLogger(__name__)


class StudyService:
    """
    Application service driving study sessions.

    Wires the scheduler's change notifications to the registry's debounced
    save, so every mutation is persisted without blocking the caller.
    """

    def __init__(self, registry: DeckRegistry, scheduler: Scheduler | None = None):
        self.registry = registry
        self.scheduler = scheduler or Scheduler()
        self.scheduler.on_change = registry.schedule_save

    @property
    def deck(self) -> Deck | None:
        return self.registry.get_active()

    def activate(
        self,
        deck_id: str,
        display_name: str | None = None,
        config: DeckConfig | None = None,
    ) -> Deck:
        return self.registry.activate(deck_id, display_name=display_name, config=config)

    def remove(self, deck_id: str) -> bool:
        return self.registry.remove(deck_id)

    def admit(self, cards: Iterable[CardDescriptor]) -> list[Card]:
        deck = self.deck
        if deck is None:
            return []
        return self.scheduler.admit(deck, cards)

    def peek_next(self) -> Card | None:
        deck = self.deck
        if deck is None:
            return None
        return self.scheduler.peek_next(deck)

    def next_card(self) -> Card | None:
        """Next card to show, unlocking tiers when the current one is exhausted."""
        deck = self.deck
        if deck is None:
            return None
        return self.scheduler.next_card(deck)

    def answer(self, card_id: str, was_correct: bool) -> Card | None:
        """
        Report the outcome for a card currently on offer.

        Cards resting in the cooldown queue were already answered this turn
        (or earlier) and are refused, so a repeated submission does not
        advance the clock twice.
        """
        deck = self.deck
        if deck is None:
            return None

        card = deck.get(card_id)
        if card is None:
            logger.warning(f"[{deck.id}] Unknown card {card_id}")
            return None
        if card.queue is Queue.COOLDOWN:
            logger.warning(f"[{deck.id}] Card {card_id} is cooling down, answer ignored")
            return None

        return self.scheduler.answer(deck, card, was_correct)

    def can_advance(self) -> bool:
        deck = self.deck
        if deck is None:
            return False
        return self.scheduler.can_advance(deck)

    def advance(self) -> bool:
        deck = self.deck
        if deck is None:
            return False
        return self.scheduler.advance(deck)

    def stats(self) -> DeckStats | None:
        deck = self.deck
        if deck is None:
            return None
        return deck_stats(deck)

    def close(self) -> int:
        return self.registry.close()
