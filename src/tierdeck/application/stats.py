"""
Read-only deck statistics.

This is a pure computation module with no I/O.
"""

from dataclasses import asdict, dataclass

from tierdeck.domain.models import Deck, Queue, Tier


@dataclass
class QueueCounts:
    new: int = 0
    review: int = 0
    cooldown: int = 0

    @property
    def total(self) -> int:
        return self.new + self.review + self.cooldown


@dataclass
class TierStats:
    """Queue counts restricted to the tier currently being introduced."""

    tier: Tier
    counts: QueueCounts


@dataclass
class DeckStats:
    total_cards: int
    counts: QueueCounts
    counter: int
    current_tier: Tier
    next_tier: Tier | None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["counts"]["total"] = self.counts.total
        d["current_tier"] = self.current_tier.name
        d["next_tier"] = self.next_tier.name if self.next_tier is not None else None
        return d


def _count(deck: Deck, tier: Tier | None = None) -> QueueCounts:
    counts = QueueCounts()
    for card in deck.cards():
        if tier is not None and card.tier != tier:
            continue
        if card.queue is Queue.NEW:
            counts.new += 1
        elif card.queue is Queue.REVIEW:
            counts.review += 1
        else:
            counts.cooldown += 1
    return counts


def current_tier_stats(deck: Deck) -> TierStats:
    return TierStats(tier=deck.current_tier, counts=_count(deck, deck.current_tier))


def deck_stats(deck: Deck) -> DeckStats:
    counts = _count(deck)
    return DeckStats(
        total_cards=counts.total,
        counts=counts,
        counter=deck.counter,
        current_tier=deck.current_tier,
        next_tier=next_tier(deck),
    )


def cards_by_tier(deck: Deck) -> dict[Tier, QueueCounts]:
    """Distribution of queue counts for every tier, including empty ones."""
    return {tier: _count(deck, tier) for tier in Tier}


def next_tier(deck: Deck) -> Tier | None:
    return deck.current_tier.next


def has_current_tier_reviews(deck: Deck) -> bool:
    return any(c.tier == deck.current_tier for c in deck.review_queue)
