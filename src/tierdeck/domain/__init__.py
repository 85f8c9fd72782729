# Domain Package
from .models import Card, Deck, DeckConfig, DeckMeta, Queue, Tier, default_cooldown
from .ports import KeyValueStore

__all__ = [
    "Card",
    "Deck",
    "DeckConfig",
    "DeckMeta",
    "KeyValueStore",
    "Queue",
    "Tier",
    "default_cooldown",
]
