"""Centralized constants for tierdeck.

All magic numbers and scheduling defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Deck defaults ----------
DEFAULT_CORRECT_MULTIPLIER = 2.0
DEFAULT_INCORRECT_MULTIPLIER = 0.5
DEFAULT_MIN_COOLDOWN = 3
DEFAULT_REVIEW_WEIGHT = 0.3
DEFAULT_JITTER = 1

# ---------- Tier cooldown offsets ----------
# Added to min_cooldown to get a tier's starting cooldown (index = tier value).
TIER_COOLDOWN_OFFSETS = (4, 3, 2, 1)

# ---------- Persistence ----------
DEBOUNCE_SECONDS = 0.5
DECK_KEY_PREFIX = "deck:"
CATALOGUE_KEY = "decks:index"
STATE_VERSION = 1
