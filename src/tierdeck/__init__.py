"""tierdeck: adaptive tiered flashcard scheduler."""

from tierdeck.consts import VERSION

__version__ = VERSION
