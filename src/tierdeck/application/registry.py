"""Registry of in-memory decks and the currently active one."""

import logging
import threading

from tierdeck.domain.constants import CATALOGUE_KEY
from tierdeck.domain.models import Deck, DeckConfig
from tierdeck.domain.ports import KeyValueStore

from .persistence import CatalogueEntry, DebouncedSaver, DeckCodec, deck_key

logger = logging.getLogger(__name__)


class DeckRegistry:
    """
    Keyed collection of decks, analogous to a session manager.

    Owned by the caller and passed around explicitly. The lock only guards
    map insertion and removal; mutating a deck is the business of whoever
    holds it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        saver: DebouncedSaver | None = None,
        codec: DeckCodec | None = None,
        default_config: DeckConfig | None = None,
    ):
        self.store = store
        self.saver = saver or DebouncedSaver(store)
        self.codec = codec or DeckCodec()
        self.default_config = default_config or DeckConfig()
        self._decks: dict[str, Deck] = {}
        self._active_id: str | None = None
        self._lock = threading.Lock()
        self._catalogue = self.codec.load_catalogue(self._read(CATALOGUE_KEY))

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def _read(self, key: str) -> str | None:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.error(f"Failed to read {key}: {e}")
            return None

    def activate(
        self,
        deck_id: str,
        display_name: str | None = None,
        config: DeckConfig | None = None,
    ) -> Deck:
        """
        Make deck_id the active deck, creating or rehydrating it if needed.

        A new deck starts from `config` (or the registry default) and stored
        state is merged over it, stored fields winning.
        """
        raw = None
        with self._lock:
            deck = self._decks.get(deck_id)
            loaded = deck is None
            if deck is None:
                deck = Deck(id=deck_id, config=config or self.default_config)
                raw = self._read(deck_key(deck_id))
                self.codec.load_into(deck, raw)
                self._decks[deck_id] = deck
                logger.info(
                    f"[{deck_id}] {'Rehydrated' if raw is not None else 'Created'} deck "
                    f"({len(deck)} cards, tier {deck.current_tier.name})"
                )
            self._active_id = deck_id

        if display_name:
            self.describe(deck_id, name=display_name)
        elif loaded:
            self._record(deck)
            # Rehydrated decks are left as stored until something changes.
            if raw is None:
                self.schedule_save(deck)
        return deck

    def describe(
        self,
        deck_id: str,
        name: str | None = None,
        description: str | None = None,
        source: str | None = None,
        favorite: bool | None = None,
    ) -> bool:
        """Update a loaded deck's descriptive fields. False if it is not loaded."""
        deck = self._decks.get(deck_id)
        if deck is None:
            return False
        if name is not None:
            deck.meta.name = name
        if description is not None:
            deck.meta.description = description
        if source is not None:
            deck.meta.source = source
        if favorite is not None:
            deck.meta.favorite = favorite
        self._record(deck)
        self.schedule_save(deck)
        return True

    def get(self, deck_id: str) -> Deck | None:
        return self._decks.get(deck_id)

    def get_active(self) -> Deck | None:
        if self._active_id is None:
            return None
        return self._decks.get(self._active_id)

    def deck_ids(self) -> list[str]:
        with self._lock:
            return list(self._decks)

    def catalogue(self) -> list[CatalogueEntry]:
        """Every known deck, including ones not loaded in this process."""
        with self._lock:
            entries = list(self._catalogue.values())
        entries.sort(key=lambda e: (not e.favorite, e.name.lower(), e.id))
        return entries

    def remove(self, deck_id: str) -> bool:
        """
        Drop a deck from memory and delete its durable record.

        Returns:
            False if the deck was unknown.
        """
        with self._lock:
            deck = self._decks.pop(deck_id, None)
            entry = self._catalogue.pop(deck_id, None)
            if self._active_id == deck_id:
                self._active_id = None

        try:
            self.saver.discard(deck_key(deck_id))
        except Exception as e:
            logger.error(f"[{deck_id}] Failed to delete stored deck: {e}")

        existed = deck is not None or entry is not None
        if existed:
            logger.info(f"[{deck_id}] Removed deck")
            self._save_catalogue()
        return existed

    def schedule_save(self, deck: Deck) -> None:
        if deck.id not in self._decks:
            logger.debug(f"[{deck.id}] Not saving, deck is not registered")
            return
        self.saver.schedule(deck_key(deck.id), self.codec.dump(deck))

    def _record(self, deck: Deck) -> None:
        entry = CatalogueEntry(
            id=deck.id,
            name=deck.meta.name,
            description=deck.meta.description,
            source=deck.meta.source,
            favorite=deck.meta.favorite,
            created_at=deck.meta.created_at,
        )
        with self._lock:
            if self._catalogue.get(deck.id) == entry:
                return
            self._catalogue[deck.id] = entry
        self._save_catalogue()

    def _save_catalogue(self) -> None:
        with self._lock:
            payload = self.codec.dump_catalogue(self._catalogue)
        self.saver.schedule(CATALOGUE_KEY, payload)

    def close(self) -> int:
        """Flush every pending save. Returns the number of writes."""
        return self.saver.close()
