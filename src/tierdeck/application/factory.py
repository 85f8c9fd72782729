"""
Service Factory
Centralizes the logic for wiring a store, registry and scheduler from config.
"""

import logging
import random

from ulid import ULID

from tierdeck.application.config import AppConfig
from tierdeck.application.persistence import DebouncedSaver
from tierdeck.application.registry import DeckRegistry
from tierdeck.application.scheduler import Scheduler
from tierdeck.application.service import StudyService
from tierdeck.domain.ports import KeyValueStore
from tierdeck.infrastructure.adapters.memory_store import MemoryStore
from tierdeck.infrastructure.adapters.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


def new_deck_id() -> str:
    """Generate a stable deck id using ULID."""
    return f"deck_{ULID()}"


def get_store(config: AppConfig) -> KeyValueStore:
    """Returns the KeyValueStore implementation selected by config.backend."""
    if config.backend == "memory":
        return MemoryStore()
    return SqliteStore(config.db_path)


def build_service(config: AppConfig, store: KeyValueStore | None = None) -> StudyService:
    store = store or get_store(config)
    registry = DeckRegistry(
        store,
        saver=DebouncedSaver(store, delay=config.debounce_seconds),
        default_config=config.deck_config(),
    )
    scheduler = Scheduler(rng=random.Random(config.seed))
    logger.debug(f"Built service backend={config.backend} seed={config.seed}")
    return StudyService(registry, scheduler)
