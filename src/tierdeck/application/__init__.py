# Application Package
from .persistence import DebouncedSaver, DeckCodec
from .registry import DeckRegistry
from .scheduler import Scheduler
from .service import StudyService

__all__ = ["DebouncedSaver", "DeckCodec", "DeckRegistry", "Scheduler", "StudyService"]
