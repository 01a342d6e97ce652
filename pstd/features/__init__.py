from .security import RateLimiter
from .idgen import IdGenerator
from .store import PasteStore, PasteStoreError, PasteNotFound, PasteExists

__all__ = ["RateLimiter", "IdGenerator", "PasteStore", "PasteStoreError", "PasteNotFound", "PasteExists"]
