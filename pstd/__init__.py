from .core import (
    ServerConfig, RequestFramer, FramerState, PasteDispatcher, PasteServer, build_response
)
from .features import RateLimiter, IdGenerator, PasteStore

__version__ = '0.1.0'

__all__ = [
    # Core components
    'ServerConfig',
    'RequestFramer',
    'FramerState',
    'PasteDispatcher',
    'PasteServer',
    'build_response',

    # Features
    'RateLimiter',
    'IdGenerator',
    'PasteStore',
]
