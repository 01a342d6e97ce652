"""
Core server components
"""

from .config import ServerConfig
from .framer import RequestFramer, FramerState
from .dispatcher import PasteDispatcher
from .response import build_response
from .server_core import PasteServer

# Expose public interface
__all__ = ["ServerConfig", "RequestFramer", "FramerState", "PasteDispatcher", "build_response", "PasteServer"]
