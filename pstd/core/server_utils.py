"""
Utility functions for paste server configuration and operation.

This module provides core functionality for:
- Event loop setup and optimization with uvloop
- Server kwargs generation for different platforms
- Structured (JSON) logging setup
- Log-safe rendering of client supplied text

The utilities in this module are shared by the connection multiplexer,
the dispatcher and the command line entry point.
"""

import sys
import socket
import asyncio
import logging
from typing import Dict, Any, Optional

from pythonjsonlogger.json import JsonFormatter

LOGGER_NAME = "pstd"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

logger = logging.getLogger(f"{LOGGER_NAME}.utils")


class ServerConfigError(Exception):
    """Raised for fatal startup misconfiguration"""

    pass


def configure_logging(level=logging.INFO, log_file=None):
    """Configure logging for the paste server.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path to a log file, opened for appending

    Returns:
        Configured root logger of the ``pstd`` hierarchy

    Raises:
        ServerConfigError: If the log file cannot be opened for appending

    Calling this more than once replaces the previously installed handlers.
    """
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            raise ServerConfigError(f"Cannot write to logfile '{log_file}': {e}")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


def loggable(text) -> str:
    """Render client supplied text for a single log line.

    CR and LF are replaced with ``$`` so a client cannot start a forged
    record by embedding line breaks in a request.
    """
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")
    return text.replace("\r", "$").replace("\n", "$")


def setup_uvloop() -> bool:
    """Configure uvloop for improved event loop performance.

    Returns:
        True if the uvloop policy was installed

    Raises:
        ServerConfigError: If uvloop setup fails

    Notes:
        uvloop does not support Windows; the default asyncio loop is used
        there and this function returns False.
    """
    if sys.platform == "win32":
        return False

    import uvloop

    try:
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except Exception as e:
        logger.error("Failed to setup uvloop: %s", e)
        raise ServerConfigError("Failed to initialize event loop")
    logger.debug("Using uvloop event loop")
    return True


def get_server_kwargs(backlog: int = 64) -> Dict[str, Any]:
    """Get asyncio.start_server kwargs for the listening socket.

    Args:
        backlog: Listen queue length

    Returns:
        Dict of keyword arguments for ``asyncio.start_server``

    SO_REUSEPORT is not requested; one process owns the paste directory
    and the ID floor.
    """
    kwargs: Dict[str, Any] = {
        "reuse_address": True,
        "backlog": backlog,
        "start_serving": True,
    }
    return kwargs


def peer_identity(writer: asyncio.StreamWriter) -> Optional[tuple]:
    """Return ``(host, port)`` of the remote end, or None if unknown."""
    peername = writer.get_extra_info("peername")
    if not peername:
        return None
    return peername[0], peername[1]


def configure_client_socket(sock: Optional[socket.socket]) -> None:
    """Apply per-connection socket options.

    Responses are written once and the connection closed immediately, so
    Nagle's algorithm only adds latency.
    """
    if sock is None:
        return
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except OSError as e:
        logger.debug("Failed to set TCP_NODELAY: %s", e)
