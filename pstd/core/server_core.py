"""
Core paste server implementation providing the connection multiplexer.

This module implements the asyncio based server with features including:
- One event loop (uvloop where available) serving every client
- Per-connection framing of partial reads into complete requests
- Synchronous dispatch so store checks and writes never interleave
- Structured access logs, Prometheus metrics and state snapshots
- Graceful shutdown handling
"""

import asyncio
import re
import signal
import sys
import time
import logging
from typing import Dict, List, Optional, Tuple

from pstd.core.config import ServerConfig
from pstd.core.dispatcher import PasteDispatcher
from pstd.core.framer import FramerState, RequestFramer
from pstd.core.response import build_response
from pstd.core.server_utils import (
    ServerConfigError, configure_client_socket, get_server_kwargs, loggable, peer_identity, setup_uvloop
)
from pstd.features import metrics
from pstd.features.security import RateLimiter
from pstd.features.store import PasteStore, PasteStoreError

logger = logging.getLogger("pstd.server")

CLIENT_SCRIPT_ID = "0"
MSG_YOU_WHAT = "ERROR: You what?\n"
MSG_INTERNAL = "ERROR: Internal error\n"

_SITE_LINE = re.compile(rb"^site=.*$", re.MULTILINE)


def _access_log_payload(client: str, method: Optional[str], outcome: str, paste_id: Optional[str],
                        length: int, duration: float):
    payload = {
        "client": client,
        "method": method,
        "outcome": outcome,
        "paste_id": paste_id,
        "length": length,
        "duration_s": round(duration, 6),
    }
    return payload


class Connection:
    """State of one client connection.

    Attributes:
        key: ``(host, port)`` of the peer
        framer: Request framer holding the buffered bytes
        writer: Stream used for the response
        started: Monotonic time the connection was accepted
    """

    def __init__(self, key: Tuple[str, int], framer: RequestFramer, writer: asyncio.StreamWriter):
        self.key = key
        self.framer = framer
        self.writer = writer
        self.started = time.monotonic()
        self.responded = False

    @property
    def host(self) -> str:
        return self.key[0]

    def describe(self) -> Dict[str, object]:
        return {
            "client": f"{self.key[0]}:{self.key[1]}",
            "state": self.framer.state.value,
            "buffered": len(self.framer.buffer),
            "expected": self.framer.expected_length,
            "age_s": round(time.monotonic() - self.started, 3),
        }


class PasteServer:
    """Asynchronous paste server.

    Attributes:
        config: Validated server configuration
        store: Paste storage
        rate_limiter: Submission rate limiter
        dispatcher: Request dispatcher
    """

    def __init__(self, config: ServerConfig, store: Optional[PasteStore] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 dispatcher: Optional[PasteDispatcher] = None):
        self.config = config
        self.public_host = config.resolve_public_host()
        self.store = store or PasteStore(config.paste_dir)
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_samples, config.rate_window)
        self.dispatcher = dispatcher or PasteDispatcher(
            self.store, self.rate_limiter, self.public_host, config.manual_path
        )
        self._connections: Dict[Tuple[str, int], Connection] = {}
        self._server: Optional[asyncio.AbstractServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def port(self) -> Optional[int]:
        """Port actually bound (useful when configured with port 0)."""
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def publish_client_script(self) -> None:
        """Store the client script as paste ``0`` pointing at this server.

        Raises:
            ServerConfigError: If the script cannot be read or stored
        """
        if self.config.client_script is None:
            return
        try:
            script = self.config.client_script.read_bytes()
            site = b"site='" + self.public_host.encode("utf-8") + b"'"
            script = _SITE_LINE.sub(lambda _: site, script)
            self.store.replace(CLIENT_SCRIPT_ID, script)
        except OSError as e:
            raise ServerConfigError(f"Failed to generate paste {CLIENT_SCRIPT_ID} (the client script): {e}")

    async def start(self) -> None:
        """Bind the listening socket and begin accepting connections.

        Raises:
            ServerConfigError: If the paste directory is unusable or the
                socket cannot be bound
        """
        try:
            self.store.validate()
        except PasteStoreError as e:
            raise ServerConfigError(str(e))
        self.publish_client_script()

        if not self.config.rate_limited:
            logger.warning("NOT doing rate-limiting! (rate samples or window is 0)")

        self._shutdown_event = asyncio.Event()
        try:
            self._server = await asyncio.start_server(
                self.handle_client,
                self.config.host,
                self.config.port,
                **get_server_kwargs(self.config.backlog)
            )
        except OSError as e:
            raise ServerConfigError(f"Could not create socket: {e}")

        logger.info("Listening on %s:%s; accessible as http://%s/",
                    self.config.host, self.port, self.public_host)

    async def serve(self) -> None:
        """Run until shutdown is requested."""
        await self.start()
        self.install_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.close()

    def run(self) -> None:
        """Blocking entry point: set up the event loop and serve."""
        setup_uvloop()
        asyncio.run(self.serve())

    def install_signal_handlers(self) -> None:
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.shutdown)
        loop.add_signal_handler(signal.SIGUSR1, self.dump_state)
        if hasattr(signal, "SIGINFO"):
            loop.add_signal_handler(signal.SIGINFO, self.dump_state)

    def shutdown(self) -> None:
        """Ask ``serve`` to stop."""
        logger.info("Initiating shutdown...")
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def close(self) -> None:
        """Stop listening and drop every open connection."""
        if self._server is None:
            return
        self._server.close()
        # Connections awaiting more data would otherwise keep wait_closed() blocked
        for connection in list(self._connections.values()):
            connection.writer.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Server shutdown complete")

    def dump_state(self) -> None:
        """Log one structured snapshot of the server state."""
        snapshot = {
            "config": self.config.as_dict(),
            "public_host": self.public_host,
            "id_floor": self.dispatcher.id_generator.floor,
            "connections": [c.describe() for c in self._connections.values()],
            "rate_records": self.rate_limiter.snapshot(),
        }
        logger.info("State dump", extra={"snapshot": snapshot})

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Serve one connection from accept to close.

        Reads up to ``chunk_size`` bytes per readiness event and feeds them
        to the connection's framer. The connection is answered and closed
        as soon as the framer completes or rejects the request.
        """
        configure_client_socket(writer.get_extra_info("socket"))
        key = peer_identity(writer) or ("unknown", id(writer))
        connection = Connection(key, RequestFramer(self.config.max_paste_size), writer)
        self._connections[key] = connection
        metrics.CONNECTIONS_TOTAL.inc()
        metrics.CONNECTIONS_ACTIVE.inc()
        logger.debug("%s: Connected", connection.host)

        try:
            await self._serve_connection(connection, reader)
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.info("%s: Connection lost: %s", connection.host, e)
        except Exception:
            logger.exception("%s: Unexpected error handling connection", connection.host)
            if not connection.responded:
                try:
                    await self._respond(connection, MSG_INTERNAL.encode())
                except OSError as e:
                    logger.debug("%s: Failed to send error response: %s", connection.host, e)
        finally:
            self._connections.pop(key, None)
            metrics.CONNECTIONS_ACTIVE.dec()
            try:
                writer.close()
                await writer.wait_closed()
            except Exception:
                logger.debug("Error closing writer", exc_info=True)
            logger.debug("%s: Dropped", connection.host)

    async def _serve_connection(self, connection: Connection, reader: asyncio.StreamReader) -> None:
        framer = connection.framer
        while True:
            try:
                data = await asyncio.wait_for(reader.read(self.config.chunk_size), self.config.idle_timeout)
            except asyncio.TimeoutError:
                logger.warning("%s: Idle for %ss, dropping", connection.host, self.config.idle_timeout)
                metrics.REJECTIONS_TOTAL.labels(reason="idle-timeout").inc()
                self._access_log(connection, "idle-timeout", None, len(framer.buffer))
                return

            if not data:
                logger.warning("%s: Empty read", connection.host)
                metrics.REJECTIONS_TOTAL.labels(reason="empty-read").inc()
                await self._respond(connection, MSG_YOU_WHAT.encode())
                self._access_log(connection, "empty-read", None, len(framer.buffer))
                return

            state = framer.feed(data)

            if state is FramerState.REJECTED:
                logger.warning("%s: %s", connection.host, framer.error.strip())
                logger.debug("%s: Rejected buffer '%s'", connection.host, loggable(bytes(framer.buffer[:256])))
                metrics.REJECTIONS_TOTAL.labels(reason=framer.reason).inc()
                await self._respond(connection, framer.error.encode())
                self._access_log(connection, framer.reason, None, len(framer.buffer))
                return

            if state is FramerState.COMPLETE:
                result = self.dispatcher.dispatch(framer.request(), connection.host)
                await self._respond(connection, result.body)
                self._access_log(connection, result.outcome, result.paste_id, len(framer.buffer))
                return

    async def _respond(self, connection: Connection, body: bytes) -> None:
        connection.responded = True
        connection.writer.write(build_response(body))
        await connection.writer.drain()

    def _access_log(self, connection: Connection, outcome: str, paste_id: Optional[str], length: int) -> None:
        duration = time.monotonic() - connection.started
        metrics.REQUEST_LATENCY.observe(duration)
        payload = _access_log_payload(connection.host, connection.framer.method, outcome, paste_id, length, duration)
        logger.info("request", extra=payload)
