"""
Static configuration for the paste server.

A single ``ServerConfig`` instance is built at startup (usually from the
command line) and validated eagerly; nothing in it changes while the
server runs.
"""

import os
import re
import socket
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pstd.core.server_utils import ServerConfigError

logger = logging.getLogger("pstd.config")

DATA_DIR = Path(__file__).parent.parent / "data"
DEFAULT_MANUAL = DATA_DIR / "pstd.1"
DEFAULT_CLIENT_SCRIPT = DATA_DIR / "pstd.sh"

DEFAULT_MAX_PASTE_SIZE = 256 * 1024

_LISTEN = re.compile(r"^(?:(.+):)?([0-9]+)$")


def parse_listen(value: str) -> Tuple[str, int]:
    """Parse ``PORT`` or ``ADDR:PORT``.

    A bare port listens on all interfaces.

    Raises:
        ServerConfigError: If the value has neither form
    """
    match = _LISTEN.match(value)
    if not match:
        raise ServerConfigError('Bad listen argument (should be "PORT" or "ADDR:PORT")')
    addr, port = match.groups()
    return addr or "0.0.0.0", int(port)


@dataclass
class ServerConfig:
    """Paste server settings.

    Attributes:
        host: Address to bind to
        port: Port to listen on
        paste_dir: Directory holding one file per paste
        manual_path: Document served for ``GET /``
        client_script: Shell client published as paste ``0`` (None skips it)
        public_host: Host used in generated URLs, hostname if None
        max_paste_size: Largest accepted request in bytes, header included
        rate_samples: Attempts remembered per client (0 disables limiting)
        rate_window: Seconds those attempts must span (0 disables limiting)
        log_file: Optional file receiving a copy of all log records
        verbose: Log at DEBUG level
        chunk_size: Bytes read per readiness event
        idle_timeout: Seconds a connection may stay silent (None: forever)
        metrics_port: Port for the Prometheus endpoint (None: disabled)
        backlog: Listen queue length
    """
    host: str = "127.0.0.1"
    port: int = 8080
    paste_dir: Path = Path("pastes")
    manual_path: Path = DEFAULT_MANUAL
    client_script: Optional[Path] = DEFAULT_CLIENT_SCRIPT
    public_host: Optional[str] = None
    max_paste_size: int = DEFAULT_MAX_PASTE_SIZE
    rate_samples: int = 5
    rate_window: int = 30
    log_file: Optional[Path] = None
    verbose: bool = False
    chunk_size: int = 1024
    idle_timeout: Optional[float] = None
    metrics_port: Optional[int] = None
    backlog: int = 64

    def __post_init__(self):
        self.paste_dir = Path(self.paste_dir)
        self.manual_path = Path(self.manual_path)
        if self.client_script is not None:
            self.client_script = Path(self.client_script)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)

    @property
    def rate_limited(self) -> bool:
        return bool(self.rate_samples and self.rate_window)

    def validate(self) -> None:
        """Check the configuration before the server starts.

        Raises:
            ServerConfigError: On the first invalid setting
        """
        if not os.access(self.manual_path, os.R_OK):
            raise ServerConfigError(f"Could not read man page '{self.manual_path}'")
        if self.client_script is not None and not os.access(self.client_script, os.R_OK):
            raise ServerConfigError(f"Could not read client script '{self.client_script}'")
        if not self.paste_dir.is_dir():
            raise ServerConfigError(f"Could not access paste directory '{self.paste_dir}'")
        if not 0 <= self.port <= 65535:
            raise ServerConfigError(f"Invalid port {self.port}")
        if self.max_paste_size < 1:
            raise ServerConfigError(f"Invalid maximum paste size '{self.max_paste_size}'")
        if self.rate_samples < 0:
            raise ServerConfigError(f"Invalid number of rate limiting samples '{self.rate_samples}'")
        if self.rate_window < 0:
            raise ServerConfigError(f"Invalid timespan for rate-limiting '{self.rate_window}'")
        if self.chunk_size < 1:
            raise ServerConfigError(f"Invalid read chunk size '{self.chunk_size}'")
        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ServerConfigError(f"Invalid idle timeout '{self.idle_timeout}'")
        if self.metrics_port is not None and not 0 < self.metrics_port <= 65535:
            raise ServerConfigError(f"Invalid metrics port '{self.metrics_port}'")
        if self.backlog < 1:
            raise ServerConfigError("Backlog must be at least 1")

    def resolve_public_host(self) -> str:
        """Fill in ``public_host`` from the machine's hostname if unset.

        Raises:
            ServerConfigError: If no hostname can be determined
        """
        if not self.public_host:
            hostname = socket.gethostname()
            if not hostname:
                raise ServerConfigError("Failed to figure out hostname, use -H <FQDN>")
            self.public_host = hostname
            logger.warning("Determined our hostname to be '%s' (override with -H)", hostname)
        return self.public_host

    def as_dict(self) -> Dict[str, Any]:
        return {key: str(value) if isinstance(value, Path) else value
                for key, value in asdict(self).items()}
