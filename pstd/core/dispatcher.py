"""
Request dispatcher for complete paste protocol requests.

This module provides the application side of the server:
- POST: rate limiting, ID generation and storing the paste
- GET /<id>: reading a paste back
- GET /: serving the manual with the public host filled in
- Error handling so that every request yields a response body
"""

import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from pstd.core.framer import HEADER_TERMINATOR, MSG_NOT_UNDERSTOOD
from pstd.core.server_utils import loggable
from pstd.features import metrics
from pstd.features.idgen import IdGenerator
from pstd.features.security import RateLimiter
from pstd.features.store import PasteExists, PasteNotFound, PasteStore

logger = logging.getLogger("pstd.dispatch")

HOST_PLACEHOLDER = b"MYHOST"

_POST = re.compile(rb"^POST /")
_GET_PASTE = re.compile(rb"^GET /([a-zA-Z0-9]+)\b")
_GET_ROOT = re.compile(rb"^GET / ")

MSG_NO_SUCH_PASTE = "No such paste."
MSG_EMPTY_PASTE = "ERROR: Empty paste\n"
MSG_FILE_ERROR = "ERROR: File error\n"
MSG_NO_IDS = "ERROR: Out of paste IDs\n"
MSG_NO_MANPAGE = "ERROR: Manpage not found\n"
MSG_INTERNAL = "ERROR: Internal error\n"
MSG_SLOW_DOWN = "ERROR: Slow down, cowboy.  {wait} seconds until you may paste again!\n"


@dataclass
class DispatchResult:
    """Outcome of dispatching one request.

    Attributes:
        body: Response body
        outcome: Short tag for logs and metrics
        paste_id: ID read or written, if any
    """
    body: bytes
    outcome: str
    paste_id: Optional[str] = None


class PasteDispatcher:
    """Maps complete requests to paste store operations.

    Args:
        store: Paste storage
        rate_limiter: Limiter consulted for every non-empty submission
        public_host: Host (optionally with port) used in generated URLs
        manual_path: File served for ``GET /``
        id_generator: Optional generator, built on ``store.exists`` if omitted
    """

    def __init__(self, store: PasteStore, rate_limiter: RateLimiter, public_host: str,
                 manual_path: Union[str, Path], id_generator: Optional[IdGenerator] = None):
        self.store = store
        self.rate_limiter = rate_limiter
        self.public_host = public_host
        self.manual_path = Path(manual_path)
        self.id_generator = id_generator or IdGenerator(store.exists)

    def dispatch(self, request: bytes, client: str) -> DispatchResult:
        """Produce the response body for a complete request.

        Args:
            request: Complete request bytes as assembled by the framer
            client: Client host, used for rate limiting and logs

        Never raises; unexpected failures produce an error body.
        """
        try:
            result = self._route(request, client)
        except Exception:
            logger.exception("%s: Error dispatching request", client)
            result = DispatchResult(MSG_INTERNAL.encode(), "internal-error")
        metrics.REQUESTS_TOTAL.labels(outcome=result.outcome).inc()
        return result

    def _route(self, request: bytes, client: str) -> DispatchResult:
        if _POST.match(request):
            return self.process_post(request, client)

        match = _GET_PASTE.match(request)
        if match:
            return self.process_get(match.group(1).decode("ascii"), client)

        if _GET_ROOT.match(request):
            logger.info("%s: Manpage", client)
            return DispatchResult(self.manual(), "manual")

        first_line = request.split(b"\r\n", 1)[0]
        logger.warning("%s: Request not understood: '%s'", client, loggable(first_line))
        return DispatchResult(MSG_NOT_UNDERSTOOD.encode(), "not-understood")

    def process_get(self, paste_id: str, client: str) -> DispatchResult:
        """Return the paste called ``paste_id``."""
        try:
            content = self.store.read(paste_id)
        except PasteNotFound:
            logger.warning("%s: Requested nonexistent paste %s", client, paste_id)
            return DispatchResult(MSG_NO_SUCH_PASTE.encode(), "not-found", paste_id)
        except OSError as e:
            logger.error("%s: Failed to read paste %s: %s", client, paste_id, e)
            return DispatchResult(MSG_FILE_ERROR.encode(), "file-error", paste_id)

        logger.info("%s: Got %s", client, paste_id)
        return DispatchResult(content, "get", paste_id)

    def process_post(self, request: bytes, client: str) -> DispatchResult:
        """Store the body of a POST request as a new paste.

        Only the POST request line and the header terminator matter here;
        the framer has already checked Content-Length and the body size.
        """
        _, _, paste = request.partition(HEADER_TERMINATOR)
        if not paste:
            logger.warning("%s: Empty paste", client)
            return DispatchResult(MSG_EMPTY_PASTE.encode(), "empty")

        wait = self.rate_limiter.check(client)
        if wait:
            logger.warning("%s: Rate limited (%ds)", client, wait)
            metrics.RATE_LIMITED.inc()
            return DispatchResult(MSG_SLOW_DOWN.format(wait=wait).encode(), "rate-limited")

        # No await between generate() and write(): the existence check and
        # the exclusive create cannot interleave with another connection.
        paste_id = self.id_generator.generate()
        if paste_id is None:
            logger.error("%s: No paste ID available", client)
            return DispatchResult(MSG_NO_IDS.encode(), "no-ids")

        try:
            self.store.write(paste_id, paste)
        except (PasteExists, OSError) as e:
            logger.error("%s: Failed to write paste %s: %s", client, paste_id, e)
            return DispatchResult(MSG_FILE_ERROR.encode(), "file-error", paste_id)

        metrics.PASTES_CREATED.inc()
        metrics.PASTE_BYTES.inc(len(paste))
        logger.info("%s: Pasted %s (%d bytes)", client, paste_id, len(paste))
        return DispatchResult(self.paste_url(paste_id).encode(), "created", paste_id)

    def paste_url(self, paste_id: str) -> str:
        return f"http://{self.public_host}/{paste_id}\n"

    def manual(self) -> bytes:
        """Read the manual and substitute the public host.

        The file is read on every request so it can be edited while the
        server runs.
        """
        try:
            text = self.manual_path.read_bytes()
        except OSError as e:
            logger.error("Failed to open %s: %s", self.manual_path, e)
            return MSG_NO_MANPAGE.encode()
        return text.replace(HOST_PLACEHOLDER, self.public_host.encode("utf-8"))
