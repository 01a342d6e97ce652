"""
Incremental request framer for the paste protocol.

This module decides, from the bytes seen so far on one connection, whether
a complete request has arrived. It only frames, it does not parse HTTP:
- The first chunk is classified by prefix (GET or POST)
- GET requests are complete once the header terminator arrives
- POST requests need a numeric Content-Length and no transfer coding
- Every chunk is checked against a hard size limit

A framer instance holds the entire per-connection state, so it can be fed
from a socket, a test, or any other byte source.
"""

import re
import enum
import logging
from typing import List, Optional

logger = logging.getLogger("pstd.framer")

HEADER_TERMINATOR = b"\r\n\r\n"

# First-chunk classification
_POST_PREFIX = re.compile(rb"^POST /")
_GET_PREFIX = re.compile(rb"^GET /(?:[a-zA-Z0-9]+)? HTTP")

_DIGITS = re.compile(r"[0-9]+")

ALLOWED_TRANSFER_ENCODINGS = frozenset({"identity", "none"})

# Client facing rejection messages
MSG_NOT_UNDERSTOOD = "ERROR: Request not understood\n"
MSG_TOO_MUCH_DATA = "ERROR: Too much data\n"
MSG_NEED_CONTENT_LENGTH = "ERROR: Need Content-Length Header\n"
MSG_BAD_TRANSFER_ENCODING = "ERROR: Bad Transfer-Encoding (use Identity)\n"
MSG_MORE_THAN_ADVERTISED = "ERROR: More data than advertised. Nice try?\n"


class FramerState(enum.Enum):
    AWAITING_FIRST_BYTES = "awaiting-first-bytes"
    AWAITING_HEADER_END = "awaiting-header-end"
    AWAITING_CONTENT_LENGTH = "awaiting-content-length"
    AWAITING_BODY = "awaiting-body"
    COMPLETE = "complete"
    REJECTED = "rejected"

    @property
    def terminal(self) -> bool:
        return self in (FramerState.COMPLETE, FramerState.REJECTED)


class FramingError(Exception):
    """Raised internally when a request violates the framing rules.

    Attributes:
        message: Text sent back to the client
        reason: Short machine readable tag used for logs and metrics
    """

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.message = message
        self.reason = reason


def find_header_end(buffer: bytes) -> int:
    """Return the length of the header block including its terminator.

    Returns:
        Offset just past the first CRLFCRLF, or -1 if not present yet
    """
    index = buffer.find(HEADER_TERMINATOR)
    if index < 0:
        return -1
    return index + len(HEADER_TERMINATOR)


def header_values(header_block: bytes, name: str) -> List[str]:
    """Return the values of every header called ``name``, in order.

    Only the lines after the request line are scanned. Header names
    compare case-insensitively; values are stripped of surrounding
    whitespace.
    """
    wanted = name.lower().encode("ascii")
    values = []
    for line in header_block.split(b"\r\n")[1:]:
        field, sep, value = line.partition(b":")
        if not sep:
            continue
        if field.strip().lower() == wanted:
            values.append(value.strip().decode("latin-1"))
    return values


class RequestFramer:
    """Per-connection state machine that assembles one request.

    Feed it the chunks read from a connection; after every ``feed`` the
    ``state`` tells the caller whether to keep reading, dispatch
    (COMPLETE), or answer with ``error`` (REJECTED).

    Attributes:
        max_size: Largest accepted buffer, header included
        buffer: Bytes received so far
        expected_length: Total request size once known (POST only)
        state: Current FramerState
        error: Rejection message once REJECTED
        reason: Short tag describing the rejection
    """

    def __init__(self, max_size: int):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.buffer = bytearray()
        self.expected_length: Optional[int] = None
        self.state = FramerState.AWAITING_FIRST_BYTES
        self.error: Optional[str] = None
        self.reason: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.state is FramerState.COMPLETE

    @property
    def rejected(self) -> bool:
        return self.state is FramerState.REJECTED

    @property
    def method(self) -> Optional[str]:
        if self.state is FramerState.AWAITING_HEADER_END:
            return "GET"
        if self.state in (FramerState.AWAITING_CONTENT_LENGTH, FramerState.AWAITING_BODY):
            return "POST"
        if self.buffer.startswith(b"GET "):
            return "GET"
        if self.buffer.startswith(b"POST "):
            return "POST"
        return None

    def feed(self, data: bytes) -> FramerState:
        """Append a chunk and advance the state machine.

        Args:
            data: Bytes just read from the connection (must not be empty)

        Returns:
            The new state

        Raises:
            RuntimeError: If called after the framer reached a terminal state
        """
        if self.state.terminal:
            raise RuntimeError(f"Framer already {self.state.value}")

        try:
            self.buffer += data
            if self.state is FramerState.AWAITING_FIRST_BYTES:
                self._classify(data)

            if len(self.buffer) > self.max_size:
                raise FramingError(MSG_TOO_MUCH_DATA, "too-much-data")

            if self.state is FramerState.AWAITING_CONTENT_LENGTH:
                self._parse_header()

            if self.state is FramerState.AWAITING_HEADER_END:
                if HEADER_TERMINATOR in self.buffer:
                    self._transition(FramerState.COMPLETE)
            elif self.state is FramerState.AWAITING_BODY:
                self._check_body_length()
        except FramingError as e:
            self.error = e.message
            self.reason = e.reason
            self._transition(FramerState.REJECTED)

        return self.state

    def _classify(self, first_chunk: bytes) -> None:
        if _POST_PREFIX.match(first_chunk):
            self._transition(FramerState.AWAITING_CONTENT_LENGTH)
        elif _GET_PREFIX.match(first_chunk):
            self._transition(FramerState.AWAITING_HEADER_END)
        else:
            raise FramingError(MSG_NOT_UNDERSTOOD, "not-understood")

    def _parse_header(self) -> None:
        header_length = find_header_end(self.buffer)
        if header_length < 0:
            return

        header_block = bytes(self.buffer[:header_length])

        # Exactly one Content-Length header
        lengths = header_values(header_block, "Content-Length")
        if len(lengths) != 1 or not _DIGITS.fullmatch(lengths[0]):
            raise FramingError(MSG_NEED_CONTENT_LENGTH, "need-content-length")
        content_length = lengths[0]

        for transfer_encoding in header_values(header_block, "Transfer-Encoding"):
            if transfer_encoding.lower() not in ALLOWED_TRANSFER_ENCODINGS:
                raise FramingError(MSG_BAD_TRANSFER_ENCODING, "bad-transfer-encoding")

        self.expected_length = header_length + int(content_length)
        logger.debug("Expecting %d bytes in total", self.expected_length)
        self._transition(FramerState.AWAITING_BODY)

    def _check_body_length(self) -> None:
        if len(self.buffer) == self.expected_length:
            self._transition(FramerState.COMPLETE)
        elif len(self.buffer) > self.expected_length:
            raise FramingError(MSG_MORE_THAN_ADVERTISED, "more-than-advertised")

    def _transition(self, state: FramerState) -> None:
        logger.debug("Framer %s -> %s", self.state.value, state.value)
        self.state = state

    def request(self) -> bytes:
        """Return the complete request bytes.

        Raises:
            RuntimeError: If the request is not complete
        """
        if not self.complete:
            raise RuntimeError(f"Request not complete ({self.state.value})")
        return bytes(self.buffer)
