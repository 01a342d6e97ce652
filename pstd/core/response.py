"""
Response envelope for the paste protocol.

Every answer, including errors, goes out as a ``200 OK`` plain text
response; the body tells the client what happened.
"""

from typing import Union

STATUS_LINE = b"HTTP/1.1 200 OK\r\n"
CONTENT_TYPE = b"text/plain; charset=UTF-8"


def build_response(body: Union[str, bytes]) -> bytes:
    """Wrap ``body`` in the fixed response envelope.

    Args:
        body: Response text; str is encoded as UTF-8

    Returns:
        Complete response bytes with a Content-Length matching the body
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    return (
        STATUS_LINE
        + b"Content-Type: " + CONTENT_TYPE + b"\r\n"
        + b"Content-Length: " + str(len(body)).encode() + b"\r\n"
        + b"Connection: close\r\n"
        + b"\r\n"
        + body
    )
