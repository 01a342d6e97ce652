#!/usr/bin/env python3
"""
Test suite for the incremental request framer
"""
import unittest

from pstd.core.framer import (
    FramerState,
    RequestFramer,
    header_values,
    find_header_end,
    MSG_BAD_TRANSFER_ENCODING,
    MSG_MORE_THAN_ADVERTISED,
    MSG_NEED_CONTENT_LENGTH,
    MSG_NOT_UNDERSTOOD,
    MSG_TOO_MUCH_DATA,
)


def feed_all(framer, chunks):
    state = framer.state
    for chunk in chunks:
        state = framer.feed(chunk)
        if state.terminal:
            break
    return state


class TestFirstChunkClassification(unittest.TestCase):
    def setUp(self):
        self.framer = RequestFramer(max_size=1024)

    def test_post_awaits_content_length(self):
        """A POST prefix waits for the header"""
        self.assertEqual(self.framer.feed(b"POST / HTTP/1.0\r\n"), FramerState.AWAITING_CONTENT_LENGTH)
        self.assertIsNone(self.framer.expected_length)
        self.assertEqual(self.framer.method, "POST")

    def test_get_awaits_header_end(self):
        """A GET for a paste waits for the blank line"""
        self.assertEqual(self.framer.feed(b"GET /Ab3 HTTP/1.1\r\n"), FramerState.AWAITING_HEADER_END)
        self.assertEqual(self.framer.method, "GET")

    def test_get_root(self):
        """GET / is accepted"""
        self.assertEqual(self.framer.feed(b"GET / HTTP/1.0\r\n"), FramerState.AWAITING_HEADER_END)

    def test_unknown_method_rejected(self):
        """Anything but GET or POST is not understood"""
        for request in (b"PUT / HTTP/1.0\r\n\r\n", b"HEAD / HTTP/1.0\r\n\r\n", b"\x16\x03\x01\x02\x00"):
            with self.subTest(request=request):
                framer = RequestFramer(max_size=1024)
                self.assertEqual(framer.feed(request), FramerState.REJECTED)
                self.assertEqual(framer.error, MSG_NOT_UNDERSTOOD)

    def test_get_with_bad_token_rejected(self):
        """GET paths must be an alphanumeric token or empty"""
        for request in (b"GET /abc.txt HTTP/1.0\r\n", b"GET /abc?x=1 HTTP/1.0\r\n",
                        b"GET /../etc/passwd HTTP/1.0\r\n", b"GET /abc\r\n"):
            with self.subTest(request=request):
                framer = RequestFramer(max_size=1024)
                self.assertEqual(framer.feed(request), FramerState.REJECTED)
                self.assertEqual(framer.error, MSG_NOT_UNDERSTOOD)

    def test_classification_uses_first_chunk_only(self):
        """A first chunk too short to classify is rejected"""
        self.assertEqual(self.framer.feed(b"PO"), FramerState.REJECTED)
        self.assertEqual(self.framer.reason, "not-understood")

    def test_unclassified_chunk_kept_in_buffer(self):
        """A rejected first chunk is still available for logging"""
        self.assertEqual(self.framer.feed(b"BREW /pot HTCPCP/1.0\r\n"), FramerState.REJECTED)
        self.assertEqual(bytes(self.framer.buffer), b"BREW /pot HTCPCP/1.0\r\n")
        self.assertIsNone(self.framer.method)


class TestGetFraming(unittest.TestCase):
    def test_complete_in_one_chunk(self):
        framer = RequestFramer(max_size=1024)
        self.assertEqual(framer.feed(b"GET /Xy HTTP/1.0\r\n\r\n"), FramerState.COMPLETE)
        self.assertEqual(framer.request(), b"GET /Xy HTTP/1.0\r\n\r\n")

    def test_terminator_split_across_chunks(self):
        """The blank line may straddle two reads"""
        framer = RequestFramer(max_size=1024)
        self.assertEqual(framer.feed(b"GET / HTTP/1.0\r\nHost: x\r\n"), FramerState.AWAITING_HEADER_END)
        self.assertEqual(framer.feed(b"\r\n"), FramerState.COMPLETE)

    def test_trailing_bytes_ignored(self):
        """Bytes after the header terminator do not affect a GET"""
        framer = RequestFramer(max_size=1024)
        self.assertEqual(framer.feed(b"GET /Xy HTTP/1.0\r\n\r\nleftover"), FramerState.COMPLETE)


class TestPostFraming(unittest.TestCase):
    REQUEST = b"POST / HTTP/1.0\r\nContent-Length: 5\r\n\r\nHELLO"

    def test_two_chunks_match_single_chunk(self):
        """Chunked delivery frames exactly like one read"""
        split = RequestFramer(max_size=1024)
        self.assertEqual(split.feed(b"POST / HTTP/1.0\r\n"), FramerState.AWAITING_CONTENT_LENGTH)
        self.assertEqual(split.feed(b"Content-Length: 5\r\n\r\nHELLO"), FramerState.COMPLETE)

        whole = RequestFramer(max_size=1024)
        self.assertEqual(whole.feed(self.REQUEST), FramerState.COMPLETE)

        self.assertEqual(split.request(), whole.request())
        self.assertTrue(split.request().endswith(b"\r\n\r\nHELLO"))

    def test_byte_at_a_time(self):
        framer = RequestFramer(max_size=1024)
        chunks = [self.REQUEST[:6]] + [self.REQUEST[i:i + 1] for i in range(6, len(self.REQUEST))]
        self.assertEqual(feed_all(framer, chunks), FramerState.COMPLETE)
        self.assertEqual(framer.request(), self.REQUEST)

    def test_expected_length_known_after_header(self):
        framer = RequestFramer(max_size=1024)
        framer.feed(b"POST / HTTP/1.0\r\nContent-Length: 5\r\n\r\nHE")
        self.assertEqual(framer.state, FramerState.AWAITING_BODY)
        self.assertEqual(framer.expected_length, len(self.REQUEST))
        self.assertEqual(framer.feed(b"LLO"), FramerState.COMPLETE)

    def test_zero_length_body_completes_immediately(self):
        framer = RequestFramer(max_size=1024)
        self.assertEqual(framer.feed(b"POST / HTTP/1.0\r\nContent-Length: 0\r\n\r\n"), FramerState.COMPLETE)

    def test_missing_content_length_rejected_regardless_of_chunking(self):
        request = b"POST / HTTP/1.0\r\nUser-Agent: test\r\n\r\nbody"
        for size in (1, 3, 7, len(request)):
            with self.subTest(chunk_size=size):
                framer = RequestFramer(max_size=1024)
                chunks = [request[:6]] + [request[i:i + size] for i in range(6, len(request), size)]
                self.assertEqual(feed_all(framer, chunks), FramerState.REJECTED)
                self.assertEqual(framer.error, MSG_NEED_CONTENT_LENGTH)

    def test_non_numeric_content_length_rejected(self):
        for value in (b"abc", b"-5", b"", b"1e3", b"\xb2"):
            with self.subTest(value=value):
                framer = RequestFramer(max_size=1024)
                framer.feed(b"POST / HTTP/1.0\r\nContent-Length: " + value + b"\r\n\r\n")
                self.assertEqual(framer.state, FramerState.REJECTED)
                self.assertEqual(framer.error, MSG_NEED_CONTENT_LENGTH)

    def test_header_names_are_case_insensitive(self):
        framer = RequestFramer(max_size=1024)
        self.assertEqual(framer.feed(b"POST / HTTP/1.1\r\ncontent-length: 2\r\n\r\nhi"), FramerState.COMPLETE)

    def test_chunked_transfer_encoding_rejected(self):
        framer = RequestFramer(max_size=1024)
        framer.feed(b"POST / HTTP/1.1\r\nContent-Length: 3\r\nTransfer-Encoding: chunked\r\n\r\n")
        self.assertEqual(framer.state, FramerState.REJECTED)
        self.assertEqual(framer.error, MSG_BAD_TRANSFER_ENCODING)

    def test_identity_transfer_encoding_accepted(self):
        for value in (b"Identity", b"identity", b"None"):
            with self.subTest(value=value):
                framer = RequestFramer(max_size=1024)
                state = framer.feed(b"POST / HTTP/1.1\r\nTransfer-Encoding: " + value +
                                    b"\r\nContent-Length: 3\r\n\r\nabc")
                self.assertEqual(state, FramerState.COMPLETE)

    def test_repeated_transfer_encoding_checked_in_full(self):
        """A later chunked coding is not hidden by an earlier identity"""
        framer = RequestFramer(max_size=1024)
        framer.feed(b"POST / HTTP/1.1\r\nTransfer-Encoding: identity\r\nTransfer-Encoding: chunked\r\n"
                    b"Content-Length: 3\r\n\r\nabc")
        self.assertEqual(framer.state, FramerState.REJECTED)
        self.assertEqual(framer.error, MSG_BAD_TRANSFER_ENCODING)

    def test_repeated_content_length_rejected(self):
        for lengths in ((b"3", b"5"), (b"3", b"3")):
            with self.subTest(lengths=lengths):
                framer = RequestFramer(max_size=1024)
                framer.feed(b"POST / HTTP/1.1\r\nContent-Length: " + lengths[0] +
                            b"\r\nContent-Length: " + lengths[1] + b"\r\n\r\nabc")
                self.assertEqual(framer.state, FramerState.REJECTED)
                self.assertEqual(framer.error, MSG_NEED_CONTENT_LENGTH)

    def test_more_data_than_advertised_rejected(self):
        framer = RequestFramer(max_size=1024)
        framer.feed(b"POST / HTTP/1.0\r\nContent-Length: 2\r\n\r\n")
        self.assertEqual(framer.feed(b"abc"), FramerState.REJECTED)
        self.assertEqual(framer.error, MSG_MORE_THAN_ADVERTISED)

    def test_excess_in_same_chunk_as_header_rejected(self):
        framer = RequestFramer(max_size=1024)
        self.assertEqual(framer.feed(b"POST / HTTP/1.0\r\nContent-Length: 1\r\n\r\nab"), FramerState.REJECTED)
        self.assertEqual(framer.reason, "more-than-advertised")


class TestSizeLimit(unittest.TestCase):
    def test_eleven_bytes_over_limit_of_ten(self):
        framer = RequestFramer(max_size=10)
        self.assertEqual(framer.feed(b"POST / HTT"), FramerState.AWAITING_CONTENT_LENGTH)
        self.assertEqual(framer.feed(b"P"), FramerState.REJECTED)
        self.assertEqual(framer.error, MSG_TOO_MUCH_DATA)

    def test_limit_checked_before_header_parsing(self):
        """An oversize chunk is rejected even if it carries a bad header"""
        framer = RequestFramer(max_size=20)
        framer.feed(b"POST / HTTP/1.0\r\nTransfer-Encoding: chunked\r\n\r\n")
        self.assertEqual(framer.error, MSG_TOO_MUCH_DATA)

    def test_get_over_limit(self):
        framer = RequestFramer(max_size=16)
        self.assertEqual(framer.feed(b"GET / HTTP/1.0\r\nHost: example\r\n\r\n"), FramerState.REJECTED)
        self.assertEqual(framer.reason, "too-much-data")

    def test_invalid_limit(self):
        with self.assertRaises(ValueError):
            RequestFramer(max_size=0)


class TestTerminalStates(unittest.TestCase):
    def test_feed_after_complete_raises(self):
        framer = RequestFramer(max_size=1024)
        framer.feed(b"GET / HTTP/1.0\r\n\r\n")
        with self.assertRaises(RuntimeError):
            framer.feed(b"more")

    def test_request_before_complete_raises(self):
        framer = RequestFramer(max_size=1024)
        framer.feed(b"GET / HTTP/1.0\r\n")
        with self.assertRaises(RuntimeError):
            framer.request()


class TestHeaderHelpers(unittest.TestCase):
    def test_find_header_end(self):
        self.assertEqual(find_header_end(b"GET / HTTP/1.0\r\n\r\nrest"), 18)
        self.assertEqual(find_header_end(b"GET / HTTP/1.0\r\n"), -1)

    def test_header_values_skip_request_line(self):
        block = b"POST /Content-Length: 9 HTTP/1.0\r\nX-A: 1\r\nContent-Length:  42 \r\n\r\n"
        self.assertEqual(header_values(block, "content-length"), ["42"])
        self.assertEqual(header_values(block, "X-A"), ["1"])
        self.assertEqual(header_values(block, "Transfer-Encoding"), [])

    def test_header_values_keep_repeats_in_order(self):
        block = b"POST / HTTP/1.1\r\nTransfer-Encoding: identity\r\ntransfer-encoding: chunked\r\n\r\n"
        self.assertEqual(header_values(block, "Transfer-Encoding"), ["identity", "chunked"])


if __name__ == '__main__':
    unittest.main()
