"""
Prometheus metrics for the paste server.

Metrics live in the default prometheus_client registry. They are exposed on
a separate admin port (never on the paste port) when the server is started
with a metrics port.
"""

"""
Copyright 2025 Chris Bunting
File: metrics.py | Purpose: Prometheus counters and exposition
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-01 - Chris Bunting: Initial implementation
"""

import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger("pstd.metrics")

CONNECTIONS_TOTAL = Counter("pstd_connections_total", "Accepted client connections")
CONNECTIONS_ACTIVE = Gauge("pstd_connections_active", "Client connections currently open")
REQUESTS_TOTAL = Counter("pstd_requests_total", "Dispatched requests", ["outcome"])
REJECTIONS_TOTAL = Counter("pstd_framing_rejections_total", "Requests rejected while framing", ["reason"])
PASTES_CREATED = Counter("pstd_pastes_created_total", "Pastes written to the store")
PASTE_BYTES = Counter("pstd_paste_bytes_total", "Bytes written to the store")
RATE_LIMITED = Counter("pstd_rate_limited_total", "Submission attempts refused by the rate limiter")
REQUEST_LATENCY = Histogram("pstd_request_duration_seconds", "Time from first byte to response")


def start_metrics_server(port: int, addr: str = "127.0.0.1") -> None:
    """Expose the default registry over HTTP on ``addr:port``.

    Runs in a prometheus_client daemon thread; it only reads metric values
    and never touches paste server state.
    """
    start_http_server(port, addr=addr)
    logger.info("Serving metrics on http://%s:%d/metrics", addr, port)
