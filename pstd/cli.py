#!/usr/bin/env python3
"""
Command line entry point for the pstd paste server.

Example:
    pstd -l 0.0.0.0:8080 -H paste.example.com -d /srv/pastes -v
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pstd import __version__
from pstd.core.config import DEFAULT_CLIENT_SCRIPT, DEFAULT_MANUAL, ServerConfig, parse_listen
from pstd.core.server_core import PasteServer
from pstd.core.server_utils import ServerConfigError, configure_logging
from pstd.features.metrics import start_metrics_server

logger = logging.getLogger("pstd.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pstd",
        description="Minimal command line pastebin server",
        epilog="Giving 0 to -r or -R disables rate limiting.",
    )
    parser.add_argument("-V", "--version", action="version", version=__version__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Be more verbose")
    parser.add_argument("-l", "--listen", metavar="[ADDR:]PORT", default=None,
                        help="Listen on PORT, optionally bound to ADDR (default 127.0.0.1:8080)")
    parser.add_argument("-m", "--manual", metavar="PATH", type=Path, default=DEFAULT_MANUAL,
                        help="Path to the manual served for GET /")
    parser.add_argument("-d", "--paste-dir", metavar="PATH", type=Path, default=Path("pastes"),
                        help="Path to the paste directory")
    parser.add_argument("-c", "--client-script", metavar="PATH", type=Path, default=DEFAULT_CLIENT_SCRIPT,
                        help="Path to the client script published as paste 0")
    parser.add_argument("-L", "--log-file", metavar="PATH", type=Path, default=None,
                        help="Append log records to PATH")
    parser.add_argument("-H", "--host", metavar="FQDN", dest="public_host", default=None,
                        help="Our public hostname, used in paste URLs")
    parser.add_argument("-s", "--max-size", metavar="KIB", type=int, default=None,
                        help="Maximum paste size in KiB (includes the HTTP header)")
    parser.add_argument("-r", "--rate-samples", metavar="NUM", type=int, default=5,
                        help="Rate limit on NUM pastes in TIME (see -R) seconds")
    parser.add_argument("-R", "--rate-window", metavar="TIME", type=int, default=30,
                        help="See -r")
    parser.add_argument("--idle-timeout", metavar="SECONDS", type=float, default=None,
                        help="Drop connections silent for this long (default: never)")
    parser.add_argument("--metrics-port", metavar="PORT", type=int, default=None,
                        help="Expose Prometheus metrics on 127.0.0.1:PORT")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Translate parsed arguments into a ServerConfig.

    Raises:
        ServerConfigError: If an argument cannot be interpreted
    """
    config = ServerConfig(
        paste_dir=args.paste_dir,
        manual_path=args.manual,
        client_script=args.client_script,
        public_host=args.public_host,
        rate_samples=args.rate_samples,
        rate_window=args.rate_window,
        log_file=args.log_file,
        verbose=args.verbose,
        idle_timeout=args.idle_timeout,
        metrics_port=args.metrics_port,
    )
    if args.listen is not None:
        config.host, config.port = parse_listen(args.listen)
    if args.max_size is not None:
        if args.max_size < 1:
            raise ServerConfigError(f"Invalid maximum paste size '{args.max_size}'")
        config.max_paste_size = args.max_size * 1024
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
        config = config_from_args(args)
        config.validate()
        server = PasteServer(config)
        if config.metrics_port is not None:
            try:
                start_metrics_server(config.metrics_port)
            except OSError as e:
                raise ServerConfigError(f"Could not serve metrics on port {config.metrics_port}: {e}")
        logger.debug("Will listen on %s:%d; accessible as http://%s/",
                     config.host, config.port, server.public_host)
        server.run()
    except ServerConfigError as e:
        logger.error("ERROR: %s (Try -h)", e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
