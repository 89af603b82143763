"""Executable entry point for launching the inspection service.

Environment Variables:
    HOST (str): Interface to bind (default 0.0.0.0).
    PORT (int): Override listening port (default 8000).
    FCS_PARSER_CONFIG (str): Parser configuration, see :mod:`fcs_endpoint_api.config`.

Command line options override the environment.

Example:
    $ python -m fcs_endpoint_api.run_server
    $ PORT=9000 python -m fcs_endpoint_api.run_server
    $ FCS_PARSER_CONFIG="strategy=streaming,max_depth=2" fcs-endpoint-server --port 9000
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

import uvicorn

from .app import PARSER_CONFIG, app
from .cli import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the CLARIN-FCS inspection service")
    parser.add_argument(
        "--host", default=os.getenv("HOST", "0.0.0.0"), help="Interface to bind"
    )
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("PORT", "8000")), help="Port to listen on"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Launch the ASGI server, logging the parser configuration it serves with."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    logger.info(
        "Starting CLARIN-FCS inspection service on %s:%d (strategy=%s, max_depth=%d, "
        "require_resource_declarations=%s)",
        args.host,
        args.port,
        PARSER_CONFIG.strategy.value,
        PARSER_CONFIG.max_depth,
        PARSER_CONFIG.require_resource_declarations,
    )
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )


if __name__ == "__main__":
    main()
