"""Package entry point for ``python -m confessions_bot``.

WHY: The webhook server is started as ``python -m confessions_bot`` (or
the ``confessions-bot`` console script) on the host Slack delivers to.

HOW: Configures logging, loads Settings once from the environment so a
misconfiguration fails before the port is bound, and serves the app
with uvicorn.

RULES:
- --host / --port override the bind address (default 0.0.0.0:8000)
- Missing required configuration exits with the ValueError message
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

import uvicorn

from confessions_bot.config import Settings
from confessions_bot.server.app import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="confessions-bot",
        description="Serve the Slack confessions webhook endpoints.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Start the webhook server.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    logger.info("Staging channel: %s", settings.staging_channel)
    logger.info("Confessions channel: %s", settings.confessions_channel)
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
