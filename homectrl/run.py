"""Programmatic uvicorn entry point for home-ctrl.

Reads host and port from the loaded config (127.0.0.1:8080 by default) and
starts uvicorn with conservative connection limits.

Usage:
    python -m homectrl.run     # reads config.yaml / ~/.home-ctrl/config.yaml
    home-ctrl                  # via pyproject.toml [project.scripts]
    home-ctrl -c /etc/home-ctrl/config.yaml

The config path given on the command line is exported as HOMECTRL_CONFIG so
the lifespan (which loads config again inside the server) sees the same file.
"""

from __future__ import annotations

import argparse
import os
from typing import Optional, Sequence

import uvicorn

from homectrl import __version__
from homectrl.config import load_config

# ─── Uvicorn defaults ─────────────────────────────────────────────────────────

# New connections receive HTTP 503 when this limit is exceeded.
UVICORN_LIMIT_CONCURRENCY: int = 100

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="home-ctrl", description="home-ctrl server")
    parser.add_argument("-c", "--config", help="path to config.yaml")
    parser.add_argument("--version", action="version", version=f"home-ctrl {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Start the home-ctrl server.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    args = parse_args(argv)
    if args.config:
        os.environ["HOMECTRL_CONFIG"] = args.config

    config = load_config(args.config)

    uvicorn.run(
        "homectrl.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
