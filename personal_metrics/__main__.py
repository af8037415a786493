"""Command line entry point: ``python -m personal_metrics``."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import json
import sys

from personal_metrics.config import load_config
from personal_metrics.db import init_db
from personal_metrics.jobs.registry import SYNC_PROVIDERS, run_sync
from personal_metrics.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="personal_metrics", description=__doc__)
    subcommands = parser.add_subparsers(dest="command", required=True)

    sync = subcommands.add_parser("sync", help="Run one provider sync and print the result")
    sync.add_argument("provider", choices=SYNC_PROVIDERS)

    serve = subcommands.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    configure_logging(config.logging.level, stream=sys.stderr)

    if args.command == "serve":
        import uvicorn

        from personal_metrics.main import create_app

        uvicorn.run(create_app(config), host=args.host, port=args.port)
        return 0

    init_db()
    envelope = asyncio.run(run_sync(args.provider, config))
    print(json.dumps(envelope.to_payload(), indent=2, ensure_ascii=False))
    return 0 if envelope.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
