from __future__ import annotations

import argparse
import functools
import json
import logging
import sys

from .app import AppClient, ClientConfig
from .constants import DEFAULT_CANCEL_TIMEOUT_S, DEFAULT_GRACE_TIMEOUT_S, DEFAULT_HOST


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="reactor-client",
        description="Run concurrent TCP and UDP logging clients against a reactor server.",
    )
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    p.add_argument("--host", default=DEFAULT_HOST)
    p.add_argument("--grace-timeout", type=float, default=DEFAULT_GRACE_TIMEOUT_S, help="seconds to let sessions finish")
    p.add_argument("--cancel-timeout", type=float, default=DEFAULT_CANCEL_TIMEOUT_S, help="seconds to wait after cancelling")
    p.add_argument("--json", action="store_true", help="print a JSON summary of session results")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")

    config = ClientConfig(
        host=args.host,
        grace_timeout_s=args.grace_timeout,
        cancel_timeout_s=args.cancel_timeout,
    )
    # keep stdout parseable when it carries the JSON summary
    display = functools.partial(print, file=sys.stderr) if args.json else print
    app = AppClient(config, display=display)
    app.start()
    results = app.stop()

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
