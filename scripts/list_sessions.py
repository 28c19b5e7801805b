#!/usr/bin/env python3
"""
List the audio sessions fadersync can control on this machine.

Usage:
  ./scripts/list_sessions.py [--json] [--verbose]

Notes:
  - Runs one scan through the platform backend and prints each session.
  - Names in the first column are what slider_mapping entries should use.

"""
# ruff: noqa: T201

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from fadersync.backends import select_backend
from fadersync.errors import FaderSyncError
from fadersync.registry import SessionRegistry


async def list_sessions(*, as_json: bool) -> int:
    """Print every session from one scan."""
    registry = SessionRegistry(select_backend())
    try:
        try:
            await registry.refresh()
        except FaderSyncError as exc:
            print(f"scan failed: {exc}", file=sys.stderr)
            return 1
        targets = sorted(registry.targets(), key=lambda t: t.key)
        if as_json:
            print(json.dumps([t.to_dict() for t in targets], indent=2))
            return 0
        for target in targets:
            state = "" if target.controllable else "  (not controllable)"
            print(f"{target.key:<32} {target.kind.value:<15} {target}{state}")
    finally:
        await registry.close()
    return 0


def main(argv: list[str]) -> int:
    """Parse arguments and list sessions."""
    p = argparse.ArgumentParser()
    p.add_argument("--json", action="store_true", help="print JSON")
    p.add_argument("--verbose", action="store_true")
    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(list_sessions(as_json=args.json))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
