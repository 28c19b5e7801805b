#!/usr/bin/env python3
# sweep_volume.py
# Usage: ./sweep_volume.py <target name>
#    [--start 0]
#    [--end 100]
#    [--sleep 0.15]
# ruff: noqa: T201
"""Sweep volume levels for one audio session and print set/read pairs."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from fadersync.backends import select_backend
from fadersync.errors import FaderSyncError
from fadersync.registry import SessionRegistry
from fadersync.resolver import TargetResolver


async def sweep(args: argparse.Namespace) -> int:
    """Step the target from start to end percent, reading back each level."""
    registry = SessionRegistry(select_backend())
    resolver = TargetResolver(registry)
    try:
        target = await resolver.resolve_name(args.name)
        if target is None:
            print(f"no audio session found for {args.name!r}", file=sys.stderr)
            return 1

        original = target.get_volume()
        print("step,set,read")
        try:
            for step in range(args.start, args.end + 1):
                level = step / 100
                try:
                    target.set_volume(level)
                except FaderSyncError as exc:
                    print(f"{step},{level:.2f},error: {exc}")
                    return 1
                await asyncio.sleep(args.sleep)
                print(f"{step},{level:.2f},{target.get_volume():.4f}")
        finally:
            try:
                target.set_volume(original)
            except FaderSyncError as exc:
                print(
                    f"failed to restore volume {original:.2f}: {exc}", file=sys.stderr
                )
    finally:
        await registry.close()
    return 0


def main(argv: list[str]) -> int:
    """Sweep volume levels for a given audio session."""
    p = argparse.ArgumentParser()
    p.add_argument("name", help="process name, 'master' or 'system'")
    p.add_argument("--start", type=int, default=0)
    p.add_argument("--end", type=int, default=100)
    p.add_argument("--sleep", type=float, default=0.15, help="delay between steps")
    p.add_argument("--verbose", action="store_true")
    args = p.parse_args(argv)
    if not 0 <= args.start <= args.end <= 100:  # noqa: PLR2004
        print("need 0 <= start <= end <= 100", file=sys.stderr)
        return 2
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(sweep(args))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
