"""CLI entry point for cloudvars."""

import argparse
import asyncio
import json
import logging
import math
import sys
from datetime import datetime

from .config import load_config
from .connection import check_connection
from .protocol import VarUpdate
from .session import CloudSession
from .storage import LocalFallbackStore


class JSONFormatter(logging.Formatter):
    """Formats each record as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level = getattr(logging, log_level.upper())
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logging.basicConfig(level=level, handlers=[handler])

    # Frame-level websockets logging is only useful when debugging cloudvars itself
    if level > logging.DEBUG:
        logging.getLogger("websockets").setLevel(logging.WARNING)


def _print_update(update: VarUpdate) -> None:
    print(f"{update.name} = {update.value!r}", flush=True)


async def cmd_watch(args: argparse.Namespace) -> int:
    """Print inbound updates until interrupted."""
    config = load_config(args.config)
    session = CloudSession(config, _print_update)

    target = config.cloud.url or f"local store {config.store.path}"
    print(f"Watching project {config.session.project_id} via {target}")

    await session.start(args.variables)
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        print("\nShutting down...")
    finally:
        await session.stop()

    return 0


def _parse_number(text: str) -> int | float:
    """Parse a numeric CLI value. Integral values become ints."""
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"{text!r} is not a finite number")
    return int(number) if number.is_integer() else number


async def cmd_set(args: argparse.Namespace) -> int:
    """Send a single variable change."""
    value = args.value
    if args.number:
        try:
            value = _parse_number(value)
        except ValueError:
            print(f"Invalid number: {args.value!r}", file=sys.stderr)
            return 2

    config = load_config(args.config)
    session = CloudSession(config, lambda update: None)
    client = await session.start()

    try:
        # A set sent before the connection opens is dropped, not queued
        if config.cloud.has_remote and not await session.wait_until_ready(args.timeout):
            print(f"Could not reach {config.cloud.url}", file=sys.stderr)
            return 1

        if args.create:
            client.create_variable(args.name, value)
        else:
            client.update_variable(args.name, value)

        if config.cloud.has_remote and not await session.wait_until_flushed(args.timeout):
            print(f"Could not send to {config.cloud.url}", file=sys.stderr)
            return 1
    finally:
        await session.stop()

    return 0


def cmd_get(args: argparse.Namespace) -> int:
    """Read a variable from the local fallback store."""
    config = load_config(args.config)
    store = LocalFallbackStore(config.store.path, prefix=config.store.prefix)
    try:
        value = store.get(args.name)
    finally:
        store.close()

    if value is None:
        print(f"{args.name} is not set", file=sys.stderr)
        return 1
    print(value)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List variables in the local fallback store."""
    config = load_config(args.config)
    store = LocalFallbackStore(config.store.path, prefix=config.store.prefix)
    try:
        items = store.items()
    finally:
        store.close()

    if args.json:
        print(json.dumps(items, indent=2, ensure_ascii=False))
    else:
        for name, value in items.items():
            print(f"{name} = {value}")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check connectivity status."""
    config = load_config(args.config)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "session": {
            "user": config.session.user,
            "project_id": config.session.project_id,
        },
        "cloud": {
            "url": config.cloud.url,
            "mode": "remote" if config.cloud.has_remote else "local",
            "special": config.cloud.special,
            "local_prefix": config.cloud.local_prefix,
            "reachable": None,
        },
        "store": {
            "path": config.store.path,
            "prefix": config.store.prefix,
        },
    }

    if config.cloud.has_remote:
        status_data["cloud"]["reachable"] = await check_connection(config.cloud.url, args.timeout)

    if args.json:
        print(json.dumps(status_data, indent=2, ensure_ascii=False))
        return 0

    cloud = status_data["cloud"]
    print("cloudvars Status Check")
    print("======================")
    print(f"User: {config.session.user}")
    print(f"Project: {config.session.project_id}")
    print()
    if cloud["mode"] == "remote":
        print(f"Remote authority ({cloud['url']}):")
        print(f"  Status: {'Reachable' if cloud['reachable'] else 'Not reachable'}")
        print(f"  Local-only prefix: {cloud['local_prefix']!r}")
    else:
        print("Remote authority: none configured (local mode)")
    print()
    print(f"Local store: {config.store.path} (prefix {config.store.prefix!r})")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="cloudvars",
        description="Cloud variable sync client",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config file",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        choices=["warning", "info", "debug"],
        help="Set explicit log level",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON lines",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    watch_parser = subparsers.add_parser("watch", help="Print variable updates as they arrive")
    watch_parser.add_argument(
        "variables",
        nargs="*",
        help="Cloud variable names to seed from the local store",
    )
    watch_parser.set_defaults(func=cmd_watch)

    set_parser = subparsers.add_parser("set", help="Set a cloud variable")
    set_parser.add_argument("name", help="Variable name")
    set_parser.add_argument("value", help="New value")
    set_parser.add_argument(
        "--create",
        action="store_true",
        help="Create the variable instead of updating it",
    )
    set_parser.add_argument(
        "--number",
        action="store_true",
        help="Send the value as a number",
    )
    set_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Seconds to wait for the remote authority",
    )
    set_parser.set_defaults(func=cmd_set)

    get_parser = subparsers.add_parser("get", help="Read a variable from the local store")
    get_parser.add_argument("name", help="Variable name")
    get_parser.set_defaults(func=cmd_get)

    list_parser = subparsers.add_parser("list", help="List variables in the local store")
    list_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    list_parser.set_defaults(func=cmd_list)

    status_parser = subparsers.add_parser("status", help="Check connectivity status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Seconds to wait for the remote authority",
    )
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        try:
            return asyncio.run(func(args))
        except KeyboardInterrupt:
            return 130
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
