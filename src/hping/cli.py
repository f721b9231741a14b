#!/usr/bin/env python3
# cli.py: command-line entry point for hping

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from hping import __version__
from hping.config import (
    ConfigError,
    Settings,
    expand_targets,
    load_settings_with_fallback,
    parse_method,
    resolve_home_dir,
)
from hping.core import ShutdownCoordinator
from hping.logging_config import create_status_log, setup_logging
from hping.rendering import make_console

INFO = "hPING sends HEAD or GET or POST requests to web or api servers to check if they are alive"
USAGE = "hping [ping|head|get|post] [http(s)://]www.webserver.com[:port] [another host] [server group]"
ACTIONS = ("ping", "head", "get", "post", "servers", "settings")
EXAMPLES = """\
Examples:
  hping ping www.google.com
  hping get www.google.com -i 2
  hping www.google.com www.apple.com
  hping "apple production"
  hping servers"""


@dataclass
class Action:
    type: str
    targets: list[str] = field(default_factory=list)
    method: str | None = None


def positive_number(label: str):
    def parse(value: str) -> float:
        try:
            number = float(value)
        except ValueError:
            number = float("nan")
        if not number > 0 or number == float("inf"):
            raise argparse.ArgumentTypeError(f"{label} must be a positive number")
        return number

    return parse


def method_type(value: str) -> str:
    try:
        return parse_method(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hping",
        usage=USAGE,
        description=INFO,
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "action_or_target",
        nargs="?",
        help="command (ping/get/post/head/servers/settings) or first target",
    )
    parser.add_argument(
        "targets",
        nargs="*",
        help="targets or server group names",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="hping config file in YAML format (default: ~/.hping/hping.conf.yaml)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=positive_number("interval"),
        default=None,
        help="hping interval in seconds",
    )
    parser.add_argument(
        "-m",
        "--method",
        type=method_type,
        default=None,
        help="method override for ping command",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def choose_action(action_or_target: str | None, targets: list[str], method_override: str | None) -> Action:
    if not action_or_target:
        return Action("help")
    action = action_or_target.lower()
    if action not in ACTIONS:
        # Legacy invocation: the first positional is already a target
        return Action("ping", [action_or_target, *targets], method_override)
    if action in ("servers", "settings"):
        return Action(action)
    if action == "ping":
        return Action("ping", list(targets), method_override)
    return Action("ping", list(targets), action.upper())


def pretty(data) -> str:
    return yaml.safe_dump(data, sort_keys=False, width=120).rstrip()


def show_servers(settings: Settings) -> None:
    groups = ""
    if settings.servers:
        groups = f"\nServer groups (set in config):\n{pretty(settings.servers)}"
    print(f"{INFO}{groups}\nusage: {USAGE}")


def show_settings(settings_path: Path, settings: Settings) -> None:
    print(f"Settings from config file: {settings_path}\n{pretty(settings.model_dump())}")


async def run_ping(
    parser: argparse.ArgumentParser,
    action: Action,
    settings: Settings,
    settings_path: Path,
    home_dir: Path,
) -> int:
    method = action.method or settings.type
    targets = expand_targets(action.targets, settings.servers)
    if not targets:
        parser.error("no targets given")

    status_log = create_status_log(settings.log_file, home_dir) if settings.log_status_change else None
    console = make_console()
    console.print(f"Using config: {settings_path}")

    coordinator = ShutdownCoordinator(settings, method, status_log=status_log, console=console)
    try:
        stats = await coordinator.start(targets)
    finally:
        # finalize owns the close; this only covers a run that never got there
        if status_log is not None and not coordinator.run_state.finalized:
            status_log.close()
    logging.debug(f"Run finished for {len(stats)} target(s)")
    return 0


async def run(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    setup_logging(level="DEBUG" if args.debug else "WARNING")

    action = choose_action(args.action_or_target, args.targets, args.method)
    if action.type == "help":
        parser.print_help()
        return 0

    home_dir = resolve_home_dir()
    try:
        settings, settings_path = load_settings_with_fallback(home_dir, args.config, args.interval)
    except ConfigError as e:
        logging.error(f"Configuration error: {e}")
        return 1

    if action.type == "servers":
        show_servers(settings)
        return 0
    if action.type == "settings":
        show_settings(settings_path, settings)
        return 0
    return await run_ping(parser, action, settings, settings_path, home_dir)


def main():
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
