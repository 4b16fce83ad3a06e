# blebridge/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional

DEFAULT_CONFIG = "blebridge.yml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blebridge")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Watch the configured sensors and forward readings.")
    p_run.add_argument("--config", default=DEFAULT_CONFIG, help=f"YAML config file (default: {DEFAULT_CONFIG}).")
    p_run.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default=None)
    p_run.add_argument(
        "--dry-run",
        action="store_true",
        help="Log decoded readings instead of forwarding them to the configured sink.",
    )

    p_decode = sub.add_parser("decode", help="Decode one raw vendor record given as hex.")
    p_decode.add_argument("payload", help="6-byte record, e.g. 00018c283c00 or 00:01:8C:28:3C:00")

    p_check = sub.add_parser("check-config", help="Validate a config file and print the result.")
    p_check.add_argument("--config", default=DEFAULT_CONFIG)

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
