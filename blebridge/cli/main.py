# blebridge/cli/main.py
from __future__ import annotations

from typing import Optional

from blebridge.core.errors import BridgeError

from blebridge.cli.args import parse_args
from blebridge.cli.commands import (
    cmd_check_config,
    cmd_decode,
    cmd_run,
)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    try:
        if args.cmd == "run":
            return cmd_run(args)
        if args.cmd == "decode":
            return cmd_decode(args)
        if args.cmd == "check-config":
            return cmd_check_config(args)

        return 2
    except BridgeError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1
