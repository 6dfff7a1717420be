#!/usr/bin/env python3
import argparse
import sys
import time
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from caalm.totp import (
    DEFAULT_ISSUER, PERIOD,
    generate_secret, generate_code, verify_code, generate_qr_url, timecode,
)

console = Console()


def cmd_secret(args):
    console.print(generate_secret(args.length))
    return 0


def cmd_code(args):
    now = args.time if args.time is not None else time.time()
    counter = timecode(now)
    table = Table(title="TOTP")
    for c in ["Time (UTC)", "Counter", "Code", "Expires in"]:
        table.add_column(c)
    table.add_row(
        datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
        str(counter),
        generate_code(args.secret, now),
        f"{PERIOD - int(now % PERIOD)}s",
    )
    console.print(table)
    return 0


def cmd_verify(args):
    if verify_code(args.secret, args.code, window=args.window):
        console.print("[green]Code is valid.[/green]")
        return 0
    console.print("[red]Code is not valid for the current window.[/red]")
    return 1


def cmd_uri(args):
    console.print(generate_qr_url(args.secret, args.account, args.issuer), soft_wrap=True)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="TOTP secret and code helper.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("secret", help="generate a new secret")
    p.add_argument("--length", type=int, default=32)
    p.set_defaults(func=cmd_secret)

    p = sub.add_parser("code", help="print the code for a secret")
    p.add_argument("secret")
    p.add_argument("--time", type=float, default=None, help="Unix time (defaults to now)")
    p.set_defaults(func=cmd_code)

    p = sub.add_parser("verify", help="check a code against a secret")
    p.add_argument("secret")
    p.add_argument("code")
    p.add_argument("--window", type=int, default=1)
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("uri", help="print the otpauth:// provisioning URI")
    p.add_argument("secret")
    p.add_argument("account")
    p.add_argument("--issuer", default=DEFAULT_ISSUER)
    p.set_defaults(func=cmd_uri)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        return 2


if __name__ == "__main__":
    sys.exit(main())
