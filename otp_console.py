#!/usr/bin/env python3
import os, sys, time
from datetime import datetime
from rich.console import Console
from rich.table import Table

from twofactor.totp import (
    InvalidSecretError, decode_base32, generate_totp, seconds_remaining,
)

STEP = int(os.getenv("TOTP_STEP", "30"))
DIGITS = int(os.getenv("TOTP_DIGITS", "6"))

console = Console()

def read_codes(secret, now=None):
    if now is None:
        now = time.time()
    return {
        "timestamp": datetime.fromtimestamp(now),
        "previous": generate_totp(secret, max(now - STEP, 0), step=STEP, digits=DIGITS),
        "current": generate_totp(secret, now, step=STEP, digits=DIGITS),
        "next": generate_totp(secret, now + STEP, step=STEP, digits=DIGITS),
        "remaining": seconds_remaining(now, step=STEP),
    }

def build_table(data):
    table = Table(title="🔐 One-Time Codes")
    for c in ["Time", "Previous", "Current", "Next", "Expires In"]:
        table.add_column(c)
    table.add_row(
        data["timestamp"].strftime("%H:%M:%S"),
        data["previous"],
        f"[bold green]{data['current']}[/bold green]",
        data["next"],
        f"{data['remaining']}s",
    )
    return table

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    secret = argv[0] if argv else os.getenv("TOTP_SECRET")
    if not secret:
        console.print("[red]Usage: otp_console.py SECRET (or set TOTP_SECRET)[/red]")
        return 2
    if not decode_base32(secret):
        console.print("[red]Secret contains no Base32 characters.[/red]")
        return 1

    console.print("[bold cyan]Starting authenticator...[/bold cyan]")
    try:
        while True:
            console.clear(); console.print(build_table(read_codes(secret)))
            time.sleep(1)
    except InvalidSecretError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("[red]Stopped by user.[/red]")
    return 0

if __name__ == "__main__":
    sys.exit(main())
