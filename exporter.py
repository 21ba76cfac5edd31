import csv
from decimal import Decimal
from typing import Iterable, TextIO

from models import AccountSnapshot

HEADER = ("client", "available", "held", "total", "locked")


def format_amount(value: Decimal) -> str:
    """Render a decimal at its natural precision, never in exponent notation."""
    return format(value, "f")


def write_snapshots(accounts: Iterable[AccountSnapshot], stream: TextIO) -> int:
    """Write one CSV row per account. Returns the number of rows written."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(HEADER)

    rows = 0
    for account in accounts:
        writer.writerow([
            account.client,
            format_amount(account.available),
            format_amount(account.held),
            format_amount(account.total),
            "true" if account.locked else "false",
        ])
        rows += 1
    return rows
