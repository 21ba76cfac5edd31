"""CSV ingestion: turns raw records into validated operations.

Input is a CSV file with a ``type, client, tx, amount`` header. Whitespace
around fields is ignored and rows may leave out the trailing amount column.
A record that cannot be turned into an operation is logged and skipped; it
never stops the run.
"""
import csv
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterator, Optional, TextIO

from pydantic import TypeAdapter, ValidationError
import structlog

from exceptions import (
    IngestionError,
    InvalidPrecision,
    MalformedRecord,
    MissingAmount,
    UnknownOperationType,
)
from models import AMOUNT_PRECISION, RECORDED_TYPES, Operation, OperationType

logger = structlog.get_logger()

REQUIRED_COLUMNS = ("type", "client", "tx")

_operation_adapter = TypeAdapter(Operation)

# pydantic error types raised by the amount digit limits
PRECISION_ERRORS = {"decimal_max_digits", "decimal_max_places", "decimal_whole_digits"}

# Bytes that are not valid UTF-8 survive decoding as lone surrogates
_UNDECODABLE = re.compile("[\udc80-\udcff]")


def parse_amount(text: str, line: Optional[int] = None) -> Decimal:
    """Parse an amount exactly, rejecting anything with more than AMOUNT_PRECISION decimals."""
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise MalformedRecord(f"Invalid amount: {text!r}", line)

    if not amount.is_finite():
        raise MalformedRecord(f"Invalid amount: {text!r}", line)
    if amount < 0:
        raise MalformedRecord(f"Negative amount: {text!r}", line)

    exponent = amount.as_tuple().exponent
    if exponent < 0 and -exponent > AMOUNT_PRECISION:
        raise InvalidPrecision(
            f"Amount {text!r} has more than {AMOUNT_PRECISION} decimal places", line
        )
    return amount


def parse_operation(record: Dict[str, Optional[str]], line: Optional[int] = None) -> Operation:
    """Build an operation from one CSV record (column name -> raw text)."""
    type_tag = (record.get("type") or "").strip()
    try:
        operation_type = OperationType(type_tag)
    except ValueError:
        raise UnknownOperationType(f"Unknown operation type: {type_tag!r}", line)

    payload = {
        "type": operation_type,
        "client": (record.get("client") or "").strip(),
        "tx": (record.get("tx") or "").strip(),
    }

    # Amounts on dispute/resolve/chargeback records are ignored
    if operation_type in RECORDED_TYPES:
        amount_text = (record.get("amount") or "").strip()
        if not amount_text:
            raise MissingAmount(f"No amount provided for {operation_type.value}", line)
        payload["amount"] = parse_amount(amount_text, line)

    try:
        return _operation_adapter.validate_python(payload)
    except ValidationError as e:
        if any(error["type"] in PRECISION_ERRORS for error in e.errors()):
            raise InvalidPrecision(f"Amount out of range for {operation_type.value}: {e.errors()}", line)
        raise MalformedRecord(f"Invalid {operation_type.value} record: {e.errors()}", line)


class OperationReader:
    """Iterates over the operations of a CSV stream, skipping bad records."""

    def __init__(self, stream: TextIO):
        self.stream = stream
        self.skipped = 0

    def __iter__(self) -> Iterator[Operation]:
        rows = csv.reader(self.stream)
        header = next(rows, None)
        if header is None:
            return

        fieldnames = [name.strip().lower() for name in header]
        missing = [column for column in REQUIRED_COLUMNS if column not in fieldnames]
        if missing:
            raise MalformedRecord(f"Header is missing columns: {', '.join(missing)}", rows.line_num)

        while True:
            try:
                cells = next(rows)
            except StopIteration:
                return
            except csv.Error as e:
                self._skip(MalformedRecord(f"Unreadable CSV row: {e}", rows.line_num))
                continue

            if not any(cell.strip() for cell in cells):
                continue

            try:
                if any(_UNDECODABLE.search(cell) for cell in cells):
                    raise MalformedRecord("Record is not valid UTF-8", rows.line_num)
                operation = parse_operation(dict(zip(fieldnames, cells)), rows.line_num)
            except IngestionError as e:
                self._skip(e)
                continue

            yield operation

    def _skip(self, error: IngestionError) -> None:
        self.skipped += 1
        logger.error(
            "Record skipped",
            line=error.line,
            error_code=error.error_code,
            detail=error.detail,
        )
