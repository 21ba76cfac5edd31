import csv
import io
import pytest
from decimal import Decimal
from unittest.mock import patch

from pydantic import ValidationError

from exceptions import InvalidPrecision, MalformedRecord, MissingAmount, UnknownOperationType
from ingestion import OperationReader, parse_amount, parse_operation
from models import Chargeback, Deposit, Dispute, OperationType, Resolve, Withdrawal


def record(type_, client="1", tx="1", amount=None):
    return {"type": type_, "client": client, "tx": tx, "amount": amount}


class TestParseAmount:
    """Test exact decimal parsing."""

    @pytest.mark.parametrize("text, expected", [
        ("1", Decimal("1")),
        ("1.0", Decimal("1.0")),
        ("0.0001", Decimal("0.0001")),
        ("123456.7890", Decimal("123456.7890")),
    ])
    def test_valid_amounts(self, text, expected):
        amount = parse_amount(text)

        assert amount == expected
        assert str(amount) == text

    def test_too_many_decimal_places(self):
        with pytest.raises(InvalidPrecision):
            parse_amount("1.00001")

    def test_trailing_zeros_count_towards_precision(self):
        with pytest.raises(InvalidPrecision):
            parse_amount("1.50000")

    @pytest.mark.parametrize("text", ["abc", "1,5", "NaN", "Infinity", "-1.0", ""])
    def test_invalid_amounts(self, text):
        with pytest.raises(MalformedRecord):
            parse_amount(text)


class TestParseOperation:
    """Test building operations from records."""

    def test_deposit(self):
        operation = parse_operation(record("deposit", client="2", tx="5", amount="1.5"))

        assert operation == Deposit(client=2, tx=5, amount=Decimal("1.5"))
        assert operation.client_id() == 2
        assert operation.transaction_id() == 5

    def test_withdrawal(self):
        operation = parse_operation(record("withdrawal", amount="3"))

        assert isinstance(operation, Withdrawal)
        assert operation.type == OperationType.withdrawal

    @pytest.mark.parametrize("type_, cls", [
        ("dispute", Dispute),
        ("resolve", Resolve),
        ("chargeback", Chargeback),
    ])
    def test_dispute_family(self, type_, cls):
        operation = parse_operation(record(type_, tx="9"))

        assert isinstance(operation, cls)
        assert operation.tx == 9

    def test_amount_on_dispute_is_ignored(self):
        operation = parse_operation(record("dispute", amount="1.0"))

        assert operation == Dispute(client=1, tx=1)

    def test_fields_are_trimmed(self):
        operation = parse_operation(record(" deposit ", client=" 1 ", tx=" 2 ", amount=" 1.0 "))

        assert operation == Deposit(client=1, tx=2, amount=Decimal("1.0"))

    def test_unknown_type(self):
        with pytest.raises(UnknownOperationType):
            parse_operation(record("transfer", amount="1.0"))

    @pytest.mark.parametrize("type_", ["DEPOSIT", "Deposit", "Dispute"])
    def test_type_tags_are_case_sensitive(self, type_):
        with pytest.raises(UnknownOperationType):
            parse_operation(record(type_, amount="1.0"))

    @pytest.mark.parametrize("type_", ["deposit", "withdrawal"])
    @pytest.mark.parametrize("amount", [None, "", "   "])
    def test_missing_amount(self, type_, amount):
        with pytest.raises(MissingAmount):
            parse_operation(record(type_, amount=amount))

    def test_invalid_precision(self):
        with pytest.raises(InvalidPrecision):
            parse_operation(record("deposit", amount="0.12345"))

    @pytest.mark.parametrize("amount", [
        "10000000000000000000000000000",
        "1000000000000000000000000",
        "1E+30",
    ])
    def test_too_many_digits(self, amount):
        with pytest.raises(InvalidPrecision):
            parse_operation(record("deposit", amount=amount))

    def test_largest_amount_is_accepted(self):
        operation = parse_operation(record("deposit", amount="999999999999999999999999.9999"))

        assert operation.amount == Decimal("999999999999999999999999.9999")

    @pytest.mark.parametrize("client, tx", [
        ("abc", "1"),
        ("1", "x"),
        ("-1", "1"),
        ("65536", "1"),
        ("1", "4294967296"),
        ("", "1"),
    ])
    def test_malformed_ids(self, client, tx):
        with pytest.raises(MalformedRecord):
            parse_operation(record("deposit", client=client, tx=tx, amount="1.0"))

    def test_error_carries_line_number(self):
        with pytest.raises(UnknownOperationType) as exc_info:
            parse_operation(record("bogus"), line=12)

        assert exc_info.value.line == 12
        assert exc_info.value.error_code == "UNKNOWN_OPERATION_TYPE"


class TestOperationReader:
    """Test reading operations from a CSV stream."""

    def test_reads_all_operations(self):
        stream = io.StringIO(
            "type, client, tx, amount\n"
            "deposit, 1, 1, 1.0\n"
            "deposit, 2, 2, 2.0\n"
            "withdrawal, 1, 3, 0.5\n"
            "dispute, 1, 1,\n"
            "resolve, 1, 1\n"
        )
        reader = OperationReader(stream)

        operations = list(reader)

        assert operations == [
            Deposit(client=1, tx=1, amount=Decimal("1.0")),
            Deposit(client=2, tx=2, amount=Decimal("2.0")),
            Withdrawal(client=1, tx=3, amount=Decimal("0.5")),
            Dispute(client=1, tx=1),
            Resolve(client=1, tx=1),
        ]
        assert reader.skipped == 0

    def test_bad_records_are_skipped(self):
        stream = io.StringIO(
            "type,client,tx,amount\n"
            "deposit,1,1,1.0\n"
            "teleport,1,2,1.0\n"
            "deposit,1,3\n"
            "deposit,1,4,1.00001\n"
            "deposit,one,5,1.0\n"
            "withdrawal,1,6,0.5\n"
        )
        reader = OperationReader(stream)

        operations = list(reader)

        assert [op.tx for op in operations] == [1, 6]
        assert reader.skipped == 4

    @patch('ingestion.logger')
    def test_skipped_records_are_logged(self, mock_logger):
        stream = io.StringIO("type,client,tx,amount\nteleport,1,2,1.0\n")

        list(OperationReader(stream))

        mock_logger.error.assert_called_once()
        kwargs = mock_logger.error.call_args.kwargs
        assert kwargs["line"] == 2
        assert kwargs["error_code"] == "UNKNOWN_OPERATION_TYPE"

    def test_blank_lines_are_ignored(self):
        stream = io.StringIO("type,client,tx,amount\n\ndeposit,1,1,1.0\n\n")
        reader = OperationReader(stream)

        assert len(list(reader)) == 1
        assert reader.skipped == 0

    def test_empty_input(self):
        assert list(OperationReader(io.StringIO(""))) == []

    def test_header_only(self):
        assert list(OperationReader(io.StringIO("type,client,tx,amount\n"))) == []

    def test_missing_header_columns(self):
        stream = io.StringIO("kind,client,amount\ndeposit,1,1.0\n")

        with pytest.raises(MalformedRecord):
            list(OperationReader(stream))

    def test_undecodable_bytes_are_skipped(self):
        raw = b"type,client,tx,amount\ndeposit,1,1,1.0\ndeposit,1,2,\xff\xfe1.0\ndeposit,2,3,2.0\n"
        stream = io.TextIOWrapper(io.BytesIO(raw), encoding="utf-8", errors="surrogateescape", newline="")
        reader = OperationReader(stream)

        operations = list(reader)

        assert [op.tx for op in operations] == [1, 3]
        assert reader.skipped == 1

    def test_oversized_field_is_skipped(self):
        stream = io.StringIO(
            "type,client,tx,amount\n"
            "deposit,1,1,1.0\n"
            "deposit,1,2," + "1" * (csv.field_size_limit() + 1) + "\n"
            "deposit,2,3,2.0\n"
        )
        reader = OperationReader(stream)

        operations = list(reader)

        assert [op.tx for op in operations] == [1, 3]
        assert reader.skipped == 1


class TestAmountModel:
    """Test the limits declared on operation amounts."""

    def test_too_many_decimal_places(self):
        with pytest.raises(ValidationError):
            Deposit(client=1, tx=1, amount=Decimal("0.00001"))

    def test_too_many_digits(self):
        with pytest.raises(ValidationError):
            Withdrawal(client=1, tx=1, amount=Decimal("10000000000000000000000000000"))

    def test_negative_amount(self):
        with pytest.raises(ValidationError):
            Deposit(client=1, tx=1, amount=Decimal("-1"))

    def test_scale_is_preserved(self):
        assert str(Deposit(client=1, tx=1, amount=Decimal("1.5000")).amount) == "1.5000"
