from decimal import Context, Decimal, DivisionByZero, Inexact, InvalidOperation, Overflow, localcontext
from typing import Dict, Set, Union
import structlog

from exceptions import (
    AccountLocked,
    AlreadyProcessed,
    DisputedTransactionNotFound,
    InsufficientFunds,
    InvariantViolation,
)
from models import (
    AccountSnapshot,
    Chargeback,
    Deposit,
    Dispute,
    Operation,
    OperationType,
    RECORDED_TYPES,
    Resolve,
    Withdrawal,
)

logger = structlog.get_logger()

# Balance arithmetic must be exact: any rounding raises decimal.Inexact
BALANCE_CONTEXT = Context(prec=64, traps=[Inexact, InvalidOperation, DivisionByZero, Overflow])


class ClientAccount:
    """Balances and transaction history of a single client.

    The account is mutated only through ``apply``. Every precondition is
    checked before any field changes, so a rejected operation leaves the
    account exactly as it was.
    """

    def __init__(self, client: int):
        self.client = client
        self.available = Decimal(0)
        self.held = Decimal(0)
        self.locked = False
        self.processed: Dict[int, Union[Deposit, Withdrawal]] = {}
        self.disputed: Set[int] = set()

    @property
    def total(self) -> Decimal:
        with localcontext(BALANCE_CONTEXT):
            return self.available + self.held

    def is_locked(self) -> bool:
        return self.locked

    def apply(self, operation: Operation) -> None:
        """Apply one operation, raising an AccountError if it is rejected."""
        if operation.client != self.client:
            raise ValueError(
                f"Operation for client {operation.client} routed to account {self.client}"
            )

        if self.locked:
            raise AccountLocked(self.client, operation.tx)

        if operation.type in RECORDED_TYPES:
            if operation.tx in self.processed:
                raise AlreadyProcessed(self.client, operation.tx, "Transaction already processed")
        elif operation.tx not in self.processed:
            raise DisputedTransactionNotFound(self.client, operation.tx, "Referenced transaction not found")

        with localcontext(BALANCE_CONTEXT):
            if operation.type == OperationType.deposit:
                self._deposit(operation)
            elif operation.type == OperationType.withdrawal:
                self._withdraw(operation)
            elif operation.type == OperationType.dispute:
                self._dispute(operation)
            elif operation.type == OperationType.resolve:
                self._resolve(operation)
            elif operation.type == OperationType.chargeback:
                self._chargeback(operation)
            else:
                raise TypeError(f"Unsupported operation type: {operation.type!r}")

        self._check_invariants()

    def _deposit(self, operation: Deposit) -> None:
        logger.debug("Deposit", client_id=self.client, tx_id=operation.tx, amount=str(operation.amount))

        self.available += operation.amount
        self.processed[operation.tx] = operation

    def _withdraw(self, operation: Withdrawal) -> None:
        logger.debug("Withdrawal", client_id=self.client, tx_id=operation.tx, amount=str(operation.amount))

        if operation.amount > self.available:
            raise InsufficientFunds(
                self.client,
                operation.tx,
                f"Requested {operation.amount}, available {self.available}",
            )

        self.available -= operation.amount
        self.processed[operation.tx] = operation

    def _dispute(self, operation: Dispute) -> None:
        logger.debug("Dispute", client_id=self.client, tx_id=operation.tx)

        if operation.tx in self.disputed:
            raise AlreadyProcessed(self.client, operation.tx, "Transaction already under dispute")

        referenced = self.processed[operation.tx]
        # Disputing a withdrawal is accepted but has no effect
        if isinstance(referenced, Deposit):
            self.available -= referenced.amount
            self.held += referenced.amount
            self.disputed.add(operation.tx)

    def _resolve(self, operation: Resolve) -> None:
        logger.debug("Resolve", client_id=self.client, tx_id=operation.tx)

        referenced = self._close_dispute(operation)
        if isinstance(referenced, Deposit):
            self.available += referenced.amount
            self.held -= referenced.amount

    def _chargeback(self, operation: Chargeback) -> None:
        logger.debug("Chargeback", client_id=self.client, tx_id=operation.tx)

        referenced = self._close_dispute(operation)
        if isinstance(referenced, Deposit):
            self.held -= referenced.amount
            self.locked = True

    def _close_dispute(self, operation: Union[Resolve, Chargeback]) -> Union[Deposit, Withdrawal]:
        if operation.tx not in self.disputed:
            raise DisputedTransactionNotFound(self.client, operation.tx, "Transaction is not under dispute")
        self.disputed.remove(operation.tx)
        return self.processed[operation.tx]

    def _check_invariants(self) -> None:
        if self.held < 0:
            raise InvariantViolation(f"[client {self.client}] negative held balance {self.held}")
        for tx in self.disputed:
            if not isinstance(self.processed.get(tx), Deposit):
                raise InvariantViolation(
                    f"[client {self.client}] disputed tx {tx} is not a processed deposit"
                )

    def snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(
            client=self.client,
            available=self.available,
            held=self.held,
            total=self.total,
            locked=self.locked,
        )
