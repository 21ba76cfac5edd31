from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
from typing import Annotated, Literal, Union
from datetime import datetime
from decimal import Decimal


# Maximum number of fractional digits accepted for an amount
AMOUNT_PRECISION = 4
# Maximum number of significant digits in an amount
MAX_AMOUNT_DIGITS = 28

MAX_CLIENT_ID = 65535
MAX_TRANSACTION_ID = 4294967295


class OperationType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"


class _OperationBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    client: int = Field(..., ge=0, le=MAX_CLIENT_ID, description="Client (account) identifier")
    tx: int = Field(..., ge=0, le=MAX_TRANSACTION_ID, description="Transaction identifier")

    def client_id(self) -> int:
        return self.client

    def transaction_id(self) -> int:
        return self.tx


class _AmountOperation(_OperationBase):
    amount: Decimal = Field(
        ...,
        ge=0,
        max_digits=MAX_AMOUNT_DIGITS,
        decimal_places=AMOUNT_PRECISION,
        allow_inf_nan=False,
        description="Exact decimal amount",
    )


class Deposit(_AmountOperation):
    type: Literal[OperationType.deposit] = OperationType.deposit


class Withdrawal(_AmountOperation):
    type: Literal[OperationType.withdrawal] = OperationType.withdrawal


class Dispute(_OperationBase):
    type: Literal[OperationType.dispute] = OperationType.dispute


class Resolve(_OperationBase):
    type: Literal[OperationType.resolve] = OperationType.resolve


class Chargeback(_OperationBase):
    type: Literal[OperationType.chargeback] = OperationType.chargeback


Operation = Annotated[
    Union[Deposit, Withdrawal, Dispute, Resolve, Chargeback],
    Field(discriminator="type"),
]

# Operations that are stored and may be referenced later by the dispute family
RECORDED_TYPES = (OperationType.deposit, OperationType.withdrawal)


class AccountSnapshot(BaseModel):
    client: int = Field(..., description="Client identifier")
    available: Decimal = Field(..., description="Funds available for withdrawal")
    held: Decimal = Field(..., description="Funds held by open disputes")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="True once a chargeback has occurred")


class RunSummary(BaseModel):
    accounts_count: int = Field(0, description="Number of accounts touched")
    operations_applied: int = Field(0, description="Operations applied successfully")
    operations_rejected: int = Field(0, description="Operations rejected by an account")
    records_skipped: int = Field(0, description="Input records rejected by the ingestion adapter")
    finished_at: datetime = Field(default_factory=datetime.now)
