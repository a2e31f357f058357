from decimal import Decimal
from typing import Literal

from pydantic import BaseModel


class OperationBase(BaseModel):
    # Gateways fill these in at execution time; simulated gateways and tests
    # may leave them empty.
    gateway: str = "unknown"
    transaction_hash: str | None = None
    transaction_chain_id: int | None = None


class SUPPLY(OperationBase):
    type: Literal["SUPPLY"] = "SUPPLY"
    asset: str
    amount: str


class BORROW(OperationBase):
    type: Literal["BORROW"] = "BORROW"
    asset: str
    amount: str


class REPAY(OperationBase):
    type: Literal["REPAY"] = "REPAY"
    asset: str
    amount: str


class WITHDRAW(OperationBase):
    type: Literal["WITHDRAW"] = "WITHDRAW"
    asset: str
    amount: str


class SWAP(OperationBase):
    type: Literal["SWAP"] = "SWAP"
    from_asset: str
    to_asset: str
    from_amount: str
    to_amount: str | None = None


class STAKE(OperationBase):
    type: Literal["STAKE"] = "STAKE"
    token: str
    amount: str


class UNSTAKE(OperationBase):
    type: Literal["UNSTAKE"] = "UNSTAKE"
    token: str
    amount: str


class BRIDGE(OperationBase):
    type: Literal["BRIDGE"] = "BRIDGE"
    token: str
    amount: str
    destination_chain_id: int
    message_id: str | None = None


class LendingPosition(BaseModel):
    collateral_asset: str
    collateral_size: Decimal
    debt_asset: str
    debt_size: Decimal
