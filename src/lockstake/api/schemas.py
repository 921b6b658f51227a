from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. The engine validates amounts,
lock modes and deposit ids again, so a schema never widens what it accepts.
"""

from typing import Optional

from pydantic import BaseModel, Field


class StakeRequest(BaseModel):
    account: str = Field(..., description="Staker account id")
    amount: int = Field(..., description="Principal to lock, in base units")
    lock_mode: int = Field(..., description="Lock tier index")


class UnstakeRequest(BaseModel):
    account: str = Field(..., description="Deposit owner")
    deposit_id: int = Field(..., description="Deposit index within the account")
    with_rewards: bool = Field(default=True, description="Pay accrued reward together with principal")


class ClaimRequest(BaseModel):
    account: str = Field(..., description="Deposit owner")
    deposit_id: int = Field(..., description="Deposit index within the account")


class EmergencyWithdrawRequest(BaseModel):
    account: str = Field(..., description="Deposit owner")
    deposit_id: int = Field(..., description="Deposit index within the account")


class RewardRateRequest(BaseModel):
    caller: str = Field(..., description="Must be the pool owner")
    rate: int = Field(..., description="New reward per tick")


class FundRequest(BaseModel):
    funder: str = Field(..., description="Wallet paying the reward funding")
    amount: int = Field(..., description="Amount moved into custody")


class RecoverRequest(BaseModel):
    caller: str = Field(..., description="Must be the pool owner")
    token: str = Field(..., description="Foreign token symbol")
    to: str = Field(..., description="Recipient")
    amount: int = Field(..., description="Amount to release")


class ClockAdvanceRequest(BaseModel):
    ticks: int = Field(default=0, ge=0)
    seconds: int = Field(default=0, ge=0)


class MintRequest(BaseModel):
    holder: str = Field(..., description="Wallet to credit")
    amount: int = Field(..., description="Amount to mint")
    token: Optional[str] = Field(default=None, description="Token symbol (defaults to the staked asset)")
