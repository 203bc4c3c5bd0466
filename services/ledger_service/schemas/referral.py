"""Referral and campaign schemas."""

import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class ApplyReferralRequest(BaseModel):
    referral_code: Optional[str] = Field(None, max_length=64)


class ReferralOutcomeResponse(BaseModel):
    success: bool
    code: str
    message: str
    reward_amount: Optional[Decimal] = None
    referral_id: Optional[uuid.UUID] = None


class ReferralItemResult(BaseModel):
    referral_id: str
    status: str
    reason: Optional[str] = None
    user_id: Optional[str] = None
    amount: Optional[Decimal] = None
    new_balance: Optional[Decimal] = None


class ReferralItemError(BaseModel):
    referral_id: str
    code: str
    error: str


class DistributeRewardsResponse(BaseModel):
    success: bool = True
    rewarded_count: int
    completed_count: int
    skipped_count: int
    error_count: int
    results: list[ReferralItemResult]
    errors: list[ReferralItemError]


class ManualRewardRequest(BaseModel):
    email: EmailStr
    campaign_code: str = Field(..., min_length=1, max_length=64)


class ManualRewardResponse(BaseModel):
    success: bool = True
    user_id: str
    email: str
    referral_id: uuid.UUID
    amount: Decimal
    old_balance: Decimal
    new_balance: Decimal
    message: str


class RecalculateStatsRequest(BaseModel):
    campaign_code: Optional[str] = None


class CampaignStatsUpdate(BaseModel):
    campaign_code: str
    previous_total_signups: int
    total_signups: int
    total_companions: int
    total_seekers: int


class RecalculateStatsResponse(BaseModel):
    success: bool = True
    updates: list[CampaignStatsUpdate]


class ReconcileResult(BaseModel):
    referral_id: str
    status: str
    error: Optional[str] = None


class ReconcileResponse(BaseModel):
    success: bool = True
    resumed: int
    flagged: int
    results: list[ReconcileResult]


class SignupEventRequest(BaseModel):
    """Sent by the identity service after a user finishes signup."""

    user_id: str


class SignupEventResponse(BaseModel):
    success: bool = True
    recorded: bool
    reason: Optional[str] = None
    campaign_code: Optional[str] = None
