"""Balance and ledger audit schemas."""

from decimal import Decimal

from pydantic import BaseModel


class BalanceResponse(BaseModel):
    """Ledger balance plus the derived withdrawable amount."""

    user_id: str
    ledger_balance: Decimal
    cached_balance: Decimal
    available_balance: Decimal


class BalanceBreakdownResponse(BaseModel):
    user_id: str
    booking_earnings: Decimal
    referral_earnings: Decimal
    campaign_earnings: Decimal
    completed_withdrawals: Decimal
    in_flight_withdrawals: Decimal
    available: Decimal


class ChainBreak(BaseModel):
    sequence: int
    issue: str
    expected: str
    actual: str


class LedgerChainResponse(BaseModel):
    user_id: str
    ok: bool
    entries: int
    final_balance: Decimal
    cached_balance: Decimal
    cache_in_sync: bool
    breaks: list[ChainBreak]
