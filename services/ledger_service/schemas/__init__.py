"""Ledger Service schemas package.

Re-exports all schemas so routers import from one place.

IMPORTANT: Every schema class must be listed here.
"""

from services.ledger_service.schemas.balance import (  # noqa: F401
    BalanceBreakdownResponse,
    BalanceResponse,
    ChainBreak,
    LedgerChainResponse,
)
from services.ledger_service.schemas.payout import (  # noqa: F401
    CompletePayoutRequest,
    PayoutCreateRequest,
    PayoutListResponse,
    PayoutOutcome,
    PayoutResponse,
    ProcessPayoutsResponse,
    RejectPayoutRequest,
    ReleaseClaimsResponse,
)
from services.ledger_service.schemas.referral import (  # noqa: F401
    ApplyReferralRequest,
    CampaignStatsUpdate,
    DistributeRewardsResponse,
    ManualRewardRequest,
    ManualRewardResponse,
    RecalculateStatsRequest,
    RecalculateStatsResponse,
    ReconcileResponse,
    ReconcileResult,
    ReferralItemError,
    ReferralItemResult,
    ReferralOutcomeResponse,
    SignupEventRequest,
    SignupEventResponse,
)
from services.ledger_service.schemas.transaction import (  # noqa: F401
    TransactionListResponse,
    TransactionResponse,
)

__all__ = [
    # Balance
    "BalanceBreakdownResponse",
    "BalanceResponse",
    "ChainBreak",
    "LedgerChainResponse",
    # Payouts
    "CompletePayoutRequest",
    "PayoutCreateRequest",
    "PayoutListResponse",
    "PayoutOutcome",
    "PayoutResponse",
    "ProcessPayoutsResponse",
    "RejectPayoutRequest",
    "ReleaseClaimsResponse",
    # Referrals & campaigns
    "ApplyReferralRequest",
    "CampaignStatsUpdate",
    "DistributeRewardsResponse",
    "ManualRewardRequest",
    "ManualRewardResponse",
    "RecalculateStatsRequest",
    "RecalculateStatsResponse",
    "ReconcileResponse",
    "ReconcileResult",
    "ReferralItemError",
    "ReferralItemResult",
    "ReferralOutcomeResponse",
    "SignupEventRequest",
    "SignupEventResponse",
    # Transactions
    "TransactionListResponse",
    "TransactionResponse",
]
