"""Internal service-to-service ledger endpoints.

Called by other platform services with a service-role JWT, not by
frontend clients.
"""

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_service_role
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.ledger_service.schemas import SignupEventRequest, SignupEventResponse
from services.ledger_service.services.campaign_rewards import (
    update_campaign_referral_stats,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/internal/ledger", tags=["internal-ledger"])


@router.post("/signup-events", response_model=SignupEventResponse)
async def record_signup_event(
    body: SignupEventRequest,
    service: AuthUser = Depends(require_service_role),
    db: AsyncSession = Depends(get_async_db),
):
    """Count a completed signup against the user's campaign code."""
    result = await update_campaign_referral_stats(db, body.user_id)
    logger.info(
        "Signup event for %s from %s: recorded=%s",
        body.user_id,
        service.user_id,
        result["recorded"],
    )
    return SignupEventResponse(**result)
