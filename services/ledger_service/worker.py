"""ARQ worker for scheduled ledger jobs."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def task_process_payouts(ctx: dict):
    from services.ledger_service.tasks import run_payout_processing

    logger.info("Running: process_payouts")
    await run_payout_processing(worker_id=f"arq:{ctx.get('job_id', 'cron')}")


async def task_distribute_referral_rewards(ctx: dict):
    from services.ledger_service.tasks import run_reward_distribution

    logger.info("Running: distribute_referral_rewards")
    await run_reward_distribution()


async def task_reconcile_stuck_referrals(ctx: dict):
    from services.ledger_service.tasks import run_referral_reconciliation

    logger.info("Running: reconcile_stuck_referrals")
    await run_referral_reconciliation()


async def task_release_stale_payout_claims(ctx: dict):
    from services.ledger_service.tasks import run_stale_claim_release

    logger.info("Running: release_stale_payout_claims")
    await run_stale_claim_release()


async def task_deliver_notifications(ctx: dict):
    from services.ledger_service.tasks import run_notification_delivery

    await run_notification_delivery()


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        task_process_payouts,
        task_distribute_referral_rewards,
        task_reconcile_stuck_referrals,
        task_release_stale_payout_claims,
        task_deliver_notifications,
    ]

    cron_jobs = [
        cron(task_process_payouts, minute={0, 15, 30, 45}, run_at_startup=True),
        cron(
            task_distribute_referral_rewards,
            minute={5, 20, 35, 50},
            run_at_startup=True,
        ),
        cron(task_reconcile_stuck_referrals, minute={10, 40}),
        cron(task_release_stale_payout_claims, minute={12, 42}),
        cron(task_deliver_notifications, second={0, 30}),
    ]
