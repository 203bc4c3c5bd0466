"""create_ledger_tables

Revision ID: b7e41c2d9a10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "b7e41c2d9a10"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column(
            "user_role",
            _enum("user_role_enum", "companion", "seeker", "admin"),
            nullable=False,
        ),
        sa.Column("wallet_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("ledger_version", sa.Integer(), nullable=False),
        sa.Column("onboarding_completed", sa.Boolean(), nullable=False),
        sa.Column("my_referral_code", sa.String(), nullable=True),
        sa.Column("campaign_referral_code", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_my_referral_code", "users", ["my_referral_code"])
    op.create_index(
        "uq_users_my_referral_code_upper",
        "users",
        [sa.text("upper(my_referral_code)")],
        unique=True,
    )
    op.create_index(
        "ix_users_campaign_referral_code", "users", ["campaign_referral_code"]
    )

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(), nullable=False),
        sa.Column(
            "transaction_type",
            _enum(
                "transaction_type_enum",
                "referral_bonus",
                "campaign_bonus",
                "payout",
                "refund",
            ),
            nullable=False,
        ),
        sa.Column(
            "direction",
            _enum("transaction_direction_enum", "credit", "debit"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_before", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status",
            _enum("transaction_status_enum", "pending", "completed", "failed"),
            nullable=False,
        ),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("service_source", sa.String(), nullable=False),
        sa.Column("reference_type", sa.String(), nullable=True),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("initiated_by", sa.String(), nullable=True),
        sa.Column("txn_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        sa.UniqueConstraint(
            "user_id", "sequence", name="uq_wallet_transactions_user_sequence"
        ),
    )
    op.create_index(
        "ix_wallet_transactions_user_id", "wallet_transactions", ["user_id"]
    )
    op.create_index(
        "ix_wallet_transactions_idempotency_key",
        "wallet_transactions",
        ["idempotency_key"],
        unique=True,
    )
    op.create_index(
        "ix_wallet_transactions_reference",
        "wallet_transactions",
        ["reference_type", "reference_id"],
    )

    op.create_table(
        "referrals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "referrer_id", sa.String(), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("referee_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("referral_code", sa.String(), nullable=False),
        sa.Column(
            "referral_type",
            _enum("referral_type_enum", "user_referral", "campaign_signup"),
            nullable=False,
        ),
        sa.Column(
            "status",
            _enum("referral_status_enum", "pending", "completed", "rewarded"),
            nullable=False,
        ),
        sa.Column("reward_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("rewarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "referee_id", "referral_type", name="uq_referrals_referee_type"
        ),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])
    op.create_index("ix_referrals_referee_id", "referrals", ["referee_id"])
    op.create_index(
        "ix_referrals_status_created", "referrals", ["status", "created_at"]
    )

    op.create_table(
        "campaign_referrals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("campaign_name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("referral_reward_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "referral_reward_type",
            _enum("reward_type_enum", "none", "wallet_credit", "discount"),
            nullable=False,
        ),
        sa.Column("total_signups", sa.Integer(), nullable=False),
        sa.Column("total_companions", sa.Integer(), nullable=False),
        sa.Column("total_seekers", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_campaign_referrals_code", "campaign_referrals", ["code"], unique=True
    )

    op.create_table(
        "payouts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "companion_id", sa.String(), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("requested_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status",
            _enum(
                "payout_status_enum",
                "pending",
                "approved",
                "processing",
                "rejected",
                "completed",
            ),
            nullable=False,
        ),
        sa.Column(
            "payment_method",
            _enum("payout_payment_method_enum", "upi", "bank_transfer"),
            nullable=False,
        ),
        sa.Column("payment_details", sa.JSON(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejection_code", sa.String(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("processed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by", sa.String(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_by", sa.String(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_payout_amount_non_negative"),
    )
    op.create_index("ix_payouts_companion_id", "payouts", ["companion_id"])
    op.create_index("ix_payouts_status_created", "payouts", ["status", "created_at"])
    op.create_index(
        "ix_payouts_companion_status", "payouts", ["companion_id", "status"]
    )

    op.create_table(
        "ledger_notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column(
            "notification_type",
            _enum(
                "notification_type_enum",
                "referral_reward",
                "campaign_reward",
                "payout_approved",
                "payout_rejected",
                "payout_completed",
            ),
            nullable=False,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "status",
            _enum("notification_status_enum", "pending", "sent", "failed"),
            nullable=False,
        ),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_ledger_notifications_user_id", "ledger_notifications", ["user_id"]
    )
    op.create_index(
        "ix_ledger_notifications_status_created",
        "ledger_notifications",
        ["status", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("ledger_notifications")
    op.drop_table("payouts")
    op.drop_table("campaign_referrals")
    op.drop_table("referrals")
    op.drop_table("wallet_transactions")
    op.drop_table("users")

    bind = op.get_bind()
    for name in (
        "notification_status_enum",
        "notification_type_enum",
        "payout_payment_method_enum",
        "payout_status_enum",
        "reward_type_enum",
        "referral_status_enum",
        "referral_type_enum",
        "transaction_status_enum",
        "transaction_direction_enum",
        "transaction_type_enum",
        "user_role_enum",
    ):
        sa.Enum(name=name).drop(bind, checkfirst=True)
