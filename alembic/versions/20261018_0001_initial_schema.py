"""Initial schema: sync job records and daily portfolio snapshots.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "wallet_sync_jobs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("wallet_id", sa.String(80), nullable=False),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sync_options", sa.JSON(), nullable=False),
        sa.Column("queued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("sync_result", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_kind", sa.String(20), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_wallet_sync_jobs_wallet", "wallet_sync_jobs", ["wallet_id"])
    op.create_index("idx_wallet_sync_jobs_status", "wallet_sync_jobs", ["status"])

    op.create_table(
        "portfolio_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("wallet_id", sa.String(80), nullable=False),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("total_value", sa.Numeric(30, 10), nullable=False),
        sa.Column("day_change", sa.Numeric(30, 10), nullable=True),
        sa.Column("day_change_percent", sa.Numeric(20, 10), nullable=True),
        sa.Column("positions_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("chains_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "wallet_id", "snapshot_date", name="uq_portfolio_snapshots_wallet_date"
        ),
    )
    op.create_index(
        "idx_portfolio_snapshots_wallet_date",
        "portfolio_snapshots",
        ["wallet_id", "snapshot_date"],
    )


def downgrade() -> None:
    op.drop_index("idx_portfolio_snapshots_wallet_date", table_name="portfolio_snapshots")
    op.drop_table("portfolio_snapshots")
    op.drop_index("idx_wallet_sync_jobs_status", table_name="wallet_sync_jobs")
    op.drop_index("idx_wallet_sync_jobs_wallet", table_name="wallet_sync_jobs")
    op.drop_table("wallet_sync_jobs")
