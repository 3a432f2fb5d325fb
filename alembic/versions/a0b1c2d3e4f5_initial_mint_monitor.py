"""initial_mint_monitor

Create mints and fetch_log tables.

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "mints",
        sa.Column("address", sa.String(64), primary_key=True),
        sa.Column("tx_signature", sa.String(128), nullable=False),
        sa.Column("minted_at", sa.BigInteger(), nullable=False),
        sa.Column("discovered_at", sa.BigInteger(), nullable=False),
        sa.Column("token_program", sa.String(16), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("token_name", sa.String(255), nullable=True),
        sa.Column("token_symbol", sa.String(50), nullable=True),
        sa.Column("price_usd", sa.Float(), nullable=True),
        sa.Column("liquidity_usd", sa.Float(), nullable=True),
        sa.Column("market_cap_usd", sa.Float(), nullable=True),
        sa.Column("fdv_usd", sa.Float(), nullable=True),
        sa.Column("dex_url", sa.String(500), nullable=True),
        sa.Column("pair_address", sa.String(64), nullable=True),
        sa.Column("enriched_at", sa.BigInteger(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("idx_mints_status", "mints", ["status"])
    op.create_index("idx_mints_minted_at", "mints", ["minted_at"])
    op.create_index("idx_mints_enriched_at", "mints", ["enriched_at"])

    op.create_table(
        "fetch_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("started_at", sa.BigInteger(), nullable=False),
        sa.Column("completed_at", sa.BigInteger(), nullable=True),
        sa.Column("window_start", sa.BigInteger(), nullable=False),
        sa.Column("window_end", sa.BigInteger(), nullable=False),
        sa.Column("mints_discovered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mints_qualified", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("error", sa.Text(), nullable=True),
    )
    op.create_index("idx_fetch_log_status_window", "fetch_log", ["status", "window_end"])


def downgrade() -> None:
    op.drop_index("idx_fetch_log_status_window", table_name="fetch_log")
    op.drop_table("fetch_log")
    op.drop_index("idx_mints_enriched_at", table_name="mints")
    op.drop_index("idx_mints_minted_at", table_name="mints")
    op.drop_index("idx_mints_status", table_name="mints")
    op.drop_table("mints")
