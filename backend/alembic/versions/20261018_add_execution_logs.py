"""add execution logs table

Revision ID: 20261018_execution_logs
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.sql import func

# revision identifiers, used by Alembic.
revision: str = "20261018_execution_logs"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "execution_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("target", sa.String(length=32), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("error_kind", sa.String(length=32), nullable=True),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=True),
        sa.Column("max_attempts", sa.Integer(), nullable=True),
        sa.Column("terminal", sa.Boolean(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("gate_level", sa.String(length=8), nullable=True),
        sa.Column("gate_metrics", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=func.now()),
    )
    op.create_index("ix_execution_logs_correlation_id", "execution_logs", ["correlation_id"])
    op.create_index("ix_execution_logs_target_status", "execution_logs", ["target", "status"])
    op.create_index("ix_execution_logs_fingerprint", "execution_logs", ["fingerprint"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_execution_logs_fingerprint", table_name="execution_logs")
    op.drop_index("ix_execution_logs_target_status", table_name="execution_logs")
    op.drop_index("ix_execution_logs_correlation_id", table_name="execution_logs")
    op.drop_table("execution_logs")
