"""create domain_qualities table

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create domain_qualities for per-domain quality statistics.

    Global exclusion comes from low average quality/relevance; the
    per-provider flags come from repeated scrape failures.
    """
    op.create_table(
        "domain_qualities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("is_excluded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_excluded_tavily", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_excluded_exa", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("exclude_reason", sa.Text(), nullable=True),
        sa.Column("avg_quality_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("avg_relevance_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_sources", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tavily_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tavily_scrape_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exa_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("exa_scrape_failures", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_domain_qualities_domain", "domain_qualities", ["domain"], unique=True)
    op.create_index("ix_domain_qualities_is_excluded", "domain_qualities", ["is_excluded"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_domain_qualities_is_excluded", table_name="domain_qualities")
    op.drop_index("ix_domain_qualities_domain", table_name="domain_qualities")
    op.drop_table("domain_qualities")
