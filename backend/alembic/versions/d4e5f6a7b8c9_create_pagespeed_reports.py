"""create pagespeed_reports table

Revision ID: d4e5f6a7b8c9
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'd4e5f6a7b8c9'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('pagespeed_reports',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('public_id', sa.String(length=36), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('form_factor', sa.String(length=20), nullable=False, server_default='ALL'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('result_location', sa.Text(), nullable=False, server_default=''),
        sa.Column('result_payload', sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql'), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name='ck_pagespeed_reports_status',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pagespeed_reports_public_id', 'pagespeed_reports', ['public_id'], unique=True)
    op.create_index('ix_pagespeed_reports_created_at', 'pagespeed_reports', ['created_at'])
    op.create_index('ix_pagespeed_reports_url_created_at', 'pagespeed_reports', ['url', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_pagespeed_reports_url_created_at', table_name='pagespeed_reports')
    op.drop_index('ix_pagespeed_reports_created_at', table_name='pagespeed_reports')
    op.drop_index('ix_pagespeed_reports_public_id', table_name='pagespeed_reports')
    op.drop_table('pagespeed_reports')
