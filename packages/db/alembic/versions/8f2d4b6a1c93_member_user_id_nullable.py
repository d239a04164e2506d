# This project was developed with assistance from AI tools.
"""member user_id nullable

Staff may register a member who has no identity-provider account yet.

Revision ID: 8f2d4b6a1c93
Revises: 3c1a9e7d2b40
Create Date: 2026-10-19 14:03:27.118645

"""

import sqlalchemy as sa
from alembic import op

revision = "8f2d4b6a1c93"
down_revision = "3c1a9e7d2b40"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.alter_column("members", "user_id", existing_type=sa.String(255), nullable=True)


def downgrade() -> None:
    op.alter_column("members", "user_id", existing_type=sa.String(255), nullable=False)
