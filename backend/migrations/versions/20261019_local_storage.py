"""Local key-value storage for the offline snapshot and sync queue

Revision ID: 20261019_local_storage
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_local_storage"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "local_storage",
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade():
    op.drop_table("local_storage")
