"""Terminal-local keyed entries (activity log persistence)

Revision ID: 20261019_local_entries
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_local_entries"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "local_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", name="uq_local_entries_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("local_entries", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_local_entries_key"), ["key"], unique=False)


def downgrade():
    with op.batch_alter_table("local_entries", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_local_entries_key"))

    op.drop_table("local_entries")
