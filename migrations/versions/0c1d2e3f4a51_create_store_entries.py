"""create_store_entries

Create the `store_entries` key-value table backing every workspace collection.

Revision ID: 0c1d2e3f4a51
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0c1d2e3f4a51"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "store_entries" not in existing_tables:
        op.create_table(
            "store_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("collection", sa.String(length=64), nullable=False),
            sa.Column("key", sa.String(length=255), nullable=False),
            sa.Column("payload_json", sa.Text(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("collection", "key", name="uq_store_collection_key"),
        )
        op.create_index("idx_store_collection", "store_entries", ["collection"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "store_entries" in existing_tables:
        op.drop_index("idx_store_collection", table_name="store_entries")
        op.drop_table("store_entries")
