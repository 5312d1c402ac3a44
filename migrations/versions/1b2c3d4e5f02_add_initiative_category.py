"""add_initiative_category

BAU initiatives are grouped by a free-text category.

Revision ID: 1b2c3d4e5f02
Revises: 0a1b2c3d4e01
Create Date: 2025-02-03 10:15:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "1b2c3d4e5f02"
down_revision = "0a1b2c3d4e01"
branch_labels = None
depends_on = None


def _columns(table):
    return {c["name"] for c in sa_inspect(op.get_bind()).get_columns(table)}


def upgrade():
    if "category" not in _columns("initiatives"):
        with op.batch_alter_table("initiatives") as batch_op:
            batch_op.add_column(sa.Column("category", sa.String(length=100), nullable=True))


def downgrade():
    if "category" in _columns("initiatives"):
        with op.batch_alter_table("initiatives") as batch_op:
            batch_op.drop_column("category")
