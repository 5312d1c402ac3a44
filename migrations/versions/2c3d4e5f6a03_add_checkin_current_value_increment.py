"""add_checkin_current_value_increment

Check-in items can report a current-value increment for initiatives and
key results that track a metric.

Revision ID: 2c3d4e5f6a03
Revises: 1b2c3d4e5f02
Create Date: 2025-03-10 14:40:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "2c3d4e5f6a03"
down_revision = "1b2c3d4e5f02"
branch_labels = None
depends_on = None


def _columns(table):
    return {c["name"] for c in sa_inspect(op.get_bind()).get_columns(table)}


def upgrade():
    if "current_value_increment" not in _columns("weekly_checkin_items"):
        with op.batch_alter_table("weekly_checkin_items") as batch_op:
            batch_op.add_column(sa.Column("current_value_increment", sa.Float(), nullable=True))


def downgrade():
    if "current_value_increment" in _columns("weekly_checkin_items"):
        with op.batch_alter_table("weekly_checkin_items") as batch_op:
            batch_op.drop_column("current_value_increment")
