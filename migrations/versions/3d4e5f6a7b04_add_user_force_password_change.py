"""add_user_force_password_change

New and reset accounts must change their password on next login. The
existing admin account is exempted.

Revision ID: 3d4e5f6a7b04
Revises: 2c3d4e5f6a03
Create Date: 2025-04-14 08:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "3d4e5f6a7b04"
down_revision = "2c3d4e5f6a03"
branch_labels = None
depends_on = None


def _columns(table):
    return {c["name"] for c in sa_inspect(op.get_bind()).get_columns(table)}


def upgrade():
    if "force_password_change" in _columns("users"):
        return
    with op.batch_alter_table("users") as batch_op:
        batch_op.add_column(
            sa.Column("force_password_change", sa.Boolean(), nullable=False, server_default=sa.true())
        )
    op.execute(sa.text("UPDATE users SET force_password_change = :flag WHERE username = 'admin'")
               .bindparams(sa.bindparam("flag", False, type_=sa.Boolean())))


def downgrade():
    if "force_password_change" in _columns("users"):
        with op.batch_alter_table("users") as batch_op:
            batch_op.drop_column("force_password_change")
