"""Technology lists for consultant matching

Revision ID: b2c3m4t5c602
Revises: a1m2k3t4p501
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "b2c3m4t5c602"
down_revision = "a1m2k3t4p501"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("problem_submissions") as batch_op:
        batch_op.add_column(sa.Column("technologies", sa.JSON(), nullable=True))
    with op.batch_alter_table("consultants") as batch_op:
        batch_op.add_column(sa.Column("specializations", sa.JSON(), nullable=True))


def downgrade():
    with op.batch_alter_table("consultants") as batch_op:
        batch_op.drop_column("specializations")
    with op.batch_alter_table("problem_submissions") as batch_op:
        batch_op.drop_column("technologies")
