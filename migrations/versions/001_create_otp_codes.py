"""Create otp_codes table.

Revision ID: 001_otp_codes
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_otp_codes"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "otp_codes",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("phone_raw", sa.String(32), nullable=False),
        sa.Column("phone_normalized", sa.String(40), nullable=False),
        sa.Column("purpose", sa.String(50), nullable=False),
        sa.Column("code_hash", sa.CHAR(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "attempts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "attempts <= max_attempts", name="ck_otp_codes_attempts_ceiling"
        ),
    )

    op.create_index(
        "ix_otp_codes_lineage_created",
        "otp_codes",
        ["phone_normalized", "purpose", "created_at"],
    )
    op.create_index(
        "ix_otp_codes_expires_at",
        "otp_codes",
        ["expires_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_otp_codes_expires_at", table_name="otp_codes")
    op.drop_index("ix_otp_codes_lineage_created", table_name="otp_codes")
    op.drop_table("otp_codes")
