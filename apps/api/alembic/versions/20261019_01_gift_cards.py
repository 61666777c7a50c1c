"""Gift card index table.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


gift_card_status_enum = sa.Enum("pending", "redeemed", "expired", name="gift_card_status_enum")
gift_card_template_enum = sa.Enum("default", "birthday", "holiday", name="gift_card_template_enum")


def upgrade() -> None:
    op.create_table(
        "gift_cards",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("redemption_code", sa.String(length=19), nullable=True),
        sa.Column("code_hash", sa.String(length=66), nullable=False),
        sa.Column("amount", sa.String(), nullable=False),
        sa.Column("creator", sa.String(length=42), nullable=False),
        sa.Column("recipient_email", sa.String(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("template", gift_card_template_enum, nullable=False, server_default="default"),
        sa.Column("status", gift_card_status_enum, nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_by", sa.String(length=42), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("transaction_hash", sa.String(length=66), nullable=True),
        sa.Column("redemption_block_number", sa.BigInteger(), nullable=True),
        sa.Column("redemption_transaction_hash", sa.String(length=66), nullable=True),
        sa.UniqueConstraint("redemption_code", name="uq_gift_cards_redemption_code"),
        sa.UniqueConstraint("code_hash", name="uq_gift_cards_code_hash"),
    )

    op.create_index("ix_gift_cards_recipient_email", "gift_cards", ["recipient_email"])
    op.create_index("ix_gift_cards_status", "gift_cards", ["status"])
    op.create_index("ix_gift_cards_block_number", "gift_cards", ["block_number"])
    op.create_index("ix_gift_cards_created_at", "gift_cards", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_gift_cards_created_at", table_name="gift_cards")
    op.drop_index("ix_gift_cards_block_number", table_name="gift_cards")
    op.drop_index("ix_gift_cards_status", table_name="gift_cards")
    op.drop_index("ix_gift_cards_recipient_email", table_name="gift_cards")
    op.drop_table("gift_cards")

    bind = op.get_bind()
    gift_card_status_enum.drop(bind, checkfirst=True)
    gift_card_template_enum.drop(bind, checkfirst=True)
