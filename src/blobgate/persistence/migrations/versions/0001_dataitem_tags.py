"""Tag index foundation: dataitem_tags table.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

One row per (item, tag pair) observation. Rows are append-only; the latest
created_at per (tag_key, tag_value, dataitem_id) is authoritative.

Indexes:
- (tag_key, tag_value, dataitem_id) for equality filters
- (created_at DESC, dataitem_id DESC) for keyset pagination
"""

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the dataitem_tags table and its lookup indexes."""

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS dataitem_tags (
            dataitem_id VARCHAR NOT NULL,
            content_type VARCHAR NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL,
            tag_key VARCHAR NOT NULL,
            tag_value VARCHAR NOT NULL
        )
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_dataitem_tags_tag_lookup
        ON dataitem_tags (tag_key, tag_value, dataitem_id)
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_dataitem_tags_recency
        ON dataitem_tags (created_at DESC, dataitem_id DESC)
        """
    )


def downgrade() -> None:
    """Drop the dataitem_tags table."""
    op.execute("DROP INDEX IF EXISTS ix_dataitem_tags_recency")
    op.execute("DROP INDEX IF EXISTS ix_dataitem_tags_tag_lookup")
    op.execute("DROP TABLE IF EXISTS dataitem_tags")
