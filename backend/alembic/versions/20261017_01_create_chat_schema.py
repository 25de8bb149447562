"""create chat schema

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_01"
down_revision = None
branch_labels = None
depends_on = None


CHAT_KIND = sa.Enum("direct", "group", "channel", name="chat_kind")
MESSAGE_TYPE = sa.Enum("text", "image", "video", "file", "voice", "gif", "sticker", name="message_type")
FRIEND_REQUEST_STATUS = sa.Enum("pending", "accepted", "declined", name="friend_request_status")


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("login", sa.String(length=64), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("avatar_url", sa.String(length=512), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("icon_url", sa.String(length=512), nullable=True),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="SET NULL"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "community_members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("community_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        _created_at("joined_at"),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_member"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "chats",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("kind", CHAT_KIND, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("community_id", sa.Integer(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "(kind = 'channel' AND community_id IS NOT NULL) "
            "OR (kind <> 'channel' AND community_id IS NULL)",
            name="ck_chats_membership_source",
        ),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_chats_community", "chats", ["community_id"])

    op.create_table(
        "chat_members",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("chat_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("nickname", sa.String(length=64), nullable=True),
        _created_at("joined_at"),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("chat_id", "user_id", name="uq_chat_member"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("chat_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", MESSAGE_TYPE, nullable=False, server_default="text"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("reply_to_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reply_to_id"], ["messages.id"], ondelete="SET NULL"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_messages_chat_created_at", "messages", ["chat_id", "created_at"])

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("emoji", sa.String(length=32), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_reactions_message", "message_reactions", ["message_id"])

    op.create_table(
        "message_receipts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("message_id", "user_id", name="uq_message_receipt"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_receipts_user", "message_receipts", ["user_id"])

    op.create_table(
        "pinned_messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("chat_id", sa.Integer(), nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("pinned_by_id", sa.Integer(), nullable=True),
        sa.Column("pinned_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pinned_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("message_id", name="uq_pinned_message"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_pins_chat_pinned_at", "pinned_messages", ["chat_id", "pinned_at"])

    op.create_table(
        "community_invites",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("community_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("code", name="uq_community_invite_code"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "push_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("device_type", sa.String(length=32), nullable=False, server_default="unknown"),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "token", name="uq_push_token"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "friend_links",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("addressee_id", sa.Integer(), nullable=False),
        sa.Column("status", FRIEND_REQUEST_STATUS, nullable=False, server_default="pending"),
        _created_at(),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["addressee_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("requester_id", "addressee_id", name="uq_friend_link_pair"),
        mysql_charset="utf8mb4",
    )


def downgrade() -> None:
    op.drop_table("friend_links")
    op.drop_table("push_tokens")
    op.drop_table("community_invites")
    op.drop_index("ix_pins_chat_pinned_at", table_name="pinned_messages")
    op.drop_table("pinned_messages")
    op.drop_index("ix_receipts_user", table_name="message_receipts")
    op.drop_table("message_receipts")
    op.drop_index("ix_reactions_message", table_name="message_reactions")
    op.drop_table("message_reactions")
    op.drop_index("ix_messages_chat_created_at", table_name="messages")
    op.drop_table("messages")
    op.drop_table("chat_members")
    op.drop_index("ix_chats_community", table_name="chats")
    op.drop_table("chats")
    op.drop_table("community_members")
    op.drop_table("communities")
    op.drop_table("users")

    bind = op.get_bind()
    FRIEND_REQUEST_STATUS.drop(bind, checkfirst=True)
    MESSAGE_TYPE.drop(bind, checkfirst=True)
    CHAT_KIND.drop(bind, checkfirst=True)
