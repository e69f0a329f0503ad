"""create chat schema

Revision ID: 4b1e7c2a9d10
Revises:
Create Date: 2026-10-18 09:12:40.118203

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4b1e7c2a9d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Step 1: Create tables (profiles may already exist, owned by auth)
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id UUID PRIMARY KEY,
            username VARCHAR(255) NOT NULL UNIQUE,
            avatar_url TEXT,
            status VARCHAR(10) NOT NULL DEFAULT 'offline' CHECK (status IN ('online', 'offline', 'away')),
            last_seen_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS conversations (
            id UUID PRIMARY KEY,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            last_activity_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            CHECK (last_activity_at >= created_at)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS conversation_participants (
            id UUID PRIMARY KEY,
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            last_read_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            joined_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_participant_conversation_user UNIQUE (conversation_id, user_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id UUID PRIMARY KEY,
            conversation_id UUID NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            sender_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            content TEXT NOT NULL CHECK (length(btrim(content)) > 0),
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            deleted_at TIMESTAMP WITH TIME ZONE,
            edited BOOLEAN NOT NULL DEFAULT FALSE,
            reply_to_id UUID REFERENCES messages(id) ON DELETE SET NULL
        )
    """)

    # Step 2: Create indexes
    op.execute('CREATE INDEX IF NOT EXISTS ix_conversations_last_activity_at ON conversations(last_activity_at DESC)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_conversation_participants_conversation_id ON conversation_participants(conversation_id)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_conversation_participants_user_id ON conversation_participants(user_id)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_messages_conversation_id ON messages(conversation_id)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_messages_sender_id ON messages(sender_id)')
    op.execute('CREATE INDEX IF NOT EXISTS ix_messages_conversation_created ON messages(conversation_id, created_at) WHERE deleted_at IS NULL')


def downgrade() -> None:
    """Downgrade schema."""
    # profiles belongs to the auth collaborator and is left in place
    op.execute('DROP TABLE IF EXISTS messages')
    op.execute('DROP TABLE IF EXISTS conversation_participants')
    op.execute('DROP TABLE IF EXISTS conversations')
