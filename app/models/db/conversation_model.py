import uuid

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.database import Base


class ConversationModel(Base):
    """SQLAlchemy model for conversations table."""

    __tablename__ = "conversations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    # Advanced by every message insert, never moved backwards
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    messages = relationship(
        "MessageModel",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    participants = relationship(
        "ParticipantModel",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Constraints (enforced by database CHECK constraints in the migration)
    # last_activity_at >= created_at
