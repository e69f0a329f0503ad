import uuid

from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.database import Base


class ParticipantModel(Base):
    """SQLAlchemy model for conversation_participants table."""

    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "user_id", name="uq_participant_conversation_user"
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    last_read_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    conversation = relationship("ConversationModel", back_populates="participants")
    profile = relationship("UserModel")
