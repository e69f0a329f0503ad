import uuid

from sqlalchemy import Column, DateTime, String, Text, Uuid

from app.clock import utcnow
from app.database import Base


class UserModel(Base):
    """SQLAlchemy model for profiles table.

    Rows are created by the external auth collaborator; this service reads
    them and only writes presence.
    """

    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(255), unique=True, nullable=False)
    avatar_url = Column(Text)
    status = Column(String(10), nullable=False, default="offline")
    last_seen_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Constraints (enforced by database CHECK constraints in the migration)
    # status IN ('online', 'offline', 'away')
