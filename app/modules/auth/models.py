from sqlalchemy import Column, String, Boolean
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.database.database import Base
from app.common.mixins import TimestampMixin

class User(Base, TimestampMixin):
    """Operator of the back office. Owned by the auth service; sales only reference it."""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
