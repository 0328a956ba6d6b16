import uuid
from sqlalchemy import Column, String, JSON
from models.base import Base, TimestampMixin

class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(30), nullable=False)
    # lower-cased username; carries the case-insensitive uniqueness
    username_key = Column(String(30), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    profile = Column(JSON, nullable=False, default=dict)
    preferences = Column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<User {self.username} ({self.id})>"
