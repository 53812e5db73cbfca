"""User model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base


class User(Base):
    """Represents a platform user: student, mentor or director."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    hashed_password = Column(String)
    role = Column(String, index=True)  # pastor/seminarian/mentor/director...

    @property
    def display_name(self) -> str:
        return self.name or self.email
