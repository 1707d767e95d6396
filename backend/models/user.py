"""User model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base


class User(Base):
    """Represents a patient account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    image = Column(String, default="")
    phone = Column(String)
