"""
User records owned by the platform's auth service.

This core only reads them: a room's resident and a booking's requester
must be existing users.
"""

from sqlalchemy import Column, Integer, String, Boolean

from lumiq.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default="student")  # student, admin
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
