"""
Dorm records owned by the dorm management service.

Only the columns needed for room ownership checks live here; address,
geolocation and rating data belong to that service.
"""

from sqlalchemy import Column, Integer, String, ForeignKey

from lumiq.db.base import Base, TimestampMixin


class Dorm(Base, TimestampMixin):
    __tablename__ = "dorms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Dorm(id={self.id}, name={self.name}, admin={self.admin_id})>"
