"""
Key-value entry model for the SQL-backed store.
One row per key; rows past expires_at are treated as absent.
"""

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base

from message_tracker.utils.time import utc_now_naive

Base = declarative_base()


class KVEntry(Base):
    """SQLAlchemy model for stored key-value pairs."""

    __tablename__ = "kv_entries"

    key = Column(String(512), primary_key=True)
    value = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    created_at = Column(DateTime, default=utc_now_naive)

    def __repr__(self) -> str:
        return f"<KVEntry(key={self.key}, expires_at={self.expires_at})>"
