"""
SQLAlchemy models for the chat relay database.

A single `message` table holds recent chat messages. The integer primary key
is internal; clients only ever see name, message and time.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

NAME_MAX_LEN = 32
MESSAGE_MAX_LEN = 512


class Message(Base):
    """One accepted chat message."""
    __tablename__ = "message"

    id = Column(Integer, primary_key=True)
    name = Column(String(NAME_MAX_LEN), nullable=False)
    message = Column(String(MESSAGE_MAX_LEN), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        # Storage-level bounds; length() counts characters in SQLite
        CheckConstraint(f"length(name) BETWEEN 1 AND {NAME_MAX_LEN}", name="ck_message_name_len"),
        CheckConstraint(f"length(message) BETWEEN 1 AND {MESSAGE_MAX_LEN}", name="ck_message_message_len"),
        Index("ix_message_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} name={self.name!r} created_at={self.created_at}>"
