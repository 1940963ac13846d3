"""
Repository layer for message rows.
"""
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from chatrelay.core.memory.models import Message


def require_active_session(db: Session) -> None:
    """Raise if session is closed; prevents use-after-close."""
    if not db.is_active:
        raise RuntimeError("Session already closed; do not use a session outside its scope.")


def to_naive_utc(value: datetime) -> datetime:
    """SQLite has no timezone support; rows hold naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MessageRepository:
    """Repository for chat message operations."""

    @staticmethod
    def create(db: Session, name: str, message: str, created_at: datetime) -> Message:
        """Insert one message. The caller's session scope commits."""
        require_active_session(db)
        row = Message(name=name, message=message, created_at=to_naive_utc(created_at))
        db.add(row)
        db.flush()
        return row

    @staticmethod
    def get_recent(db: Session, limit: int = 10) -> List[Message]:
        """Most recent messages, newest first."""
        require_active_session(db)
        return (
            db.query(Message)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )
