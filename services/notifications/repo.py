"""SQLAlchemy repository for user notifications.

One ``notifications`` table holds every message sent to a user by the
orders service. The connection is configured with ``DATABASE_URL``; when it
is not set, the PostgreSQL URL is built from the ``DB_*`` variables.
"""

import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, create_engine, select, update
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "notifications-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "notifications")
DB_USER = os.getenv("DB_USER", "notifications_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "notifications-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """A message for one user.

    Attributes:
        user_id: External id of the recipient.
        type: Machine-readable event type, e.g. ``ORDER_DELIVERED``.
        order_id: Related order id, if any.
        read: Whether the user has opened it.
    """

    __tablename__ = "notifications"
    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id = mapped_column(String(64), nullable=False, index=True)
    title = mapped_column(String(200), nullable=False)
    message = mapped_column(Text, nullable=False)
    type = mapped_column(String(64), nullable=False)
    order_id = mapped_column(String(64), nullable=True)
    read = mapped_column(Boolean, nullable=False, default=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


def init_db():
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    with Session(engine) as s:
        yield s


class NotificationsRepo:
    """Create, list and mark notifications."""

    def create(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str,
        order_id: Optional[str] = None,
    ) -> Notification:
        with get_session() as s:
            obj = Notification(user_id=user_id, title=title, message=message, type=type, order_id=order_id)
            s.add(obj)
            s.commit()
            s.refresh(obj)
            s.expunge(obj)
            return obj

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        """Return the user's notifications, newest first."""
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        with get_session() as s:
            rows = s.execute(stmt).scalars().all()
            s.expunge_all()
            return list(rows)

    def mark_read(self, notification_id: int) -> bool:
        """Mark one notification as read.

        Returns:
            bool: False if the notification does not exist.
        """
        with get_session() as s:
            res = s.execute(update(Notification).where(Notification.id == notification_id).values(read=True))
            s.commit()
            return res.rowcount == 1
