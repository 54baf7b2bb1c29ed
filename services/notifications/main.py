"""Notifications service API built with FastAPI.

Stores the notifications emitted by the orders service and lets users list
and acknowledge them. Validation is done with Pydantic models; persistence
is delegated to ``repo.NotificationsRepo`` (SQLAlchemy).
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from repo import NotificationsRepo, engine, init_db

logger = logging.getLogger("notifications")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


def wait_for_db(timeout: float = 30.0):
    """Poll the database until it accepts connections, then create tables."""
    deadline = time.time() + timeout
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    wait_for_db()
    yield


app = FastAPI(title="Notifications Service", lifespan=lifespan)


class NotificationIn(BaseModel):
    """Request body for storing a notification.

    Attributes:
        user_id: External id of the recipient.
        title: Short title shown in lists.
        message: Human-readable body.
        type: Event type, e.g. ``ORDER_ASSIGNED``.
        order_id: Related order, if any.
    """

    user_id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    type: str = Field(min_length=1, max_length=64)
    order_id: Optional[str] = Field(default=None, max_length=64)


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    message: str
    type: str
    order_id: Optional[str] = None
    read: bool
    created_at: datetime


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/notifications", response_model=NotificationOut, status_code=201)
def create_notification(req: NotificationIn):
    obj = NotificationsRepo().create(**req.model_dump())
    logger.info(
        "notification stored",
        extra={"user_id": obj.user_id, "notification_type": obj.type, "order_id": obj.order_id},
    )
    return NotificationOut.model_validate(obj)


@app.get("/users/{user_id}/notifications", response_model=list[NotificationOut])
def list_notifications(user_id: str, unread_only: bool = False, limit: int = 50):
    """List a user's notifications, newest first.

    Args:
        user_id: External id of the recipient.
        unread_only: Only return notifications not yet marked as read.
        limit: Maximum number of rows, capped at 200.
    """
    rows = NotificationsRepo().list_for_user(user_id, unread_only=unread_only, limit=max(1, min(limit, 200)))
    return [NotificationOut.model_validate(r) for r in rows]


@app.post("/notifications/{notification_id}/read", status_code=204)
def mark_read(notification_id: int):
    if not NotificationsRepo().mark_read(notification_id):
        raise HTTPException(status_code=404, detail="NOTIFICATION_NOT_FOUND")


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
