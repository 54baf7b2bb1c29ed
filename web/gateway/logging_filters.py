"""Logging filters that copy request context onto log records.

Formatters can then reference ``%(request_id)s``, ``%(actor_id)s`` and
``%(actor_role)s`` without any change to individual log statements. A
hyphen is used when no request is being served.
"""

from logging import Filter, LogRecord

from .middleware import ACTOR_ID_CTX, ACTOR_ROLE_CTX, REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach ``request_id`` from the ContextVar set by ``RequestIdMiddleware``."""

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


class ActorFilter(Filter):
    """Attach ``actor_id`` and ``actor_role`` set by ``ActorMiddleware``."""

    def filter(self, record: LogRecord) -> bool:
        record.actor_id = ACTOR_ID_CTX.get()
        record.actor_role = ACTOR_ROLE_CTX.get()
        return True
