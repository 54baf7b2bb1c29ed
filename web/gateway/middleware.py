"""Gateway middleware: request correlation, payload limits and caller identity.

Authentication happens upstream. The gateway forwards the authenticated
caller in ``X-Actor-Id`` and ``X-Actor-Role``; ``ActorMiddleware`` turns
those headers into an ``Actor`` on ``request.actor`` (or None when they are
missing or invalid) and exposes it to log filters through context
variables.

Behavior contract for the request id:
- If the incoming request contains ``X-Request-Id``, that value is reused.
- Otherwise a new UUIDv4 is generated.
- The response carries the same id in ``X-Request-ID``.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from apps.orders.domain import Actor, ActorRole

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
ACTOR_ID_CTX = contextvars.ContextVar("actor_id", default="-")
ACTOR_ROLE_CTX = contextvars.ContextVar("actor_role", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    """Set a per-request identifier and echo it on the response.

    Attributes:
        HEADER (str): Incoming header, in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject ``/api/`` bodies larger than ``settings.API_MAX_BYTES`` with 413."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > settings.API_MAX_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)


class ActorMiddleware(MiddlewareMixin):
    """Attach the caller forwarded by the authentication gateway.

    ``request.actor`` is an ``Actor`` when both headers are present and the
    role is known, None otherwise. Views decide whether a missing actor is
    acceptable.
    """

    ID_HEADER = "HTTP_X_ACTOR_ID"
    ROLE_HEADER = "HTTP_X_ACTOR_ROLE"

    def process_request(self, request):
        actor_id = (request.META.get(self.ID_HEADER) or "").strip()
        role = (request.META.get(self.ROLE_HEADER) or "").strip().upper()
        actor = None
        if actor_id and role in ActorRole.__members__:
            actor = Actor(id=actor_id, role=ActorRole[role])
        request.actor = actor
        ACTOR_ID_CTX.set(actor.id if actor else "-")
        ACTOR_ROLE_CTX.set(actor.role.value if actor else "-")

    def process_response(self, request, response):
        ACTOR_ID_CTX.set("-")
        ACTOR_ROLE_CTX.set("-")
        return response
