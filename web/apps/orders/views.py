"""HTTP views for the orders app.

Views stay small: they check that an actor was forwarded by the gateway,
validate the body with a Pydantic DTO, delegate to ``OrderService`` (or the
transfers module) and shape the response with the read schemas.

Error mapping:
- Missing or unknown ``X-Actor-Id``/``X-Actor-Role`` → 401.
- DTO validation errors → 400 with ``{"detail": ...}``.
- ``OrderError`` subclasses → their ``status_code`` with
  ``{"detail": code, "message": ..., "retryable": bool}``.

Idempotency: ``POST /api/orders/`` honours an ``Idempotency-Key`` header.
The first request creates a record and stores its response; retries with the
same payload replay it with ``Idempotent-Replay: true``. Reusing the key with
a different payload returns 409.
"""

import logging

from django.core.paginator import Paginator
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import attempts, transfers
from . import notes as delivery_notes
from .errors import OrderError
from .idempotency import finalize, get_or_create_idempotent, release
from .repository import OrderRepository
from .schemas import (
    AttemptDTO,
    AttemptOut,
    CreateOrderDTO,
    DeliveryNoteDTO,
    DeliveryNoteOut,
    MoneyTransferDTO,
    OrderDetailDTO,
    OrderReadDTO,
    QuoteDTO,
    TotalsOut,
    TransitionDTO,
)
from .services import OrderService

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def error_response(exc: OrderError) -> Response:
    return Response(exc.as_dict(), status=exc.status_code)


def _detail(order) -> dict:
    return OrderDetailDTO.model_validate(order).model_dump(mode="json")


def _page_param(request, name: str, default: int) -> int:
    try:
        return max(1, int(request.GET.get(name, default)))
    except (TypeError, ValueError):
        return default


class ActorAPIView(APIView):
    """Base view: requires a forwarded actor and maps domain errors."""

    throttle_classes = [ScopedRateThrottle]

    def get_authenticate_header(self, request):
        return "Actor"

    def initial(self, request, *args, **kwargs):
        self.actor = getattr(request, "actor", None)
        if self.actor is None:
            raise NotAuthenticated("Missing or invalid X-Actor-Id / X-Actor-Role headers.")
        super().initial(request, *args, **kwargs)

    def handle_exception(self, exc):
        if isinstance(exc, OrderError):
            logger.info("request rejected", extra={"error_code": exc.code, "status_code": exc.status_code})
            return error_response(exc)
        if isinstance(exc, PydanticValidationError):
            return Response({"detail": exc.errors(include_url=False, include_context=False)}, status=status.HTTP_400_BAD_REQUEST)
        return super().handle_exception(exc)


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module; no actor required."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(ActorAPIView):
    """List visible orders or create a new one."""

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        qs = OrderRepository().list(
            self.actor,
            status=request.GET.get("status"),
            city=request.GET.get("city"),
        )
        page_size = min(_page_param(request, "page_size", 20), MAX_PAGE_SIZE)
        p = Paginator(qs, page_size)
        page_obj = p.get_page(_page_param(request, "page", 1))
        results = [OrderReadDTO.model_validate(o).model_dump(mode="json") for o in page_obj.object_list]
        return Response(
            {"count": p.count, "page": page_obj.number, "page_size": page_size, "results": results},
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        """Create an order.

        Returns:
            Response: 201 with the order detail; 200 with the stored body on
            an idempotent replay; 409 on key reuse with another payload;
            400 for malformed payloads; 403/404/422 for domain errors.
        """
        dto = CreateOrderDTO.model_validate(request.data)

        idem_key = request.headers.get("Idempotency-Key")
        rec = None
        if idem_key:
            existing, rec = get_or_create_idempotent(idem_key, request.data, self.actor.id)
            if existing:
                if not rec.response_status:
                    return Response(
                        {"detail": "IDEMPOTENCY_IN_PROGRESS", "retryable": True},
                        status=status.HTTP_409_CONFLICT,
                    )
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        try:
            order = OrderService().create_order(self.actor, dto)
        except OrderError as exc:
            if rec:
                if exc.retryable:
                    release(rec)
                else:
                    finalize(rec, exc.status_code, exc.as_dict())
            raise
        except Exception:
            if rec:
                release(rec)
            raise

        body = _detail(order)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.pk)
        return Response(body, status=status.HTTP_201_CREATED)


class OrderQuoteView(ActorAPIView):
    throttle_scope = "orders_create"

    def post(self, request):
        dto = QuoteDTO.model_validate(request.data)
        totals = OrderService().quote(self.actor, dto)
        out = TotalsOut(
            original_total=totals.original_total,
            discount_amount=totals.discount_amount,
            final_total=totals.final_total,
        )
        return Response(out.model_dump(mode="json"), status=status.HTTP_200_OK)


class RetrieveOrderView(ActorAPIView):
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = OrderRepository().get(self.actor, oid)
        return Response(_detail(order), status=status.HTTP_200_OK)


class OrderTransitionView(ActorAPIView):
    throttle_scope = "orders_transition"

    def post(self, request, oid):
        dto = TransitionDTO.model_validate(request.data)
        order = OrderService().transition(
            oid,
            dto.status,
            self.actor,
            notes=dto.notes,
            reason=dto.reason,
            location=dto.location,
            delivery_man_id=dto.delivery_man_id,
            delivery_date=dto.delivery_date,
            override_city=dto.override_city,
        )
        return Response(_detail(order), status=status.HTTP_200_OK)


class OrderAcceptView(ActorAPIView):
    throttle_scope = "orders_transition"

    def post(self, request, oid):
        order = OrderService().accept_order(oid, self.actor, location=request.data.get("location"))
        return Response(_detail(order), status=status.HTTP_200_OK)


class OrderAttemptsView(ActorAPIView):
    """Attempt timeline of an order, and logging of delivery tries."""

    def get_throttles(self):
        self.throttle_scope = "orders_detail" if self.request.method == "GET" else "orders_transition"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request, oid):
        order = OrderRepository().get(self.actor, oid)
        results = [AttemptOut.model_validate(a).model_dump(mode="json") for a in attempts.history(order.pk)]
        return Response({"order_code": order.order_code, "results": results}, status=status.HTTP_200_OK)

    def post(self, request, oid):
        dto = AttemptDTO.model_validate(request.data)
        attempt = OrderService().record_attempt(
            oid,
            self.actor,
            dto.status,
            reason=dto.reason,
            notes=dto.notes,
            location=dto.location,
        )
        return Response(AttemptOut.model_validate(attempt).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class OrderNotesView(ActorAPIView):
    """Delivery notes on an order: list the visible ones or add one."""

    def get_throttles(self):
        self.throttle_scope = "orders_detail" if self.request.method == "GET" else "orders_transition"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request, oid):
        found = delivery_notes.list_notes(oid, self.actor)
        results = [DeliveryNoteOut.model_validate(n).model_dump(mode="json") for n in found]
        return Response({"results": results}, status=status.HTTP_200_OK)

    def post(self, request, oid):
        dto = DeliveryNoteDTO.model_validate(request.data)
        note = delivery_notes.add_note(oid, self.actor, dto.content, is_private=dto.is_private)
        return Response(DeliveryNoteOut.model_validate(note).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class OrderNoteDetailView(ActorAPIView):
    throttle_scope = "orders_transition"

    def delete(self, request, oid, note_id):
        delivery_notes.delete_note(oid, note_id, self.actor)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MoneyTransfersView(ActorAPIView):
    throttle_scope = "orders_transition"

    def post(self, request):
        dto = MoneyTransferDTO.model_validate(request.data)
        transfer = transfers.record_transfer(
            self.actor,
            dto.amount,
            merchant_id=dto.merchant_id,
            delivery_man_id=dto.delivery_man_id,
            reference=dto.reference,
            note=dto.note,
        )
        return Response(
            {
                "id": transfer.pk,
                "amount": str(transfer.amount),
                "merchant_id": transfer.merchant_id,
                "delivery_man_id": transfer.delivery_man_id,
                "reference": transfer.reference,
            },
            status=status.HTTP_201_CREATED,
        )
