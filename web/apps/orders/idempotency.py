"""Idempotency keys for order creation.

A client retrying ``POST /api/orders/`` with the same ``Idempotency-Key``
gets the stored response instead of a second order. Reusing a key with a
different payload, or for a different caller, is a conflict.
"""

import hashlib
import json
from typing import Optional

from django.db import IntegrityError, transaction

from .errors import ConflictError
from .models import IdempotencyKey


def request_hash(payload: dict, actor_id: Optional[str] = None) -> str:
    """SHA-256 of the canonical JSON of ``payload`` scoped to ``actor_id``."""
    body = json.dumps({"actor": actor_id, "payload": payload}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict, actor_id: Optional[str] = None):
    """Claim ``key`` for this request or load the earlier record.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, record)``. ``existing`` is
        True when an earlier request with the same payload already used the
        key; its stored response should be replayed.

    Raises:
        ConflictError: ``IDEMPOTENCY_CONFLICT`` when the key was used with a
            different payload.
    """
    h = request_hash(payload, actor_id)
    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ConflictError(
                "IDEMPOTENCY_CONFLICT", "This Idempotency-Key was already used with a different request."
            )
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None) -> None:
    """Store the response to replay for later retries with the same key."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])


def release(rec: IdempotencyKey) -> None:
    """Forget a key whose request failed with a retryable error."""
    IdempotencyKey.objects.filter(pk=rec.pk).delete()
