import uuid

import pytest
from django.db.models import Min

from apps.orders import attempts
from apps.orders.domain import AttemptStatus
from apps.orders.errors import ConflictError, NotFoundError


@pytest.mark.django_db
def test_attempt_numbers_are_contiguous_from_one(make_order):
    order = make_order()
    for status in (AttemptStatus.ATTEMPTED, AttemptStatus.CUSTOMER_NOT_AVAILABLE, AttemptStatus.SUCCESSFUL):
        attempts.append(order.pk, status)
    assert [a.attempt_number for a in attempts.history(order.pk)] == [1, 2, 3]


@pytest.mark.django_db
def test_numbering_is_per_order(make_order):
    first, second = make_order(), make_order()
    attempts.append(first.pk, AttemptStatus.ATTEMPTED)
    attempts.append(first.pk, AttemptStatus.FAILED)
    attempt = attempts.append(second.pk, AttemptStatus.ATTEMPTED)
    assert attempt.attempt_number == 1


@pytest.mark.django_db
def test_empty_reason_and_notes_are_stored_as_null(make_order, courier):
    order = make_order()
    attempt = attempts.append(order.pk, AttemptStatus.FAILED, actor_id=courier.pk, reason="", notes="")
    assert attempt.reason is None and attempt.notes is None
    assert attempt.delivery_man_id == courier.pk


@pytest.mark.django_db
def test_unknown_order_is_rejected():
    with pytest.raises(NotFoundError):
        attempts.append(uuid.uuid4(), AttemptStatus.ATTEMPTED)


@pytest.mark.django_db
def test_attempts_are_immutable(make_order):
    attempt = attempts.append(make_order().pk, AttemptStatus.ATTEMPTED)
    attempt.notes = "edited"
    with pytest.raises(RuntimeError):
        attempt.save()
    with pytest.raises(RuntimeError):
        attempt.delete()


@pytest.mark.django_db
def test_colliding_attempt_number_is_a_conflict(monkeypatch, make_order):
    order = make_order()
    attempts.append(order.pk, AttemptStatus.ATTEMPTED)
    attempts.append(order.pk, AttemptStatus.FAILED)

    # a writer that read a stale maximum computes a number already taken
    monkeypatch.setattr(attempts, "Max", Min)
    with pytest.raises(ConflictError) as e:
        attempts.append(order.pk, AttemptStatus.OTHER)
    assert e.value.code == "DUPLICATE_ATTEMPT"
    assert [a.attempt_number for a in attempts.history(order.pk)] == [1, 2]
