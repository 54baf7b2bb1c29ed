import pytest

from apps.orders import codes
from apps.orders.models import Order, OrderCodeSequence


def test_city_code_maps_known_cities_and_defaults_to_dakhla():
    assert codes.city_code("Dakhla") == "DA"
    assert codes.city_code("  العيون ") == "LA"
    assert codes.city_code("بوجدور") == "BO"
    assert codes.city_code("Marrakech") == "DA"
    assert codes.city_code(None) == "DA"


def test_city_aliases_cover_arabic_and_latin_names():
    assert codes.city_aliases(" Dakhla ") == {"Dakhla", "dakhla", "الداخلة"}
    assert codes.city_aliases("العيون") == {"laayoune", "العيون"}
    assert codes.city_aliases("Tan-Tan") == {"Tan-Tan"}


def test_format_code_pads_to_six_digits():
    assert codes.format_code("BO", 7) == "OR-BO-000007"


@pytest.mark.django_db
def test_first_code_for_a_city_starts_at_one():
    assert codes.next_code("Laayoune") == "OR-LA-000001"
    assert codes.next_code("Laayoune") == "OR-LA-000002"


@pytest.mark.django_db
def test_continues_after_highest_issued_code(merchant):
    Order.objects.create(order_code="OR-DA-000042", payment_method="COD", city="Dakhla", merchant=merchant)
    assert codes.next_code("Dakhla") == "OR-DA-000043"


@pytest.mark.django_db
def test_cities_have_independent_sequences(merchant):
    Order.objects.create(order_code="OR-DA-000042", payment_method="COD", city="Dakhla", merchant=merchant)
    assert codes.next_code("Boujdour") == "OR-BO-000001"
    assert OrderCodeSequence.objects.get(city_code="BO").last_value == 1


@pytest.mark.django_db
def test_sequence_never_goes_backwards():
    OrderCodeSequence.objects.create(city_code="DA", last_value=10)
    assert codes.next_code("Dakhla") == "OR-DA-000011"
