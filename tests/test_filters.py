import pytest

from factories import make_order
from seller_orders.filters import filter_by_status, search_orders, status_counts
from seller_orders.models import OrderStatus


@pytest.fixture
def orders():
    return [
        make_order(order_id=1, status=OrderStatus.PENDING, customer_name="Asha Verma", phone="9876543210"),
        make_order(order_id=2, status=OrderStatus.PROCESSING, customer_name="Ravi Kumar", phone="9123456780"),
        make_order(order_id=12, status=OrderStatus.PENDING, customer_name="Meera Nair", phone="9000011111"),
        make_order(order_id=21, status=OrderStatus.DELIVERED, customer_name="asha k", phone="9555500000"),
    ]


@pytest.mark.parametrize("status", [s.value for s in OrderStatus])
def test_filter_returns_exactly_the_matching_subset(orders, status):
    result = filter_by_status(orders, status)

    assert result == [o for o in orders if o.status.value == status]


def test_filter_pending(orders):
    assert [o.id for o in filter_by_status(orders, "pending")] == [1, 12]


def test_filter_accepts_enum_member(orders):
    assert [o.id for o in filter_by_status(orders, OrderStatus.DELIVERED)] == [21]


def test_filter_all_keeps_everything(orders):
    assert filter_by_status(orders, "all") == orders
    assert filter_by_status(orders, None) == orders


def test_filter_on_empty_list_is_empty():
    assert filter_by_status([], "delivered") == []


def test_unknown_status_matches_nothing(orders):
    assert filter_by_status(orders, "refunded") == []


def test_search_by_customer_name_is_case_insensitive(orders):
    assert [o.id for o in search_orders(orders, "ASHA")] == [1, 21]


def test_search_by_order_id_and_phone(orders):
    assert [o.id for o in search_orders(orders, "12")] == [2, 12]
    assert [o.id for o in search_orders(orders, "91234")] == [2]


def test_blank_search_keeps_everything(orders):
    assert search_orders(orders, "  ") == orders


def test_status_counts_cover_every_status(orders):
    counts = status_counts(orders)

    assert counts["pending"] == 2
    assert counts["processing"] == 1
    assert counts["delivered"] == 1
    assert counts["cancelled"] == 0
    assert set(counts) == {s.value for s in OrderStatus}
