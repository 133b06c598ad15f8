import pytest

import menu
import menu_codes
import orders
import store
from conftest import expire_code
from errors import CodeUnavailable, Conflict, InvalidInput, NotFound

pytestmark = pytest.mark.usefixtures("seeded_menu")


def _item(item_type, name):
    with store.get_conn() as conn:
        return menu.item_to_dict(menu.find_item(conn, item_type, name))


def _place(size="M", flavor="Matcha", toppings=("Apple", "Cherry"), **kw):
    code = menu_codes.create_code(size)["code"]
    return orders.create_order(code, flavor, list(toppings), **kw)


def test_create_order_prices_and_redeems_code():
    code = menu_codes.create_code("L")["code"]
    order = orders.create_order(code.lower(), "matcha", ["Apple", {"name": "Cherry"}, "apple"],
                                special_instructions="  less sugar ", customer_name="Nok")

    assert order["status"] == orders.PENDING
    assert order["customerCode"] == code
    assert order["cupSize"] == "L"
    assert order["shavedIce"] == {"flavor": "Matcha"}
    assert [t["name"] for t in order["toppings"]] == ["Apple", "Cherry"]
    assert order["pricing"] == {"flavorPrice": 60, "sizePrice": 20, "toppingsPrice": 20, "total": 100}
    assert order["specialInstructions"] == "less sugar"
    assert order["customerName"] == "Nok"
    assert order["orderId"].startswith("ORD-") and order["orderId"].endswith(f"{order['id']:04d}")
    assert order["nextStatus"] == orders.PREPARING

    mc = menu_codes.get_code(code)
    assert mc["isUsed"] is True
    assert mc["orderId"] == order["id"]


def test_code_cannot_be_used_twice():
    code = menu_codes.create_code("S")["code"]
    orders.create_order(code, "Matcha")
    with pytest.raises(CodeUnavailable, match="already been used"):
        orders.create_order(code, "Thai Tea")
    assert len(orders.list_orders()) == 1


def test_expired_code_rejected():
    code = menu_codes.create_code("S")["code"]
    expire_code(code)
    with pytest.raises(CodeUnavailable, match="expired"):
        orders.create_order(code, "Matcha")


def test_invalid_choices_leave_code_unused():
    code = menu_codes.create_code("S")["code"]
    with pytest.raises(InvalidInput):
        orders.create_order(code, "Durian")
    with pytest.raises(InvalidInput):
        orders.create_order(code, "Matcha", ["Apple", "Cherry", "Blueberry", "Raspberry", "Strawberry", "Mango"])

    menu.update_item(_item("flavor", "Matcha")["id"], {"isActive": False})
    with pytest.raises(Conflict, match="not available"):
        orders.create_order(code, "Matcha")

    assert menu_codes.get_code(code)["isUsed"] is False
    assert orders.list_orders() == []


def test_stock_is_consumed_and_rolled_back():
    flavor = _item("flavor", "Thai Tea")
    topping = _item("topping", "Apple")
    menu.adjust_stock(flavor["id"], "set", 2)
    menu.adjust_stock(topping["id"], "set", 1)

    _place(flavor="Thai Tea", toppings=["Apple"])
    assert menu.get_item(flavor["id"])["stock"] == 1
    assert menu.get_item(topping["id"])["stock"] == 0

    code = menu_codes.create_code("S")["code"]
    with pytest.raises(Conflict, match="not available"):
        orders.create_order(code, "Thai Tea", ["Apple"])
    assert menu.get_item(flavor["id"])["stock"] == 1
    assert menu_codes.get_code(code)["isUsed"] is False


def test_missing_size_item_prices_as_zero():
    with store.get_conn() as conn:
        conn.execute("DELETE FROM menu_items WHERE item_type='size'")
        conn.commit()
    order = _place(size="L", toppings=())
    assert order["pricing"]["sizePrice"] == 0
    assert order["pricing"]["total"] == 60


def test_status_flow():
    order = _place()
    for expected in (orders.PREPARING, orders.READY, orders.COMPLETED):
        order = orders.update_status(order["id"], expected.lower())
        assert order["status"] == expected
    assert order["completedAt"]
    assert order["nextStatus"] is None

    with pytest.raises(Conflict):
        orders.update_status(order["id"], orders.CANCELLED)


@pytest.mark.parametrize("current,new,allowed", [
    ("Pending", "Preparing", True),
    ("Pending", "Ready", False),
    ("Pending", "Completed", False),
    ("Preparing", "Pending", False),
    ("Ready", "Completed", True),
    ("Ready", "Cancelled", True),
    ("Ready", "Ready", False),
    ("Completed", "Cancelled", False),
    ("Cancelled", "Pending", False),
])
def test_can_transition(current, new, allowed):
    assert orders.can_transition(current, new) is allowed


def test_update_status_errors():
    order = _place()
    with pytest.raises(InvalidInput):
        orders.update_status(order["id"], "Shipped")
    with pytest.raises(Conflict):
        orders.update_status(order["id"], "Ready")
    with pytest.raises(NotFound):
        orders.update_status(9999, "Preparing")


def test_cancel_restores_tracked_stock():
    flavor = _item("flavor", "Strawberry")
    menu.adjust_stock(flavor["id"], "set", 3)
    order = _place(flavor="Strawberry", toppings=["Cherry"])
    assert menu.get_item(flavor["id"])["stock"] == 2

    order = orders.update_status(order["id"], "Cancelled")
    assert order["status"] == orders.CANCELLED
    assert menu.get_item(flavor["id"])["stock"] == 3
    assert _item("topping", "Cherry")["stock"] is None


def test_track_by_code():
    order = _place()
    assert orders.get_order_by_code(order["customerCode"].lower())["id"] == order["id"]

    unused = menu_codes.create_code("S")["code"]
    with pytest.raises(NotFound, match="No order found"):
        orders.get_order_by_code(unused)
    with pytest.raises(NotFound, match="Invalid code"):
        orders.get_order_by_code("ZZZZZ")
    with pytest.raises(InvalidInput):
        orders.get_order_by_code("  ")


def test_list_orders_by_status():
    a = _place()
    b = _place()
    orders.update_status(b["id"], "Preparing")

    assert [o["id"] for o in orders.list_orders()] == [b["id"], a["id"]]
    assert [o["id"] for o in orders.list_orders("pending")] == [a["id"]]
    with pytest.raises(InvalidInput):
        orders.list_orders("lost")


def test_order_stats():
    a = _place(flavor="Matcha", toppings=())
    _place(flavor="Matcha", toppings=())
    c = _place(flavor="Thai Tea", toppings=())
    orders.update_status(c["id"], "Cancelled")
    orders.update_status(a["id"], "Preparing")

    stats = orders.order_stats()
    assert stats["todayOrders"] == 3
    assert stats["todayRevenue"] == 140
    assert stats["pendingOrders"] == 1
    assert stats["statusCounts"]["Cancelled"] == 1
    assert stats["popularFlavors"] == [{"_id": "Matcha", "count": 2}]


def _stale_validation(monkeypatch, code):
    stale = menu_codes.get_code(code)
    monkeypatch.setattr(orders.menu_codes, "validate_code", lambda _code: stale)


def test_losing_redemption_race_keeps_single_order(monkeypatch):
    flavor = _item("flavor", "Thai Tea")
    menu.adjust_stock(flavor["id"], "set", 5)
    code = menu_codes.create_code("S")["code"]
    _stale_validation(monkeypatch, code)

    orders.create_order(code, "Thai Tea")
    with pytest.raises(CodeUnavailable, match="already been used"):
        orders.create_order(code, "Thai Tea")

    assert len(orders.list_orders()) == 1
    assert menu.get_item(flavor["id"])["stock"] == 4


def test_failed_redemption_rolls_back_order_and_stock(monkeypatch):
    flavor = _item("flavor", "Thai Tea")
    topping = _item("topping", "Apple")
    menu.adjust_stock(flavor["id"], "set", 5)
    menu.adjust_stock(topping["id"], "set", 5)
    code = menu_codes.create_code("S")["code"]
    _stale_validation(monkeypatch, code)

    first = orders.create_order(code, "Thai Tea", ["Apple"])
    with store.get_conn() as conn:
        conn.execute("DELETE FROM orders WHERE id=?", (first["id"],))
        conn.commit()

    with pytest.raises(CodeUnavailable, match="already been used"):
        orders.create_order(code, "Thai Tea", ["Apple"])

    assert orders.list_orders() == []
    assert menu.get_item(flavor["id"])["stock"] == 4
    assert menu.get_item(topping["id"])["stock"] == 4
    assert menu_codes.get_code(code)["orderId"] == first["id"]
