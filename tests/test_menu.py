import pytest

import menu
from errors import InvalidInput, NotFound


def test_initialize_defaults_is_idempotent():
    assert menu.initialize_defaults() == (11, 0)
    assert menu.initialize_defaults() == (0, 11)

    grouped = menu.list_menu()
    assert [f["name"] for f in grouped["flavors"]] == ["Matcha", "Strawberry", "Thai Tea"]
    assert len(grouped["toppings"]) == 5
    assert {s["name"]: s["price"] for s in grouped["sizes"]} == {"L": 20, "M": 10, "S": 0}


def test_save_item_upserts_by_type_and_name():
    item, created = menu.save_item({"itemType": "flavor", "name": "Mango", "price": 70})
    assert created is True
    assert item["isActive"] is True
    assert item["stock"] is None
    assert item["available"] is True

    again, created = menu.save_item({"itemType": "flavor", "name": "mango", "price": 75, "isActive": False})
    assert created is False
    assert again["id"] == item["id"]
    assert again["price"] == 75
    assert again["isActive"] is False
    assert again["available"] is False


@pytest.mark.parametrize("data", [
    {"itemType": "drink", "name": "Cola", "price": 20},
    {"itemType": "flavor", "name": "", "price": 20},
    {"itemType": "flavor", "name": "Mango", "price": -1},
    {"itemType": "flavor", "name": "Mango", "price": "free"},
])
def test_save_item_validation(data):
    with pytest.raises(InvalidInput):
        menu.save_item(data)


def test_update_and_delete_item():
    item, _ = menu.save_item({"itemType": "topping", "name": "Mochi", "price": 15})
    updated = menu.update_item(item["id"], {"price": 20, "description": "Chewy", "stock": 4})
    assert updated["price"] == 20
    assert updated["description"] == "Chewy"
    assert updated["stock"] == 4

    menu.delete_item(item["id"])
    with pytest.raises(NotFound):
        menu.get_item(item["id"])
    with pytest.raises(NotFound):
        menu.update_item(item["id"], {"price": 1})


def test_list_menu_filters(seeded_menu):
    menu.update_item(menu.list_items("flavor")[0]["id"], {"isActive": False})
    assert len(menu.list_menu(is_active="true")["flavors"]) == 2
    grouped = menu.list_menu(item_type="size")
    assert grouped["flavors"] == [] and len(grouped["sizes"]) == 3


def test_adjust_stock_add_and_set():
    item, _ = menu.save_item({"itemType": "topping", "name": "Mochi", "price": 15})
    assert menu.adjust_stock(item["id"], "add", 5) == 5
    assert menu.adjust_stock(item["id"], "add", -9) == 0
    assert menu.get_item(item["id"])["available"] is False
    assert menu.adjust_stock(item["id"], "set", -3) == 0
    assert menu.adjust_stock(item["id"], "set", 8) == 8

    with pytest.raises(InvalidInput):
        menu.adjust_stock(item["id"], "multiply", 2)
    with pytest.raises(NotFound):
        menu.adjust_stock(9999, "set", 1)


def test_available_items_and_stock_overview(seeded_menu):
    flavors = {i["name"]: i for i in menu.list_items("flavor")}
    menu.adjust_stock(flavors["Matcha"]["id"], "set", 0)
    menu.adjust_stock(flavors["Thai Tea"]["id"], "set", 3)

    available = {i["name"]: i for i in menu.available_items("flavor")}
    assert available["Matcha"]["available"] is False
    assert available["Matcha"]["quantity"] == 0
    assert available["Strawberry"]["quantity"] is None

    overview = menu.stock_overview()
    assert [i["name"] for i in overview["lowStock"]] == ["Thai Tea"]
    assert overview["outOfStock"] == 1
    assert len(overview["flavors"]) == 3
