import logging

import store
from config import Config
from errors import InvalidInput, NotFound, Conflict

logger = logging.getLogger(__name__)

ITEM_TYPES = ("flavor", "topping", "size")

DEFAULT_MENU = [
    # Flavors
    {"itemType": "flavor", "name": "Strawberry", "price": 60, "description": "Sweet strawberry", "image": "/images/strawberry-ice.png"},
    {"itemType": "flavor", "name": "Thai Tea", "price": 60, "description": "Creamy Thai tea", "image": "/images/thai-tea-ice.png"},
    {"itemType": "flavor", "name": "Matcha", "price": 60, "description": "Green tea matcha", "image": "/images/matcha-ice.png"},
    # Toppings
    {"itemType": "topping", "name": "Apple", "price": 10, "description": "Fresh apple chunks", "image": "/images/apple.png"},
    {"itemType": "topping", "name": "Cherry", "price": 10, "description": "Sweet cherries", "image": "/images/cherry.png"},
    {"itemType": "topping", "name": "Blueberry", "price": 10, "description": "Juicy blueberries", "image": "/images/blueberry.png"},
    {"itemType": "topping", "name": "Raspberry", "price": 10, "description": "Tangy raspberries", "image": "/images/raspberry.png"},
    {"itemType": "topping", "name": "Strawberry", "price": 10, "description": "Fresh strawberries", "image": "/images/strawberry.png"},
    # Sizes
    {"itemType": "size", "name": "S", "price": 0, "description": "Small size"},
    {"itemType": "size", "name": "M", "price": 10, "description": "Medium size"},
    {"itemType": "size", "name": "L", "price": 20, "description": "Large size"},
]


def item_to_dict(row) -> dict:
    if not row:
        return None
    stock = row["stock"]
    return {
        "id": int(row["id"]),
        "itemType": row["item_type"],
        "name": row["name"],
        "price": int(row["price"]),
        "isActive": bool(row["is_active"]),
        "description": row["description"] or "",
        "image": row["image"] or "",
        "stock": None if stock is None else int(stock),
        "available": is_available(row),
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }

def is_available(row) -> bool:
    if not row["is_active"]:
        return False
    return row["stock"] is None or int(row["stock"]) > 0

# ================== Input cleaning ==================
def _clean_type(item_type):
    item_type = str(item_type or "").strip().lower()
    if item_type not in ITEM_TYPES:
        raise InvalidInput("itemType must be one of flavor, topping, size")
    return item_type

def _clean_price(price):
    try:
        price = int(price)
    except (TypeError, ValueError):
        raise InvalidInput("invalid price")
    if price < 0:
        raise InvalidInput("price must be >= 0")
    return price

def _clean_stock(stock):
    if stock is None:
        return None
    try:
        return max(0, int(stock))
    except (TypeError, ValueError):
        raise InvalidInput("invalid stock")

def _to_bool(v):
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)

# ================== Queries ==================
def get_item(item_id: int) -> dict:
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM menu_items WHERE id=?", (int(item_id),))
        row = c.fetchone()
    if not row:
        raise NotFound("Menu item not found")
    return item_to_dict(row)

def find_item(conn, item_type: str, name: str):
    c = conn.cursor()
    c.execute("SELECT * FROM menu_items WHERE item_type=? AND name=? COLLATE NOCASE", (item_type, name))
    return c.fetchone()

def list_items(item_type=None, is_active=None):
    where, params = [], []
    if item_type:
        where.append("item_type=?")
        params.append(_clean_type(item_type))
    if is_active is not None:
        where.append("is_active=?")
        params.append(1 if _to_bool(is_active) else 0)

    sql = "SELECT * FROM menu_items"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY name, id"
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute(sql, params)
        rows = c.fetchall()
    return [item_to_dict(r) for r in rows]

def list_menu(item_type=None, is_active=None) -> dict:
    items = list_items(item_type, is_active)
    return {
        "flavors": [i for i in items if i["itemType"] == "flavor"],
        "toppings": [i for i in items if i["itemType"] == "topping"],
        "sizes": [i for i in items if i["itemType"] == "size"],
    }

def available_items(item_type) -> list:
    out = []
    for i in list_items(item_type):
        out.append({
            "id": i["id"],
            "name": i["name"],
            "price": i["price"],
            "isActive": i["isActive"],
            "quantity": i["stock"],
            "available": i["available"],
        })
    return out

# ================== Mutations ==================
def save_item(data: dict) -> tuple:
    """Create or update the item identified by (itemType, name). Returns (item, created)."""
    data = data or {}
    item_type = _clean_type(data.get("itemType"))
    name = str(data.get("name") or "").strip()[:60]
    if not name:
        raise InvalidInput("name is required")
    price = _clean_price(data.get("price"))

    with store.get_conn() as conn:
        c = conn.cursor()
        existing = find_item(conn, item_type, name)
        if existing:
            c.execute("""
                UPDATE menu_items
                SET price=?, is_active=?, description=?, image=?, stock=?, updated_at=?
                WHERE id=?
            """, (
                price,
                1 if _to_bool(data.get("isActive", existing["is_active"])) else 0,
                str(data["description"] or "") if "description" in data else existing["description"],
                str(data["image"] or "") if "image" in data else existing["image"],
                _clean_stock(data["stock"]) if "stock" in data else existing["stock"],
                store.now_str(),
                existing["id"],
            ))
            item_id, created = existing["id"], False
        else:
            c.execute("""
                INSERT INTO menu_items (item_type, name, price, is_active, description, image, stock, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                item_type, name, price,
                1 if _to_bool(data.get("isActive", True)) else 0,
                str(data.get("description") or ""),
                str(data.get("image") or ""),
                _clean_stock(data.get("stock")),
                store.now_str(), store.now_str(),
            ))
            item_id, created = c.lastrowid, True
        conn.commit()

    logger.info(f"{'Created' if created else 'Updated'} menu item: {name} ({item_type})")
    return get_item(item_id), created

def update_item(item_id: int, data: dict) -> dict:
    data = data or {}
    sets, params = [], []
    if "price" in data:
        sets.append("price=?")
        params.append(_clean_price(data["price"]))
    if "isActive" in data:
        sets.append("is_active=?")
        params.append(1 if _to_bool(data["isActive"]) else 0)
    if "description" in data:
        sets.append("description=?")
        params.append(str(data["description"] or ""))
    if "image" in data:
        sets.append("image=?")
        params.append(str(data["image"] or ""))
    if "stock" in data:
        sets.append("stock=?")
        params.append(_clean_stock(data["stock"]))

    if not sets:
        return get_item(item_id)

    sets.append("updated_at=?")
    params.extend([store.now_str(), int(item_id)])
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute(f"UPDATE menu_items SET {', '.join(sets)} WHERE id=?", params)
        conn.commit()
        if c.rowcount == 0:
            raise NotFound("Menu item not found")

    item = get_item(item_id)
    logger.info(f"Updated menu item: {item['name']}")
    return item

def delete_item(item_id: int) -> dict:
    item = get_item(item_id)
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("DELETE FROM menu_items WHERE id=?", (int(item_id),))
        conn.commit()
    logger.info(f"Deleted menu item: {item['name']}")
    return item

def initialize_defaults() -> tuple:
    created = updated = 0
    with store.get_conn() as conn:
        c = conn.cursor()
        for item in DEFAULT_MENU:
            existing = find_item(conn, item["itemType"], item["name"])
            if not existing:
                c.execute("""
                    INSERT INTO menu_items (item_type, name, price, is_active, description, image, stock, created_at, updated_at)
                    VALUES (?, ?, ?, 1, ?, ?, NULL, ?, ?)
                """, (item["itemType"], item["name"], item["price"], item.get("description", ""),
                      item.get("image", ""), store.now_str(), store.now_str()))
                created += 1
            else:
                c.execute("""
                    UPDATE menu_items
                    SET price=?, description=?, image=?, is_active=1, updated_at=?
                    WHERE id=?
                """, (item["price"], item.get("description") or existing["description"],
                      item.get("image") or existing["image"], store.now_str(), existing["id"]))
                updated += 1
        conn.commit()
    logger.info(f"Menu initialization complete: {created} created, {updated} updated")
    return created, updated

# ================== Stock ==================
def adjust_stock(item_id: int, op: str = "set", amount=0) -> int:
    op = str(op or "set").strip().lower()
    if op not in ("set", "add"):
        raise InvalidInput("op must be set or add")
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise InvalidInput("invalid stock")

    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT stock FROM menu_items WHERE id=?", (int(item_id),))
        row = c.fetchone()
        if not row:
            raise NotFound("Menu item not found")

        if op == "add":
            new_stock = max(0, int(row["stock"] or 0) + amount)
        else:
            new_stock = max(0, amount)
        c.execute("UPDATE menu_items SET stock=?, updated_at=? WHERE id=?", (new_stock, store.now_str(), int(item_id)))
        conn.commit()

    logger.info(f"Stock for item {item_id} is now {new_stock} ({op} {amount})")
    return new_stock

def take_stock(conn, item_id: int):
    """Consume one unit of a tracked item inside the caller's transaction."""
    c = conn.cursor()
    c.execute("""
        UPDATE menu_items
        SET stock = stock - 1, updated_at=?
        WHERE id=? AND (stock IS NULL OR stock > 0)
    """, (store.now_str(), int(item_id)))
    if c.rowcount != 1:
        raise Conflict("Item is out of stock")

def restore_stock(conn, item_type: str, name: str):
    c = conn.cursor()
    c.execute("""
        UPDATE menu_items
        SET stock = stock + 1, updated_at=?
        WHERE item_type=? AND name=? AND stock IS NOT NULL
    """, (store.now_str(), item_type, name))

def stock_overview() -> dict:
    threshold = Config.LOW_STOCK_THRESHOLD
    items = list_items()
    flavors = [i for i in items if i["itemType"] == "flavor"]
    toppings = [i for i in items if i["itemType"] == "topping"]
    tracked = [i for i in flavors + toppings if i["stock"] is not None]
    return {
        "flavors": flavors,
        "toppings": toppings,
        "lowStock": [i for i in tracked if 0 < i["stock"] <= threshold],
        "outOfStock": len([i for i in tracked if i["stock"] == 0]),
        "threshold": threshold,
    }
