"""Orders placed with a redeemed menu code, and their status flow.

Pending -> Preparing -> Ready -> Completed, with Cancelled reachable from any
non-terminal status.
"""
import json
import logging
import sqlite3

import menu
import menu_codes
import store
from errors import CodeUnavailable, Conflict, InvalidInput, NotFound

logger = logging.getLogger(__name__)

PENDING = "Pending"
PREPARING = "Preparing"
READY = "Ready"
COMPLETED = "Completed"
CANCELLED = "Cancelled"

ORDER_STATUSES = (PENDING, PREPARING, READY, COMPLETED, CANCELLED)
STATUS_FLOW = {PENDING: PREPARING, PREPARING: READY, READY: COMPLETED}
TERMINAL_STATUSES = {COMPLETED, CANCELLED}

MAX_TOPPINGS = 5
MAX_INSTRUCTIONS = 200


def normalize_status(status) -> str:
    s = str(status or "").strip().capitalize()
    if s not in ORDER_STATUSES:
        raise InvalidInput("invalid status")
    return s

def next_status(status):
    return STATUS_FLOW.get(status)

def can_transition(current: str, new: str) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if new == CANCELLED:
        return True
    return STATUS_FLOW.get(current) == new

def order_to_dict(row) -> dict:
    if not row:
        return None
    try:
        toppings = json.loads(row["toppings"] or "[]")
    except ValueError:
        toppings = []
    return {
        "id": int(row["id"]),
        "orderId": row["order_code"],
        "customerCode": row["customer_code"],
        "customerName": row["customer_name"] or "",
        "cupSize": row["cup_size"],
        "shavedIce": {"flavor": row["flavor"]},
        "toppings": toppings,
        "pricing": {
            "flavorPrice": int(row["flavor_price"]),
            "sizePrice": int(row["size_price"]),
            "toppingsPrice": int(row["toppings_price"]),
            "total": int(row["total"]),
        },
        "status": row["status"],
        "nextStatus": next_status(row["status"]),
        "specialInstructions": row["special_instructions"] or "",
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
        "completedAt": row["completed_at"],
        "timestamp": store.to_ts_ms(row["created_at"]),
    }

def _topping_names(toppings) -> list:
    if toppings is None:
        return []
    if not isinstance(toppings, list):
        raise InvalidInput("toppings must be list")
    names, seen = [], set()
    for t in toppings:
        name = t.get("name") if isinstance(t, dict) else t
        name = str(name or "").strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        names.append(name)
    if len(names) > MAX_TOPPINGS:
        raise InvalidInput(f"At most {MAX_TOPPINGS} toppings")
    return names

def _available_row(conn, item_type: str, name: str):
    row = menu.find_item(conn, item_type, name)
    if not row:
        raise InvalidInput(f"Unknown {item_type}: {name}")
    if not menu.is_available(row):
        raise Conflict(f"{row['name']} is not available")
    return row

# ================== Create ==================
def create_order(code, flavor, toppings=None, special_instructions="", customer_name="") -> dict:
    menu_code = menu_codes.validate_code(code)
    code = menu_code["code"]
    cup_size = menu_code["cupSize"]

    flavor = str(flavor or "").strip()
    if not flavor:
        raise InvalidInput("flavor is required")
    topping_names = _topping_names(toppings)
    special_instructions = str(special_instructions or "").strip()
    if len(special_instructions) > MAX_INSTRUCTIONS:
        raise InvalidInput(f"Special instructions cannot exceed {MAX_INSTRUCTIONS} characters")
    customer_name = str(customer_name or "").strip()[:50]

    with store.get_conn() as conn:
        c = conn.cursor()

        flavor_row = _available_row(conn, "flavor", flavor)
        topping_rows = [_available_row(conn, "topping", n) for n in topping_names]
        size_row = menu.find_item(conn, "size", cup_size)

        flavor_price = int(flavor_row["price"])
        size_price = int(size_row["price"]) if size_row else 0
        topping_list = [{"name": r["name"], "price": int(r["price"])} for r in topping_rows]
        toppings_price = sum(t["price"] for t in topping_list)
        total = flavor_price + size_price + toppings_price

        created = store.now_dt()
        try:
            c.execute("""
                INSERT INTO orders (customer_code, customer_name, cup_size, flavor, toppings,
                                    flavor_price, size_price, toppings_price, total,
                                    status, special_instructions, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (code, customer_name, cup_size, flavor_row["name"], json.dumps(topping_list, ensure_ascii=False),
                  flavor_price, size_price, toppings_price, total,
                  PENDING, special_instructions, store.fmt(created), store.fmt(created)))
        except sqlite3.IntegrityError:
            # another order already holds this code
            raise CodeUnavailable("Code has already been used")
        order_id = int(c.lastrowid)
        order_code = f"ORD-{created.strftime('%Y%m%d')}-{order_id:04d}"
        c.execute("UPDATE orders SET order_code=? WHERE id=?", (order_code, order_id))

        menu.take_stock(conn, flavor_row["id"])
        for r in topping_rows:
            menu.take_stock(conn, r["id"])

        # raises and rolls the whole order back if the code was taken meanwhile
        menu_codes.use_code(conn, code, order_id)
        conn.commit()

    logger.info(f"Order {order_code} created with code {code}: {flavor_row['name']} ({cup_size}) total {total}")
    return get_order(order_id)

# ================== Read ==================
def get_order(order_id: int) -> dict:
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM orders WHERE id=?", (int(order_id),))
        row = c.fetchone()
    if not row:
        raise NotFound("Order not found")
    return order_to_dict(row)

def get_order_by_code(code) -> dict:
    code = menu_codes.normalize_code(code)
    if not code:
        raise InvalidInput("Please enter a customer code")
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM orders WHERE customer_code=?", (code,))
        row = c.fetchone()
    if row:
        return order_to_dict(row)
    # falls back to the code's own link, raising the matching not-found message
    return get_order(menu_codes.get_order_id_by_code(code))

def list_orders(status=None, limit=200) -> list:
    limit = max(1, min(int(limit or 200), 500))
    with store.get_conn() as conn:
        c = conn.cursor()
        if status:
            c.execute("SELECT * FROM orders WHERE status=? ORDER BY id DESC LIMIT ?", (normalize_status(status), limit))
        else:
            c.execute("SELECT * FROM orders ORDER BY id DESC LIMIT ?", (limit,))
        rows = c.fetchall()
    return [order_to_dict(r) for r in rows]

def all_orders() -> list:
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM orders ORDER BY id")
        rows = c.fetchall()
    return [order_to_dict(r) for r in rows]

# ================== Status ==================
def update_status(order_id: int, status) -> dict:
    new_status = normalize_status(status)

    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM orders WHERE id=?", (int(order_id),))
        row = c.fetchone()
        if not row:
            raise NotFound("Order not found")

        current = row["status"]
        if not can_transition(current, new_status):
            raise Conflict(f"Cannot change status from {current} to {new_status}")

        now = store.now_str()
        c.execute("""
            UPDATE orders
            SET status=?, updated_at=?, completed_at=?
            WHERE id=? AND status=?
        """, (new_status, now, now if new_status == COMPLETED else row["completed_at"], int(order_id), current))
        if c.rowcount != 1:
            raise Conflict("Order status was changed by someone else, reload and retry")

        if new_status == CANCELLED:
            menu.restore_stock(conn, "flavor", row["flavor"])
            for t in json.loads(row["toppings"] or "[]"):
                menu.restore_stock(conn, "topping", t["name"])
        conn.commit()

    logger.info(f"Order {row['order_code']} status {current} -> {new_status}")
    return get_order(order_id)

# ================== Stats ==================
def order_stats() -> dict:
    today = store.now_dt().strftime("%Y-%m-%d")
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("""
            SELECT COUNT(*) AS n,
                   COALESCE(SUM(CASE WHEN status != ? THEN total ELSE 0 END), 0) AS revenue
            FROM orders
            WHERE substr(created_at, 1, 10) = ?
        """, (CANCELLED, today))
        today_row = c.fetchone()

        c.execute("SELECT status, COUNT(*) AS n FROM orders GROUP BY status")
        status_counts = {s: 0 for s in ORDER_STATUSES}
        for r in c.fetchall():
            status_counts[r["status"]] = int(r["n"])

        c.execute("""
            SELECT flavor, COUNT(*) AS n
            FROM orders
            WHERE status != ?
            GROUP BY flavor
            ORDER BY n DESC, flavor
            LIMIT 5
        """, (CANCELLED,))
        popular = [{"_id": r["flavor"], "count": int(r["n"])} for r in c.fetchall()]

    return {
        "todayOrders": int(today_row["n"]),
        "todayRevenue": int(today_row["revenue"]),
        "pendingOrders": status_counts[PENDING],
        "statusCounts": status_counts,
        "popularFlavors": popular,
    }
