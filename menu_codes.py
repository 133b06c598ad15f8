"""One-time menu codes.

A code is issued by staff for a cup size, unlocks the ordering flow once, and
afterwards doubles as the customer's order tracking code.
"""
import random
import logging
import datetime

import store
from config import Config
from errors import CodeUnavailable, Conflict, InvalidInput, NotFound

logger = logging.getLogger(__name__)

CODE_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 5
CUP_SIZES = ("S", "M", "L")
MAX_ATTEMPTS = 100
CODE_STATUS_FILTERS = {"used", "unused", "expired"}


def normalize_code(code) -> str:
    return str(code or "").strip().upper()

def _random_code() -> str:
    return "".join(random.choice(CODE_CHARS) for _ in range(CODE_LENGTH))

def code_to_dict(row) -> dict:
    if not row:
        return None
    return {
        "code": row["code"],
        "cupSize": row["cup_size"],
        "isUsed": bool(row["is_used"]),
        "orderId": row["order_id"],
        "createdBy": row["created_by"],
        "createdAt": row["created_at"],
        "usedAt": row["used_at"],
        "expiresAt": row["expires_at"],
    }

# ================== Generation ==================
def generate_code() -> str:
    with store.get_conn() as conn:
        c = conn.cursor()
        for _ in range(MAX_ATTEMPTS):
            code = _random_code()
            c.execute("SELECT 1 FROM menu_codes WHERE code=?", (code,))
            if not c.fetchone():
                return code
    raise Conflict("Unable to generate unique code after maximum attempts")

def create_code(cup_size: str, created_by: str = "admin") -> dict:
    cup_size = str(cup_size or "").strip().upper()
    if cup_size not in CUP_SIZES:
        raise InvalidInput("Invalid cup size")

    code = generate_code()
    created = store.now_dt()
    expires = created + datetime.timedelta(hours=Config.CODE_TTL_HOURS)
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("""
            INSERT INTO menu_codes (code, cup_size, is_used, order_id, created_by, created_at, used_at, expires_at)
            VALUES (?, ?, 0, NULL, ?, ?, NULL, ?)
        """, (code, cup_size, (created_by or "admin")[:50], store.fmt(created), store.fmt(expires)))
        conn.commit()

    logger.info(f"Menu code {code} generated for size {cup_size} by {created_by}")
    return get_code(code)

# ================== Lookup / validation ==================
def get_code(code) -> dict:
    code = normalize_code(code)
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM menu_codes WHERE code=?", (code,))
        row = c.fetchone()
    return code_to_dict(row)

def can_be_used(menu_code: dict):
    if store.parse_ts(menu_code["expiresAt"]) < store.now_dt():
        return False, "Code has expired"
    if menu_code["isUsed"]:
        return False, "Code has already been used"
    return True, None

def validate_code(code) -> dict:
    code = normalize_code(code)
    if len(code) != CODE_LENGTH:
        raise InvalidInput(f"Code must be {CODE_LENGTH} characters")

    menu_code = get_code(code)
    if not menu_code:
        raise CodeUnavailable("Invalid code")

    ok, reason = can_be_used(menu_code)
    if not ok:
        raise CodeUnavailable(reason)
    return menu_code

def use_code(conn, code, order_id: int):
    """Redeem ``code`` for ``order_id`` inside the caller's transaction.

    The update only matches an unused, unexpired code, so of two concurrent
    redemptions exactly one sees ``rowcount == 1``.
    """
    code = normalize_code(code)
    now = store.now_str()
    c = conn.cursor()
    c.execute("""
        UPDATE menu_codes
        SET is_used=1, order_id=?, used_at=?
        WHERE code=? AND is_used=0 AND expires_at >= ?
    """, (int(order_id), now, code, now))
    if c.rowcount != 1:
        c.execute("SELECT * FROM menu_codes WHERE code=?", (code,))
        row = code_to_dict(c.fetchone())
        if not row:
            raise CodeUnavailable("Invalid code")
        _, reason = can_be_used(row)
        raise CodeUnavailable(reason or "Code has already been used")
    logger.info(f"Menu code {code} redeemed by order {order_id}")

def get_order_id_by_code(code) -> int:
    menu_code = get_code(code)
    if not menu_code:
        raise NotFound("Invalid code")
    if not menu_code["orderId"]:
        raise NotFound("No order found for this code")
    return int(menu_code["orderId"])

# ================== Admin ==================
def list_codes(status=None, cup_size=None, limit=100):
    limit = max(1, min(int(limit or 100), 500))
    where, params = [], []

    if status:
        if status not in CODE_STATUS_FILTERS:
            raise InvalidInput("Invalid status filter")
        if status == "used":
            where.append("is_used=1")
        elif status == "unused":
            where.append("is_used=0")
        else:
            where.append("is_used=0 AND expires_at < ?")
            params.append(store.now_str())

    if cup_size:
        cup_size = str(cup_size).strip().upper()
        if cup_size not in CUP_SIZES:
            raise InvalidInput("Invalid cup size")
        where.append("cup_size=?")
        params.append(cup_size)

    sql = "SELECT * FROM menu_codes"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
    params.append(limit)

    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute(sql, params)
        rows = c.fetchall()
    return [code_to_dict(r) for r in rows]

def cleanup_expired() -> int:
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("DELETE FROM menu_codes WHERE is_used=0 AND expires_at < ?", (store.now_str(),))
        conn.commit()
        deleted = c.rowcount
    logger.info(f"Cleaned up {deleted} expired menu codes")
    return deleted

def code_stats() -> dict:
    now = store.now_str()
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("""
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(is_used), 0) AS used,
                COALESCE(SUM(CASE WHEN is_used=0 THEN 1 ELSE 0 END), 0) AS unused,
                COALESCE(SUM(CASE WHEN is_used=0 AND expires_at < ? THEN 1 ELSE 0 END), 0) AS expired
            FROM menu_codes
        """, (now,))
        totals = c.fetchone()
        c.execute("""
            SELECT cup_size, COUNT(*) AS total, COALESCE(SUM(is_used), 0) AS used
            FROM menu_codes
            GROUP BY cup_size
            ORDER BY cup_size
        """)
        by_size = c.fetchall()

    return {
        "total": int(totals["total"]),
        "used": int(totals["used"]),
        "unused": int(totals["unused"]),
        "expired": int(totals["expired"]),
        "byCupSize": [{"cupSize": r["cup_size"], "total": int(r["total"]), "used": int(r["used"])} for r in by_size],
    }
