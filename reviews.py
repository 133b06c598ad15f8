import math
import logging

import menu_codes
import store
from errors import InvalidInput, NotFound

logger = logging.getLogger(__name__)

MIN_COMMENT = 10
MAX_COMMENT = 500
MAX_NAME = 50


def review_to_dict(row) -> dict:
    return {
        "id": int(row["id"]),
        "customerName": row["customer_name"] or "Anonymous",
        "rating": int(row["rating"]),
        "comment": row["comment"],
        "orderCode": row["order_code"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }

def _clean_rating(rating) -> int:
    try:
        rating = int(rating)
    except (TypeError, ValueError):
        raise InvalidInput("Please select a rating")
    if not 1 <= rating <= 5:
        raise InvalidInput("Rating must be between 1 and 5")
    return rating

def _clean_comment(comment) -> str:
    comment = str(comment or "").strip()
    if len(comment) < MIN_COMMENT:
        raise InvalidInput(f"Review must be at least {MIN_COMMENT} characters")
    if len(comment) > MAX_COMMENT:
        raise InvalidInput(f"Review cannot exceed {MAX_COMMENT} characters")
    return comment

def _clean_order_code(conn, order_code):
    order_code = menu_codes.normalize_code(order_code)
    if not order_code:
        return None
    c = conn.cursor()
    c.execute("SELECT 1 FROM orders WHERE customer_code=?", (order_code,))
    if not c.fetchone():
        raise InvalidInput("No order found for this code")
    return order_code

def create_review(data: dict) -> dict:
    data = data or {}
    rating = _clean_rating(data.get("rating"))
    comment = _clean_comment(data.get("comment"))
    name = str(data.get("customerName") or "").strip()[:MAX_NAME] or "Anonymous"

    with store.get_conn() as conn:
        order_code = _clean_order_code(conn, data.get("orderCode"))
        c = conn.cursor()
        c.execute("""
            INSERT INTO reviews (customer_name, rating, comment, order_code, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (name, rating, comment, order_code, store.now_str(), store.now_str()))
        conn.commit()
        review_id = c.lastrowid

    logger.info(f"Review {review_id} submitted ({rating} stars)")
    return get_review(review_id)

def get_review(review_id: int) -> dict:
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT * FROM reviews WHERE id=?", (int(review_id),))
        row = c.fetchone()
    if not row:
        raise NotFound("Review not found")
    return review_to_dict(row)

def update_review(review_id: int, data: dict) -> dict:
    data = data or {}
    current = get_review(review_id)
    rating = _clean_rating(data["rating"]) if "rating" in data else current["rating"]
    comment = _clean_comment(data["comment"]) if "comment" in data else current["comment"]
    name = current["customerName"]
    if "customerName" in data:
        name = str(data["customerName"] or "").strip()[:MAX_NAME] or "Anonymous"

    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("""
            UPDATE reviews SET customer_name=?, rating=?, comment=?, updated_at=? WHERE id=?
        """, (name, rating, comment, store.now_str(), int(review_id)))
        conn.commit()
    return get_review(review_id)

def delete_review(review_id: int):
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("DELETE FROM reviews WHERE id=?", (int(review_id),))
        conn.commit()
        if c.rowcount == 0:
            raise NotFound("Review not found")
    logger.info(f"Review {review_id} deleted")

def review_stats() -> dict:
    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT rating, COUNT(*) AS n FROM reviews GROUP BY rating")
        rows = c.fetchall()

    distribution = {str(i): 0 for i in range(1, 6)}
    total = count = 0
    for r in rows:
        distribution[str(r["rating"])] = int(r["n"])
        total += int(r["rating"]) * int(r["n"])
        count += int(r["n"])
    return {
        "average": round(total / count, 1) if count else 0,
        "count": count,
        "distribution": distribution,
    }

def list_reviews(page=1, limit=10) -> dict:
    try:
        page = max(1, int(page or 1))
        limit = max(1, min(int(limit or 10), 100))
    except (TypeError, ValueError):
        raise InvalidInput("invalid paging")

    with store.get_conn() as conn:
        c = conn.cursor()
        c.execute("SELECT COUNT(*) FROM reviews")
        total = int(c.fetchone()[0])
        c.execute("SELECT * FROM reviews ORDER BY id DESC LIMIT ? OFFSET ?", (limit, (page - 1) * limit))
        rows = c.fetchall()

    return {
        "reviews": [review_to_dict(r) for r in rows],
        "page": page,
        "totalPages": math.ceil(total / limit) if total else 0,
        "totalReviews": total,
        "stats": review_stats(),
    }
