import time
import sqlite3
import logging
from functools import wraps

from config import Config

if Config.SOCKETIO_ASYNC_MODE == "eventlet":
    import eventlet
    eventlet.monkey_patch()

from flask import Flask, Response, g, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO, join_room, leave_room, emit
from werkzeug.exceptions import HTTPException

import menu
import menu_codes
import orders
import reports
import reviews
import store
from errors import CodeUnavailable, InvalidInput, ShopError, Unauthorized

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ================== App ==================
app = Flask(__name__)

ALLOWED_ORIGINS = Config.allowed_origins()
ADMIN_ROOM = "admin"

CORS(
    app,
    resources={r"/*": {"origins": ALLOWED_ORIGINS}},
    allow_headers=["Content-Type", "X-Admin-Pin", "X-Admin-Name"],
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)

socketio = SocketIO(
    app,
    cors_allowed_origins=ALLOWED_ORIGINS,
    async_mode=Config.SOCKETIO_ASYNC_MODE,
    ping_interval=20,
    ping_timeout=30
)

Config.validate()
store.init_db()

# ================== Request logging / errors ==================
@app.before_request
def _start_timer():
    g.start_time = time.time()
    g.request_id = f"{int(g.start_time * 1000)}-{id(request)}"

@app.after_request
def _log_request(response):
    process_time = time.time() - g.get("start_time", time.time())
    # Only log slow requests (>1s) or errors
    if process_time > 1.0 or response.status_code >= 400:
        logger.info(f"[{g.get('request_id')}] {request.method} {request.path} - {response.status_code} - {process_time:.2f}s")
    return response

@app.errorhandler(ShopError)
def _shop_error(e):
    return jsonify({"ok": False, "msg": e.msg}), e.status

@app.errorhandler(HTTPException)
def _http_error(e):
    msg = "Route not found" if e.code == 404 else e.description
    return jsonify({"ok": False, "msg": msg}), e.code

@app.errorhandler(Exception)
def _unhandled_error(e):
    logger.error(f"[{g.get('request_id')}] Unhandled exception in {request.method} {request.path}: {e}", exc_info=True)
    return jsonify({"ok": False, "msg": "Internal server error"}), 500

# ================== Helpers ==================
def is_admin_pin(pin) -> bool:
    return bool(Config.ADMIN_PIN) and str(pin or "") == Config.ADMIN_PIN

def admin_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if not is_admin_pin(request.headers.get("X-Admin-Pin", "")):
            raise Unauthorized("Unauthorized")
        return f(*args, **kwargs)
    return decorated

def admin_name() -> str:
    return str(request.headers.get("X-Admin-Name", "") or "").strip()[:50] or "admin"

def body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

def int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default

def broadcast_order(order, event="order_update"):
    payload = {"ok": True, "order": order}
    socketio.emit("order_update", payload, room=order["customerCode"])
    socketio.emit(event, payload, room=ADMIN_ROOM)

# ================== Socket ==================
@socketio.on("track_order")
def on_track_order(data):
    code = menu_codes.normalize_code((data or {}).get("code"))
    if not code:
        emit("order_update", {"ok": False, "msg": "missing code"})
        return
    join_room(code)
    try:
        order = orders.get_order_by_code(code)
    except ShopError as e:
        emit("order_update", {"ok": True, "exists": False, "order": None, "msg": e.msg})
        return
    emit("order_update", {"ok": True, "exists": True, "order": order})

@socketio.on("stop_tracking")
def on_stop_tracking(data):
    code = menu_codes.normalize_code((data or {}).get("code"))
    if code:
        leave_room(code)

@socketio.on("join_admin")
def on_join_admin(data):
    if not is_admin_pin((data or {}).get("pin")):
        emit("admin_joined", {"ok": False, "msg": "Unauthorized"})
        return
    join_room(ADMIN_ROOM)
    emit("admin_joined", {"ok": True})

# ================== REST: menu codes ==================
@app.route("/api/menu-codes/generate", methods=["POST"])
@admin_required
def generate_menu_code():
    data = body()
    menu_code = menu_codes.create_code(data.get("cupSize"), admin_name())
    return jsonify({
        "ok": True,
        "message": "Menu code generated successfully",
        "code": menu_code["code"],
        "cupSize": menu_code["cupSize"],
        "expiresAt": menu_code["expiresAt"],
        "note": "This code can be used once and will serve as the order tracking code",
    }), 201

@app.route("/api/menu-codes/validate", methods=["POST"])
def validate_menu_code():
    data = body()
    try:
        menu_code = menu_codes.validate_code(data.get("code"))
    except (CodeUnavailable, InvalidInput) as e:
        return jsonify({"ok": False, "valid": False, "msg": e.msg}), e.status
    return jsonify({
        "ok": True,
        "valid": True,
        "cupSize": menu_code["cupSize"],
        "expiresAt": menu_code["expiresAt"],
        "message": "Code is valid. Use this code to place your order and track it later.",
    })

@app.route("/api/menu-codes/admin/all", methods=["GET"])
@admin_required
def list_menu_codes():
    codes = menu_codes.list_codes(
        status=request.args.get("status") or None,
        cup_size=request.args.get("cupSize") or None,
        limit=int_arg("limit", 100),
    )
    return jsonify({"ok": True, "count": len(codes), "codes": codes})

@app.route("/api/menu-codes/admin/cleanup", methods=["DELETE"])
@admin_required
def cleanup_menu_codes():
    deleted = menu_codes.cleanup_expired()
    return jsonify({
        "ok": True,
        "message": f"Cleaned up {deleted} expired unused codes",
        "deletedCount": deleted,
    })

@app.route("/api/menu-codes/admin/stats", methods=["GET"])
@admin_required
def menu_code_stats():
    return jsonify({"ok": True, **menu_codes.code_stats()})

# ================== REST: orders ==================
@app.route("/api/orders", methods=["POST"])
def create_order():
    data = body()
    order = orders.create_order(
        data.get("code"),
        data.get("flavor"),
        toppings=data.get("toppings"),
        special_instructions=data.get("specialInstructions", ""),
        customer_name=data.get("customerName", ""),
    )
    broadcast_order(order, "new_order")
    return jsonify({
        "ok": True,
        "message": "Order placed successfully",
        "order": order,
        "trackingCode": order["customerCode"],
    }), 201

@app.route("/api/orders/track/<code>", methods=["GET"])
def track_order(code):
    order = orders.get_order_by_code(code)
    return jsonify({"ok": True, "order": order})

@app.route("/api/orders", methods=["GET"])
@admin_required
def list_orders():
    found = orders.list_orders(
        status=request.args.get("status") or None,
        limit=int_arg("limit", 200),
    )
    return jsonify({"ok": True, "count": len(found), "orders": found})

@app.route("/api/orders/stats", methods=["GET"])
def order_stats():
    return jsonify({"ok": True, **orders.order_stats()})

@app.route("/api/orders/<int:order_id>", methods=["GET"])
@admin_required
def get_order(order_id):
    return jsonify({"ok": True, "order": orders.get_order(order_id)})

@app.route("/api/orders/<int:order_id>/status", methods=["PATCH", "PUT", "POST"])
@admin_required
def update_order_status(order_id):
    data = body()
    order = orders.update_status(order_id, data.get("status"))
    broadcast_order(order)
    return jsonify({"ok": True, "order": order})

# ================== REST: menu / stock ==================
@app.route("/api/menu", methods=["GET"])
def get_menu():
    grouped = menu.list_menu(
        item_type=request.args.get("itemType") or None,
        is_active=request.args.get("isActive"),
    )
    return jsonify({"ok": True, **grouped})

@app.route("/api/menu", methods=["POST"])
@admin_required
def save_menu_item():
    item, created = menu.save_item(body())
    return jsonify({"ok": True, "message": "Menu item saved successfully", "item": item}), (201 if created else 200)

@app.route("/api/menu/<int:item_id>", methods=["PUT"])
@admin_required
def update_menu_item(item_id):
    item = menu.update_item(item_id, body())
    return jsonify({"ok": True, "message": "Menu item updated successfully", "item": item})

@app.route("/api/menu/<int:item_id>", methods=["DELETE"])
@admin_required
def delete_menu_item(item_id):
    menu.delete_item(item_id)
    return jsonify({"ok": True, "message": "Menu item deleted successfully"})

@app.route("/api/menu/initialize", methods=["POST"])
@admin_required
def initialize_menu():
    created, updated = menu.initialize_defaults()
    return jsonify({
        "ok": True,
        "message": f"Initialized menu: {created} created, {updated} updated",
        "created": created,
        "updated": updated,
    })

@app.route("/api/menu/available", methods=["GET"])
def available_menu_items():
    items = menu.available_items(request.args.get("itemType") or "flavor")
    return jsonify({"ok": True, "items": items})

@app.route("/api/menu/stock", methods=["GET"])
def menu_stock():
    return jsonify({"ok": True, **menu.stock_overview()})

@app.route("/api/menu/<int:item_id>/stock", methods=["POST"])
@admin_required
def update_menu_stock(item_id):
    data = body()
    stock = menu.adjust_stock(item_id, data.get("op", "set"), data.get("stock", 0))
    return jsonify({"ok": True, "stock": stock})

# ================== REST: reviews ==================
@app.route("/api/reviews", methods=["GET"])
def list_reviews():
    return jsonify({"ok": True, **reviews.list_reviews(int_arg("page", 1), int_arg("limit", 10))})

@app.route("/api/reviews", methods=["POST"])
def create_review():
    review = reviews.create_review(body())
    return jsonify({"ok": True, "message": "Review submitted successfully", "review": review}), 201

@app.route("/api/reviews/stats", methods=["GET"])
def review_stats():
    return jsonify({"ok": True, **reviews.review_stats()})

@app.route("/api/reviews/<int:review_id>", methods=["GET"])
def get_review(review_id):
    return jsonify({"ok": True, "review": reviews.get_review(review_id)})

@app.route("/api/reviews/<int:review_id>", methods=["PUT"])
@admin_required
def update_review(review_id):
    return jsonify({"ok": True, "review": reviews.update_review(review_id, body())})

@app.route("/api/reviews/<int:review_id>", methods=["DELETE"])
@admin_required
def delete_review(review_id):
    reviews.delete_review(review_id)
    return jsonify({"ok": True, "message": "Review deleted successfully"})

# ================== REST: reports ==================
@app.route("/api/reports/sales", methods=["GET"])
@admin_required
def sales_report():
    report = reports.sales_report(request.args.get("period", "today"))
    return jsonify({"ok": True, **report})

@app.route("/api/reports/sales.csv", methods=["GET"])
@admin_required
def sales_report_csv():
    period = request.args.get("period", "today")
    text = reports.sales_csv(reports.sales_report(period))
    return Response(
        text,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=sales-report-{period}.csv"},
    )

# ================== Service ==================
@app.route("/api/health")
def health():
    try:
        db_ok = store.ping()
    except sqlite3.Error as e:
        logger.error(f"Health check failed: {e}")
        db_ok = False
    return jsonify({
        "ok": db_ok,
        "status": "OK" if db_ok else "DEGRADED",
        "message": "Bingsu API is running",
        "timestamp": store.now_dt().isoformat(),
        "environment": Config.ENVIRONMENT,
        "database": "Connected" if db_ok else "Disconnected",
    }), (200 if db_ok else 503)

@app.route("/")
def root():
    return jsonify({
        "ok": True,
        "message": "Bingsu API Server",
        "version": "1.0.0",
        "endpoints": {
            "menuCodes": "/api/menu-codes",
            "orders": "/api/orders",
            "menu": "/api/menu",
            "reviews": "/api/reviews",
            "reports": "/api/reports/sales",
            "health": "/api/health",
        },
    })

# ================== Run ==================
if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=Config.PORT)
