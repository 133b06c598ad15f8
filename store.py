import time
import sqlite3
import logging
import datetime
from zoneinfo import ZoneInfo

from config import Config

logger = logging.getLogger(__name__)

DB_FILE = Config.DB_FILE
TZ = ZoneInfo(Config.TIMEZONE)
TS_FORMAT = "%Y-%m-%d %H:%M:%S"

# ================== DB ==================
def get_conn():
    conn = sqlite3.connect(DB_FILE, timeout=10, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    return conn

def _col_exists(conn, table: str, col: str) -> bool:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    cols = [r[1] for r in cur.fetchall()]
    return col in cols

def init_db():
    with get_conn() as conn:
        c = conn.cursor()

        c.execute("""
        CREATE TABLE IF NOT EXISTS menu_codes (
            code TEXT PRIMARY KEY,
            cup_size TEXT NOT NULL,
            is_used INTEGER NOT NULL DEFAULT 0,
            order_id INTEGER,
            created_by TEXT NOT NULL,
            created_at TEXT NOT NULL,
            used_at TEXT,
            expires_at TEXT NOT NULL
        )""")

        c.execute("""
        CREATE TABLE IF NOT EXISTS menu_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_type TEXT NOT NULL,
            name TEXT NOT NULL,
            price INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            description TEXT DEFAULT '',
            image TEXT DEFAULT '',
            created_at TEXT,
            updated_at TEXT,
            UNIQUE (item_type, name)
        )""")

        # stock arrived after the first catalogue release; NULL means untracked
        if not _col_exists(conn, "menu_items", "stock"):
            c.execute("ALTER TABLE menu_items ADD COLUMN stock INTEGER")

        c.execute("""
        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_code TEXT UNIQUE,
            customer_code TEXT NOT NULL UNIQUE,
            customer_name TEXT DEFAULT '',
            cup_size TEXT NOT NULL,
            flavor TEXT NOT NULL,
            toppings TEXT NOT NULL DEFAULT '[]',
            flavor_price INTEGER NOT NULL DEFAULT 0,
            size_price INTEGER NOT NULL DEFAULT 0,
            toppings_price INTEGER NOT NULL DEFAULT 0,
            total INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'Pending',
            special_instructions TEXT DEFAULT '',
            created_at TEXT NOT NULL,
            updated_at TEXT,
            completed_at TEXT
        )""")

        c.execute("""
        CREATE TABLE IF NOT EXISTS reviews (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_name TEXT NOT NULL DEFAULT 'Anonymous',
            rating INTEGER NOT NULL,
            comment TEXT NOT NULL,
            order_code TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT
        )""")

        c.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)")
        c.execute("CREATE INDEX IF NOT EXISTS idx_codes_expires ON menu_codes(expires_at)")

        conn.commit()
    logger.info(f"Database ready at {DB_FILE}")

def ping() -> bool:
    with get_conn() as conn:
        conn.execute("SELECT 1").fetchone()
    return True

# ================== Helpers ==================
def now_dt():
    return datetime.datetime.now(TZ)

def now_str():
    return now_dt().strftime(TS_FORMAT)

def fmt(dt: datetime.datetime) -> str:
    return dt.strftime(TS_FORMAT)

def parse_ts(s):
    return datetime.datetime.strptime(s, TS_FORMAT).replace(tzinfo=TZ)

def to_ts_ms(s):
    try:
        return int(parse_ts(s).timestamp() * 1000)
    except (TypeError, ValueError):
        return int(time.time() * 1000)
