import os
import sqlite3
from pathlib import Path
from contextlib import contextmanager
from datetime import datetime, timezone

DATABASE_PATH = Path(
    os.environ.get("DORMDASH_DB_PATH", Path(__file__).parent / "database" / "dormdash_dispatch.db")
)

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT_SECONDS = 10.0

TABLES = ["runners", "delivery_orders", "status_events", "delivery_tracking"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    path = Path(db_path) if db_path else DATABASE_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor(db_path: Path | str | None = None):
    conn = get_connection(db_path)
    cursor = conn.cursor()
    try:
        yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_database(reset: bool = False, db_path: Path | str | None = None):
    path = Path(db_path) if db_path else DATABASE_PATH
    if reset and path.exists():
        path.unlink()

    conn = get_connection(path)
    cursor = conn.cursor()

    # WAL lets readers proceed while a claim or transition holds the write lock
    cursor.execute("PRAGMA journal_mode = WAL")

    # Runners (dashers) and their availability
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS runners (
            runner_id TEXT PRIMARY KEY,
            display_name TEXT NOT NULL,
            vehicle_type TEXT NOT NULL DEFAULT 'bike',
            availability TEXT NOT NULL DEFAULT 'offline'
                CHECK (availability IN ('offline', 'online', 'busy')),
            total_deliveries INTEGER NOT NULL DEFAULT 0,
            total_earnings_cents INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL
        )
    """)

    # Delivery orders, one per seller/pickup group of a checkout
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS delivery_orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_number TEXT UNIQUE NOT NULL,
            buyer_id TEXT NOT NULL,
            seller_id TEXT NOT NULL,
            runner_id TEXT,
            fulfillment_mode TEXT NOT NULL
                CHECK (fulfillment_mode IN ('merchant_fulfilled', 'network_fulfilled')),
            delivery_type TEXT NOT NULL
                CHECK (delivery_type IN ('pickup', 'delivery')),
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'ready', 'picked_up',
                                  'on_the_way', 'delivered', 'cancelled')),
            listing_id INTEGER,
            listing_title TEXT NOT NULL,
            pickup_address TEXT NOT NULL,
            pickup_lat REAL,
            pickup_lng REAL,
            delivery_address TEXT,
            delivery_lat REAL,
            delivery_lng REAL,
            subtotal_cents INTEGER NOT NULL,
            tax_cents INTEGER NOT NULL,
            delivery_fee_cents INTEGER NOT NULL,
            total_cents INTEGER NOT NULL,
            estimated_minutes INTEGER,
            created_at TIMESTAMP NOT NULL,
            accepted_at TIMESTAMP,
            picked_up_at TIMESTAMP,
            delivered_at TIMESTAMP,
            cancelled_at TIMESTAMP,
            FOREIGN KEY (runner_id) REFERENCES runners(runner_id)
        )
    """)

    # Append-only audit trail rendered as the order timeline
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS status_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id INTEGER NOT NULL,
            status TEXT NOT NULL,
            message TEXT,
            actor_id TEXT NOT NULL,
            actor_role TEXT NOT NULL
                CHECK (actor_role IN ('buyer', 'seller', 'runner', 'system')),
            created_at TIMESTAMP NOT NULL,
            FOREIGN KEY (order_id) REFERENCES delivery_orders(id) ON DELETE CASCADE
        )
    """)

    # Last known runner position, one row per order in flight
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS delivery_tracking (
            order_id INTEGER PRIMARY KEY,
            runner_id TEXT NOT NULL,
            lat REAL NOT NULL,
            lng REAL NOT NULL,
            heading REAL,
            speed_mps REAL,
            accuracy_m REAL,
            source TEXT,
            updated_at TIMESTAMP NOT NULL,
            FOREIGN KEY (order_id) REFERENCES delivery_orders(id) ON DELETE CASCADE,
            FOREIGN KEY (runner_id) REFERENCES runners(runner_id)
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_runners_availability ON runners(availability)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_orders_status_runner ON delivery_orders(status, runner_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_orders_buyer_status ON delivery_orders(buyer_id, status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_orders_seller_status ON delivery_orders(seller_id, status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_orders_created ON delivery_orders(created_at)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_status_events_order ON status_events(order_id, id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_tracking_runner ON delivery_tracking(runner_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_tracking_updated ON delivery_tracking(updated_at)")

    conn.commit()
    conn.close()
    return path


def get_table_counts(db_path: Path | str | None = None) -> dict:
    with get_cursor(db_path) as cursor:
        counts = {}
        for table in TABLES:
            try:
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                counts[table] = cursor.fetchone()[0]
            except sqlite3.OperationalError:
                counts[table] = 0
        return counts
