"""
Database schema: orders and their production entries.
All DDL is idempotent and runs on a connection with autocommit.
"""

from lifecycle.states import STATES

ORDER_COLUMNS = (
    "reference", "state",
    "confirmed_at", "released_at", "started_at", "completed_at",
    "closed_at", "cancelled_at",
)

ENTRY_COLUMNS = (
    "description", "quantity", "status", "cancelled_at", "consumed_at",
)

ENTRY_STATUSES = ("open", "cancelled", "consumed")


def _check_in(column, values):
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"CHECK ({column} IN ({quoted}))"


def bootstrap_schema(conn):
    """Create the orders and production_entries tables and indexes. Idempotent."""
    conn.autocommit = True
    with conn.cursor() as cur:
        # ── Orders: one row per order, version bumps on every write ──
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS orders (
                id            UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                reference     TEXT NOT NULL DEFAULT '',
                state         TEXT NOT NULL DEFAULT 'received'
                              {_check_in("state", STATES)},
                confirmed_at  TIMESTAMPTZ,
                released_at   TIMESTAMPTZ,
                started_at    TIMESTAMPTZ,
                completed_at  TIMESTAMPTZ,
                closed_at     TIMESTAMPTZ,
                cancelled_at  TIMESTAMPTZ,
                version       INT NOT NULL DEFAULT 1,
                created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
                updated_at    TIMESTAMPTZ NOT NULL DEFAULT now()
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_state
                ON orders (state);
        """)

        # ── Production entries: work items hanging off an order ──────
        cur.execute(f"""
            CREATE TABLE IF NOT EXISTS production_entries (
                id            UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                seq           BIGSERIAL,
                order_id      UUID NOT NULL REFERENCES orders (id),
                description   TEXT NOT NULL DEFAULT '',
                quantity      INT NOT NULL DEFAULT 0,
                status        TEXT NOT NULL DEFAULT 'open'
                              {_check_in("status", ENTRY_STATUSES)},
                cancelled_at  TIMESTAMPTZ,
                consumed_at   TIMESTAMPTZ,
                version       INT NOT NULL DEFAULT 1,
                created_at    TIMESTAMPTZ NOT NULL DEFAULT now()
            );
        """)
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_order
                ON production_entries (order_id, seq);
        """)
