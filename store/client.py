"""
StoreClient: persistence for orders and production entries.

Every write bumps the row's version and is checked against the version the
object was read at, so a transition computed from a stale read can never
overwrite one that already landed. transaction(order) additionally locks the
order row for the duration of a transition.
"""

import logging
from contextlib import contextmanager

import psycopg2
import psycopg2.extras

from lifecycle.states import InvalidStateError, State
from store.config import settings
from store.models import Order, ProductionEntry

logger = logging.getLogger(__name__)


class VersionConflict(Exception):
    """Raised when optimistic concurrency check fails."""

    def __init__(self, entity_id, expected_version, actual_version):
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on entity {entity_id}: "
            f"expected {expected_version}, actual {actual_version}"
        )


class StoreClient:
    """
    Connects to the order store.

    Usage:
        client = StoreClient(**server.conn_info())
        order = Order(reference="PO-1001")
        client.write_order(order)
        order.confirm()
        client.close()
    """

    def __init__(self, host="localhost", port=5432, dbname=None, user=None,
                 password=None, lock_timeout_ms=None):
        self.conn = psycopg2.connect(
            host=host,
            port=port,
            dbname=settings.dbname if dbname is None else dbname,
            user=user,
            password=password,
        )
        self.conn.autocommit = True
        psycopg2.extras.register_uuid()
        self.lock_timeout_ms = (
            settings.lock_timeout_ms if lock_timeout_ms is None else lock_timeout_ms
        )
        self._tx_depth = 0
        self._tx_orders = []

    # ── Transactions ──────────────────────────────────────────────────

    @contextmanager
    def transaction(self, order=None):
        """
        Run the body as one database transaction. Re-entrant: nested calls
        join the outer transaction.

        With an order, its row is locked (SELECT ... FOR UPDATE) and its
        version checked, raising VersionConflict if the in-memory copy is
        stale. If the body raises, everything rolls back and the orders
        involved are re-read so the failed change is not visible in memory.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                if order is not None:
                    self._lock_order(order)
                yield self
            finally:
                self._tx_depth -= 1
            return

        self.conn.autocommit = False
        self._tx_depth = 1
        self._tx_orders = []
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT set_config('lock_timeout', %s, true)",
                    (f"{self.lock_timeout_ms}ms",),
                )
            if order is not None:
                self._lock_order(order)
            yield self
            self.conn.commit()
        except Exception as exc:
            self.conn.rollback()
            logger.warning("Transaction rolled back: %s", exc)
            self.conn.autocommit = True
            for touched in self._tx_orders:
                self._refresh_order(touched)
            raise
        finally:
            self._tx_depth = 0
            self._tx_orders = []
            self.conn.autocommit = True

    def _lock_order(self, order):
        self._require_stored(order)
        self._tx_orders.append(order)
        with self.conn.cursor() as cur:
            cur.execute(
                "SELECT version FROM orders WHERE id = %s FOR UPDATE",
                (order._store_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise ValueError(f"Order {order._store_id} does not exist")
        if row[0] != order._store_version:
            raise VersionConflict(order._store_id, order._store_version, row[0])

    # ── Orders ────────────────────────────────────────────────────────

    def write_order(self, order):
        """
        Insert a new order (and any production entries already attached to
        it). Returns the order id; the order is bound to this client.
        """
        row = order.to_row()
        columns = list(row)
        entries = list(order.production_entries)
        try:
            with self.transaction():
                with self.conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO orders ({", ".join(columns)})
                        VALUES ({", ".join(["%s"] * len(columns))})
                        RETURNING id, version
                        """,
                        [row[c] for c in columns],
                    )
                    order_id, version = cur.fetchone()
                order._bind(self, order_id, version)

                order.production_entries = []
                for entry in entries:
                    self.add_production_entry(order, entry)
        except Exception:
            for record in [order] + entries:
                record._store_client = record._store_id = record._store_version = None
            order.production_entries = entries
            raise
        logger.debug("Wrote order %s in state %s", order._store_id, order.state)
        return order._store_id

    def read_order(self, order_id, cls=Order):
        """Read an order with its production entries. Returns None if not found."""
        with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("SELECT * FROM orders WHERE id = %s", (order_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._row_to_order(cls, row)

    def orders_in_state(self, state, cls=Order):
        """All orders currently in the given state, oldest first."""
        try:
            state = State(state)
        except ValueError:
            raise InvalidStateError(state) from None
        with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                "SELECT * FROM orders WHERE state = %s ORDER BY created_at, id",
                (state.value,),
            )
            rows = cur.fetchall()
        return [self._row_to_order(cls, row) for row in rows]

    def update_order(self, order, **fields):
        """Write the given fields of a stored order and bump its version."""
        self._require_stored(order)
        order._check_columns(fields)
        version = self._update_row("orders", order, fields)
        order._store_version = version
        order._assign(fields)
        logger.debug("Updated order %s: %s", order._store_id, sorted(fields))

    def reload_order(self, order):
        """Re-read a stored order's fields and production entries in place."""
        self._require_stored(order)
        if not self._refresh_order(order):
            raise ValueError(f"Order {order._store_id} does not exist")

    # ── Production entries ────────────────────────────────────────────

    def add_production_entry(self, order, entry):
        """Insert a production entry for a stored order and attach it."""
        self._require_stored(order)
        row = entry.to_row()
        columns = list(row)
        with self.conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO production_entries (order_id, {", ".join(columns)})
                VALUES (%s, {", ".join(["%s"] * len(columns))})
                RETURNING id, version
                """,
                [order._store_id] + [row[c] for c in columns],
            )
            entry_id, version = cur.fetchone()
        entry._bind(self, entry_id, version)
        order.production_entries.append(entry)
        return entry

    def update_entry(self, entry, **fields):
        """Write the given fields of a stored production entry."""
        self._require_stored(entry)
        entry._check_columns(fields)
        entry._store_version = self._update_row("production_entries", entry, fields)
        entry._assign(fields)

    # ── Internal helpers ──────────────────────────────────────────────

    def _require_stored(self, record):
        if record._store_id is None:
            raise ValueError(
                f"{type(record).__name__} has no id, write it to the store first"
            )

    def _update_row(self, table, record, fields):
        """UPDATE one row guarded by its version. Returns the new version."""
        if not fields:
            return record._store_version
        assignments = ", ".join(f"{name} = %s" for name in fields)
        touch = ", updated_at = now()" if table == "orders" else ""
        with self.conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE {table}
                SET {assignments}, version = version + 1{touch}
                WHERE id = %s AND version = %s
                RETURNING version
                """,
                list(fields.values()) + [record._store_id, record._store_version],
            )
            row = cur.fetchone()
            if row is not None:
                return row[0]
            cur.execute(f"SELECT version FROM {table} WHERE id = %s", (record._store_id,))
            current = cur.fetchone()
        actual = current[0] if current else None
        logger.warning(
            "Version conflict on %s %s: expected %s, actual %s",
            table, record._store_id, record._store_version, actual,
        )
        raise VersionConflict(record._store_id, record._store_version, actual)

    def _refresh_order(self, order):
        """Copy the latest row into order. Returns False if the row is gone."""
        with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("SELECT * FROM orders WHERE id = %s", (order._store_id,))
            row = cur.fetchone()
        if row is None:
            return False
        order._assign({c: row[c] for c in order._columns})
        order._store_version = row["version"]
        order.production_entries = self._load_entries(order, order.production_entries)
        return True

    def _load_entries(self, order, existing=()):
        """Load an order's entries, refreshing objects already in memory."""
        known = {e._store_id: e for e in existing if e._store_id is not None}
        with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                "SELECT * FROM production_entries WHERE order_id = %s ORDER BY seq",
                (order._store_id,),
            )
            rows = cur.fetchall()

        entries = []
        for row in rows:
            entry = known.get(str(row["id"]))
            if entry is None:
                entry = ProductionEntry.from_row(row)
            else:
                entry._assign({c: row[c] for c in entry._columns})
            entry._bind(self, row["id"], row["version"])
            entries.append(entry)
        return entries

    def _row_to_order(self, cls, row):
        order = cls.from_row(row)
        order._bind(self, row["id"], row["version"])
        order.production_entries = self._load_entries(order)
        return order

    def close(self):
        """Close the database connection."""
        if self.conn and not self.conn.closed:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
