"""
Domain records: the Order aggregate and its production entries.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from lifecycle.dispatcher import OrderStateMixin
from lifecycle.states import State, state_value
from store.base import Record
from store.schema import ENTRY_COLUMNS, ORDER_COLUMNS


def _now():
    return datetime.now(timezone.utc)


@dataclass
class ProductionEntry(Record):
    """A unit of production work booked against an order."""
    _columns = ENTRY_COLUMNS

    description: str = ""
    quantity: int = 0
    status: str = "open"  # "open", "cancelled", "consumed"
    cancelled_at: Optional[datetime] = None
    consumed_at: Optional[datetime] = None

    def update(self, **fields):
        self._check_columns(fields)
        if self.is_detached:
            self._assign(fields)
        else:
            self._store_client.update_entry(self, **fields)

    def cancel(self, time=None):
        self.update(status="cancelled", cancelled_at=time or _now())

    def consume(self, time=None):
        self.update(status="consumed", consumed_at=time or _now())


@dataclass
class Order(OrderStateMixin, Record):
    """
    A purchase order. Its state field drives which actions are legal; see
    OrderStateMixin for the action surface.

    Guard predicates always answer True here. Subclasses override them to
    hold an order back at a stage (e.g. can_complete() until every
    production entry is finished).
    """
    _columns = ORDER_COLUMNS

    reference: str = ""
    state: str = State.RECEIVED.value
    confirmed_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    production_entries: List[ProductionEntry] = field(default_factory=list, compare=False)

    # ── Guards ───────────────────────────────────────────────────────

    def can_confirm(self):
        return True

    def can_complete(self):
        return True

    def can_ship(self):
        return True

    # ── Persistence hooks used by the state handlers ────────────────

    def update(self, **fields):
        """Write the given fields; persisted when the order is stored."""
        self._check_columns(fields)
        fields = {name: state_value(value) for name, value in fields.items()}
        if self.is_detached:
            self._assign(fields)
        else:
            self._store_client.update_order(self, **fields)

    def reload(self):
        """Re-read fields and production entries from the store."""
        if not self.is_detached:
            self._store_client.reload_order(self)

    def transaction(self):
        """The atomic unit for a transition on this order."""
        if self.is_detached:
            return self._detached_transaction()
        return self._store_client.transaction(self)

    @contextmanager
    def _detached_transaction(self):
        snapshot = self.to_row()
        entries = list(self.production_entries)
        entry_rows = [e.to_row() for e in entries]
        try:
            yield self
        except Exception:
            self._assign(snapshot)
            self.production_entries = entries
            for entry, row in zip(entries, entry_rows):
                entry._assign(row)
            raise

    def add_production_entry(self, entry):
        if self.is_detached:
            self.production_entries.append(entry)
        else:
            self._store_client.add_production_entry(self, entry)
        return entry

    # ── Composite actions ────────────────────────────────────────────

    def cancel(self, time=None):
        """Cancel the order and every production entry, atomically."""
        time = time or _now()
        with self.transaction():
            return self.order_state.cancel(
                time, callback=lambda: self._cancel_production_entries(time)
            )

    def close(self, time=None):
        """Close a shipped order and consume every production entry, atomically."""
        time = time or _now()
        with self.transaction():
            return self.order_state.close(
                time, callback=lambda: self._consume_production_entries(time)
            )

    def _cancel_production_entries(self, time):
        for entry in self.production_entries:
            entry.cancel(time)

    def _consume_production_entries(self, time):
        for entry in self.production_entries:
            entry.consume(time)
