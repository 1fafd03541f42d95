"""
Tests for the Order aggregate without a database: the action surface,
guard predicates, composite cancel/close and all-or-nothing transitions on a
detached order.

Run with: pytest tests/test_order.py -v
"""

import os
import sys
from datetime import datetime, timezone, timedelta

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from lifecycle.states import State, InvalidStateError, TransitionError
from store.models import Order, ProductionEntry


T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def at(hours):
    return T0 + timedelta(hours=hours)


class GatedOrder(Order):
    """Order whose guards answer from flags instead of always True."""
    confirmable = True
    shippable = False
    completable = False

    def can_confirm(self):
        return self.confirmable

    def can_ship(self):
        return self.shippable

    def can_complete(self):
        return self.completable


class FaultyEntry(ProductionEntry):
    def consume(self, time=None):
        raise RuntimeError("scanner offline")

    def cancel(self, time=None):
        raise RuntimeError("scanner offline")


# ── Action surface ───────────────────────────────────────────────────────────

class TestActionSurface:
    def test_new_order_is_received(self):
        order = Order(reference="PO-1")
        assert order.state == "received"
        assert order.is_received()
        assert order.is_active()
        assert order.can_edit()
        assert order.can_cancel()
        assert order.can_add_item()

    def test_queries_follow_state(self):
        order = Order(state="shipped")
        assert order.is_shipped()
        assert not order.is_received()
        assert not order.can_edit()
        assert not order.can_cancel()
        assert not order.can_add_item()

    def test_closed_is_inactive(self):
        assert not Order(state="closed").is_active()
        assert not Order(state="cancelled").is_active()

    def test_illegal_command_names_action_and_state(self):
        order = Order(state="shipped")
        with pytest.raises(TransitionError, match="Order: Can't confirm from 'shipped' state"):
            order.confirm(T0)
        assert order.state == "shipped"
        assert order.confirmed_at is None

    def test_unknown_state_is_fatal(self):
        order = Order(state="on_hold")
        with pytest.raises(InvalidStateError, match="Invalid State 'on_hold'"):
            order.confirm(T0)
        with pytest.raises(InvalidStateError):
            order.is_active()

    def test_handler_is_resolved_fresh(self):
        order = Order()
        assert order.order_state.state is State.RECEIVED
        order.confirm(T0)
        assert order.order_state.state is State.CONFIRMED

    def test_state_is_stored_as_plain_tag(self):
        order = Order()
        order.confirm(T0)
        assert order.state == "confirmed"
        assert type(order.state) is str

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="Unknown Order fields"):
            Order().update(shipped_at=T0)

    def test_add_part_while_received(self):
        order = Order()
        entry = ProductionEntry(description="bracket", quantity=4)
        order.add_part(callback=lambda: order.add_production_entry(entry))
        assert order.production_entries == [entry]
        assert order.state == "received"

    def test_add_part_after_confirm_fails(self):
        order = Order()
        order.confirm(T0)
        with pytest.raises(TransitionError, match="Can't add_part from 'confirmed' state"):
            order.add_part(callback=lambda: None)


# ── Guards ───────────────────────────────────────────────────────────────────

class TestGuards:
    def test_default_guards_allow_everything(self):
        order = Order()
        assert order.can_confirm() and order.can_complete() and order.can_ship()

    def test_default_guards_fast_forward_release_to_shipped(self):
        order = Order()
        order.confirm(at(1))
        order.release(at(2))
        assert order.state == "shipped"
        assert order.started_at == at(2)
        assert order.completed_at == at(2)
        assert order.released_at is None

    def test_confirm_blocked_by_guard(self):
        order = GatedOrder()
        order.confirmable = False
        with pytest.raises(TransitionError):
            order.confirm(T0)
        assert order.state == "received"
        assert order.confirmed_at is None

    def test_start_is_idempotent(self):
        order = GatedOrder(state="in_progress", started_at=at(1))
        order.start(at(5))
        assert order.state == "in_progress"
        assert order.started_at == at(1)

        order = GatedOrder(state="ready_to_ship", started_at=at(1))
        order.start(at(5))
        assert order.state == "ready_to_ship"
        assert order.started_at == at(1)

    def test_ship_returns_callback_result_when_demoted(self):
        order = GatedOrder(state="ready_to_ship")
        assert order.ship(at(1), callback=lambda: "tracking-7") == "tracking-7"
        assert order.state == "in_progress"
        assert order.completed_at is None


# ── Composite actions ────────────────────────────────────────────────────────

class TestCancel:
    def test_cancel_cancels_every_entry(self):
        order = Order()
        entries = [ProductionEntry(description=d, quantity=1) for d in ("frame", "panel")]
        order.production_entries.extend(entries)
        order.cancel(at(3))
        assert order.state == "cancelled"
        assert order.cancelled_at == at(3)
        assert all(e.status == "cancelled" and e.cancelled_at == at(3) for e in entries)

    def test_cancel_without_time_stamps_order_and_entries_alike(self):
        order = Order()
        entries = [ProductionEntry(description=d) for d in ("frame", "panel")]
        order.production_entries.extend(entries)
        order.cancel()
        assert order.cancelled_at is not None
        assert all(e.cancelled_at == order.cancelled_at for e in entries)

    def test_cancel_from_every_cancellable_state(self):
        for state in ("received", "confirmed", "released", "in_progress", "ready_to_ship"):
            order = Order(state=state)
            order.cancel(at(1))
            assert order.state == "cancelled"
            assert order.cancelled_at == at(1)

    def test_cancel_shipped_leaves_entries_alone(self):
        order = Order(state="shipped")
        entry = ProductionEntry(description="frame")
        order.production_entries.append(entry)
        with pytest.raises(TransitionError, match="Can't cancel from 'shipped' state"):
            order.cancel(at(1))
        assert order.state == "shipped"
        assert entry.status == "open"

    def test_cancel_is_all_or_nothing(self):
        order = Order(state="confirmed")
        good = ProductionEntry(description="frame")
        order.production_entries.extend([good, FaultyEntry(description="panel")])
        with pytest.raises(RuntimeError, match="scanner offline"):
            order.cancel(at(1))
        assert order.state == "confirmed"
        assert order.cancelled_at is None
        assert good.status == "open"
        assert good.cancelled_at is None


class TestClose:
    def test_close_consumes_every_entry(self):
        order = Order(state="shipped")
        entries = [ProductionEntry(description=d) for d in ("frame", "panel")]
        order.production_entries.extend(entries)
        order.close(at(4))
        assert order.state == "closed"
        assert order.closed_at == at(4)
        assert [e.status for e in entries] == ["consumed", "consumed"]
        assert all(e.consumed_at == at(4) for e in entries)

    def test_close_without_time_stamps_order_and_entries_alike(self):
        order = Order(state="shipped")
        entries = [ProductionEntry(description=d) for d in ("frame", "panel")]
        order.production_entries.extend(entries)
        order.close()
        assert order.closed_at is not None
        assert all(e.consumed_at == order.closed_at for e in entries)

    def test_close_before_shipping_fails(self):
        order = Order(state="ready_to_ship")
        with pytest.raises(TransitionError, match="Can't close from 'ready_to_ship' state"):
            order.close(at(1))

    def test_close_is_all_or_nothing(self):
        order = Order(state="shipped")
        good = ProductionEntry(description="frame")
        order.production_entries.extend([good, FaultyEntry(description="panel")])
        with pytest.raises(RuntimeError):
            order.close(at(1))
        assert order.state == "shipped"
        assert order.closed_at is None
        assert good.status == "open"

    def test_failed_callback_rolls_back_added_entries(self):
        order = Order()

        def attach_then_fail():
            order.add_production_entry(ProductionEntry(description="bolt"))
            raise RuntimeError("part not in catalogue")

        with pytest.raises(RuntimeError):
            order.add_part(callback=attach_then_fail)
        assert order.production_entries == []


# ── End to end ───────────────────────────────────────────────────────────────

class TestLifecycle:
    def test_full_lifecycle_records_ordered_timestamps(self):
        order = GatedOrder(reference="PO-2001")
        order.production_entries.append(ProductionEntry(description="frame", quantity=2))

        order.confirm(at(1))
        assert order.state == "confirmed"
        order.release(at(2))
        assert order.state == "released"
        order.start(at(3))
        assert order.state == "in_progress"

        order.shippable = True
        order.make_shippable(at(4))
        assert order.state == "ready_to_ship"

        def hand_to_carrier():
            order.completable = True
            return "tracking-1"

        assert order.ship(at(5), callback=hand_to_carrier) == "tracking-1"
        assert order.state == "shipped"
        assert order.completed_at == at(5)

        order.close(at(6))
        assert order.state == "closed"
        assert order.is_closed()
        assert not order.is_active()
        assert order.production_entries[0].status == "consumed"

        stamps = [order.confirmed_at, order.released_at, order.started_at, order.closed_at]
        assert None not in stamps
        assert stamps == sorted(stamps)
