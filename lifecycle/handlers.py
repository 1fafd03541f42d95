"""
State handlers, one class per order state.

A handler is created per operation from the order's current state and holds
a reference to that order. StateHandler spells out the full action surface:
queries answer False and commands raise TransitionError. Each state subclass
overrides only what is legal from that state.

Every command accepts:

    time:      timestamp recorded on the order (defaults to now, UTC)
    callback:  zero-argument callable run as part of the transition,
               before the order's state and timestamps are written

    handler = Received(order)
    handler.confirm(callback=lambda: client.add_production_entry(order, entry))
"""

import logging
from datetime import datetime, timezone

from lifecycle.states import State, TransitionError, state_value

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


def _run(callback):
    if callback is None:
        return None
    return callback()


class StateHandler:
    """Default behaviour shared by every state."""

    state = None

    def __init__(self, order):
        self._order = order

    def _reject(self, action):
        raise TransitionError(
            action, state_value(self._order.state), owner=type(self._order).__name__
        )

    def _apply(self, action, **fields):
        logger.debug(
            "%s %s: %s -> %s", type(self._order).__name__, action,
            state_value(self._order.state), state_value(fields.get("state")),
        )
        self._order.update(**fields)

    # ── Queries ──────────────────────────────────────────────────────

    def is_received(self):
        return False

    def is_confirmed(self):
        return False

    def is_released(self):
        return False

    def is_shipped(self):
        return False

    def is_closed(self):
        return False

    def is_cancelled(self):
        return False

    def can_edit(self):
        return True

    def can_cancel(self):
        return False

    def is_active(self):
        return True

    # ── Commands ─────────────────────────────────────────────────────

    def add_part(self, callback=None):
        self._reject("add_part")

    def confirm(self, time=None, callback=None):
        self._reject("confirm")

    def release(self, time=None, callback=None):
        self._reject("release")

    def start(self, time=None, callback=None):
        self._reject("start")

    def make_shippable(self, time=None, callback=None):
        self._reject("make_shippable")

    def complete(self, time=None, callback=None):
        self._reject("complete")

    def ship(self, time=None, callback=None):
        self._reject("ship")

    def close(self, time=None, callback=None):
        self._reject("close")

    def cancel(self, time=None, callback=None):
        self._reject("cancel")


class Cancellable(StateHandler):
    """States an order can still be cancelled from."""

    def cancel(self, time=None, callback=None):
        time = time or _now()
        _run(callback)
        self._apply("cancel", state=State.CANCELLED, cancelled_at=time)

    def can_cancel(self):
        return True


class Received(Cancellable):
    state = State.RECEIVED

    def is_received(self):
        return True

    def add_part(self, callback=None):
        _run(callback)

    def confirm(self, time=None, callback=None):
        if not self._order.can_confirm():
            raise TransitionError("confirm", state_value(self._order.state))
        time = time or _now()
        _run(callback)
        self._apply("confirm", state=State.CONFIRMED, confirmed_at=time)


class Confirmed(Cancellable):
    state = State.CONFIRMED

    def is_confirmed(self):
        return True

    def release(self, time=None, callback=None):
        time = time or _now()
        _run(callback)

        # Ship-check before complete-check; both skip straight to shipped.
        if self._order.can_ship():
            self._apply("release", state=State.SHIPPED, started_at=time, completed_at=time)
        elif self._order.can_complete():
            self._apply("release", state=State.SHIPPED, started_at=time, completed_at=time)
        else:
            self._apply("release", state=State.RELEASED, released_at=time)


class Released(Cancellable):
    state = State.RELEASED

    def is_released(self):
        return True

    def start(self, time=None, callback=None):
        time = time or _now()
        _run(callback)

        if self._order.can_ship():
            self._apply("start", state=State.READY_TO_SHIP)
        elif self._order.can_complete():
            self._apply("start", state=State.SHIPPED, completed_at=time)
        else:
            self._apply("start", state=State.IN_PROGRESS, started_at=time)


class InProgress(Cancellable):
    state = State.IN_PROGRESS

    def start(self, time=None, callback=None):
        pass

    def make_shippable(self, time=None, callback=None):
        time = time or _now()
        _run(callback)

        if self._order.can_complete():
            self._apply("make_shippable", state=State.SHIPPED, completed_at=time)
        elif self._order.can_ship():
            self._apply("make_shippable", state=State.READY_TO_SHIP)

    def complete(self, time=None, callback=None):
        if not self._order.can_complete():
            return
        time = time or _now()
        _run(callback)
        self._apply("complete", state=State.SHIPPED, completed_at=time)


class ReadyToShip(Cancellable):
    state = State.READY_TO_SHIP

    def start(self, time=None, callback=None):
        pass

    def make_shippable(self, time=None, callback=None):
        time = time or _now()
        _run(callback)

        if self._order.can_complete():
            self._apply("make_shippable", state=State.SHIPPED, completed_at=time)

    def ship(self, time=None, callback=None):
        """
        Ship the order and return whatever the callback returned.

        The callback may change the production entries can_complete() reads,
        so the order is re-read before the guard. An order that turns out
        not to be complete drops back to in_progress.
        """
        time = time or _now()
        result = _run(callback)

        self._order.reload()

        if self._order.can_complete():
            self._apply("ship", state=State.SHIPPED, completed_at=time)
        else:
            self._apply("ship", state=State.IN_PROGRESS)
        return result

    def complete(self, time=None, callback=None):
        if not self._order.can_complete():
            return
        time = time or _now()
        _run(callback)
        self._apply("complete", state=State.SHIPPED, completed_at=time)


class Shipped(StateHandler):
    state = State.SHIPPED

    def is_shipped(self):
        return True

    def can_edit(self):
        return False

    def close(self, time=None, callback=None):
        time = time or _now()
        _run(callback)
        self._apply("close", state=State.CLOSED, closed_at=time)


class Closed(StateHandler):
    state = State.CLOSED

    def is_closed(self):
        return True

    def can_edit(self):
        return False

    def is_active(self):
        return False


class Cancelled(StateHandler):
    state = State.CANCELLED

    def is_cancelled(self):
        return True

    def can_edit(self):
        return False

    def is_active(self):
        return False
