"""
OrderStateMixin: the action surface of an order.

Each call resolves a fresh handler from the order's current state and
forwards the arguments unchanged. Commands run inside the order's
transaction() so the callback, any re-read and the final write form one
atomic unit.

The host class must provide:
    state                                   the current state tag
    update(**fields), reload(), transaction()
    can_confirm(), can_complete(), can_ship()
"""

from lifecycle.resolver import get_state


class OrderStateMixin:

    @property
    def order_state(self):
        return get_state(self)

    # ── Queries ──────────────────────────────────────────────────────

    def is_received(self):
        return self.order_state.is_received()

    def is_confirmed(self):
        return self.order_state.is_confirmed()

    def is_released(self):
        return self.order_state.is_released()

    def is_shipped(self):
        return self.order_state.is_shipped()

    def is_closed(self):
        return self.order_state.is_closed()

    def is_cancelled(self):
        return self.order_state.is_cancelled()

    def is_active(self):
        return self.order_state.is_active()

    def can_edit(self):
        return self.order_state.can_edit()

    def can_cancel(self):
        return self.order_state.can_cancel()

    def can_add_item(self):
        return self.order_state.is_received()

    # ── Commands ─────────────────────────────────────────────────────

    def add_part(self, callback=None):
        with self.transaction():
            return self.order_state.add_part(callback=callback)

    def confirm(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.confirm(time, callback=callback)

    def release(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.release(time, callback=callback)

    def start(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.start(time, callback=callback)

    def make_shippable(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.make_shippable(time, callback=callback)

    def complete(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.complete(time, callback=callback)

    def ship(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.ship(time, callback=callback)

    def close(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.close(time, callback=callback)

    def cancel(self, time=None, callback=None):
        with self.transaction():
            return self.order_state.cancel(time, callback=callback)
