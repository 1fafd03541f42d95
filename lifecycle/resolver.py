"""
State resolver: maps an order's state tag to its handler.
"""

from lifecycle.handlers import (
    Cancelled, Closed, Confirmed, InProgress, ReadyToShip, Received,
    Released, Shipped,
)
from lifecycle.states import InvalidStateError, State

HANDLERS = {
    State.RECEIVED: Received,
    State.CONFIRMED: Confirmed,
    State.RELEASED: Released,
    State.IN_PROGRESS: InProgress,
    State.READY_TO_SHIP: ReadyToShip,
    State.SHIPPED: Shipped,
    State.CLOSED: Closed,
    State.CANCELLED: Cancelled,
}

_missing = set(State) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler for states: {sorted(s.value for s in _missing)}")


def get_state(order):
    """
    Return the handler for the order's current state, bound to the order.

    The tag may be a State member or the raw string read from storage.
    Raises InvalidStateError for anything else.
    """
    try:
        state = State(order.state)
    except ValueError:
        raise InvalidStateError(order.state) from None
    return HANDLERS[state](order)
