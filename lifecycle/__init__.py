"""
Order lifecycle state machine: state tags, per-state handlers, the resolver
and the action surface mixed into the order aggregate.
"""

from lifecycle.states import State, STATES, InvalidStateError, TransitionError
from lifecycle.resolver import get_state
from lifecycle.dispatcher import OrderStateMixin

__all__ = [
    "State", "STATES", "InvalidStateError", "TransitionError",
    "get_state", "OrderStateMixin",
]
