"""
Order lifecycle states and the errors raised by the state machine.

The state tag is a closed set: anything outside it read back from storage is
a data-integrity fault (InvalidStateError), while an action the current state
does not support is an ordinary caller mistake (TransitionError).
"""

from enum import Enum


class State(str, Enum):
    """Lifecycle stage of an order."""
    RECEIVED = "received"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    IN_PROGRESS = "in_progress"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    CLOSED = "closed"
    CANCELLED = "cancelled"


STATES = tuple(s.value for s in State)

CANCELLABLE_STATES = (
    State.RECEIVED,
    State.CONFIRMED,
    State.RELEASED,
    State.IN_PROGRESS,
    State.READY_TO_SHIP,
)

# The uniform action surface every handler answers to.
QUERIES = (
    "is_received", "is_confirmed", "is_released", "is_shipped",
    "is_closed", "is_cancelled", "is_active",
)
COMMANDS = (
    "add_part", "confirm", "release", "start", "make_shippable",
    "complete", "ship", "close", "cancel",
)


class InvalidStateError(Exception):
    """Raised when an order carries a state tag outside the known set."""

    def __init__(self, state):
        self.state = state
        super().__init__(f"Invalid State '{state}'")


class TransitionError(Exception):
    """Raised when an action is not legal from the order's current state."""

    def __init__(self, action, state, owner=None):
        self.action = action
        self.state = state
        self.owner = owner
        prefix = f"{owner}: " if owner else ""
        super().__init__(f"{prefix}Can't {action} from '{state}' state")


def state_value(state):
    """Return the plain string tag for a State member or a raw tag."""
    if isinstance(state, State):
        return state.value
    return state
