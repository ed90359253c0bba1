"""State machines for the engine connection and the input session."""

from __future__ import annotations

from enum import Enum, auto
import logging


class InputMode(Enum):
    """What the input session is currently showing."""

    DISABLED = auto()
    IDLE = auto()
    PREEDIT = auto()  # kana/romaji buffered, no candidates
    CANDIDATE_FALLBACK = auto()  # flat candidate list, one selection
    SEGMENTED = auto()  # segment list, one active segment


class ConnectionState(Enum):
    NOT_STARTED = auto()
    SPAWNING = auto()
    INITIALIZING = auto()
    READY = auto()
    STOPPING = auto()
    STOPPED = auto()


class ConnectionEvent(Enum):
    START = auto()
    SPAWNED = auto()
    INIT_DONE = auto()
    STOP = auto()
    FAIL = auto()
    EXITED = auto()


_TRANSITIONS = {
    ConnectionState.NOT_STARTED: {
        ConnectionEvent.START: ConnectionState.SPAWNING,
    },
    ConnectionState.SPAWNING: {
        ConnectionEvent.SPAWNED: ConnectionState.INITIALIZING,
        ConnectionEvent.STOP: ConnectionState.STOPPING,
        ConnectionEvent.FAIL: ConnectionState.STOPPED,
    },
    ConnectionState.INITIALIZING: {
        ConnectionEvent.INIT_DONE: ConnectionState.READY,
        ConnectionEvent.STOP: ConnectionState.STOPPING,
        ConnectionEvent.FAIL: ConnectionState.STOPPING,
        ConnectionEvent.EXITED: ConnectionState.STOPPED,
    },
    ConnectionState.READY: {
        ConnectionEvent.STOP: ConnectionState.STOPPING,
        ConnectionEvent.EXITED: ConnectionState.STOPPED,
    },
    ConnectionState.STOPPING: {
        ConnectionEvent.EXITED: ConnectionState.STOPPED,
        ConnectionEvent.FAIL: ConnectionState.STOPPED,
    },
    ConnectionState.STOPPED: {
        ConnectionEvent.START: ConnectionState.SPAWNING,
    },
}

# States in which a process exists (or is about to)
LIVE_STATES = frozenset(
    {
        ConnectionState.SPAWNING,
        ConnectionState.INITIALIZING,
        ConnectionState.READY,
        ConnectionState.STOPPING,
    }
)


class ConnectionStateMachine:
    def __init__(self):
        self.state = ConnectionState.NOT_STARTED

    def can(self, event: ConnectionEvent) -> bool:
        return event in _TRANSITIONS.get(self.state, {})

    def transition(self, event: ConnectionEvent) -> ConnectionState:
        next_state = _TRANSITIONS.get(self.state, {}).get(event, self.state)
        if next_state == self.state and event not in _TRANSITIONS.get(self.state, {}):
            logging.getLogger(__name__).warning(
                "Invalid connection transition: %s --%s--> %s", self.state, event, next_state
            )
        self.state = next_state
        return self.state

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES
