"""Connection state machine for a playback session."""

from .playback_models import ConnectionState


class PlaybackStateMachine:
    """Valid connection state transitions of a preview slot.

    - DISCONNECTED -> CONNECTING (connect) | ERROR (retry refused)
    - CONNECTING -> CONNECTED | ERROR (all transports failed) | DISCONNECTED (teardown, transport dropped)
    - CONNECTED -> DISCONNECTED (transport closed) | ERROR (fatal playback error)
    - ERROR -> CONNECTING (manual or bounded auto retry) | DISCONNECTED (stream inactive)

    There is no CONNECTING -> CONNECTING edge: a new attempt tears the
    outstanding one down first (CONNECTING -> DISCONNECTED -> CONNECTING).
    """

    TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
        ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING, ConnectionState.ERROR},
        ConnectionState.CONNECTING: {
            ConnectionState.CONNECTED,
            ConnectionState.ERROR,
            ConnectionState.DISCONNECTED,
        },
        ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED, ConnectionState.ERROR},
        ConnectionState.ERROR: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
    }

    @classmethod
    def can_transition(cls, current: ConnectionState, new: ConnectionState) -> bool:
        return new in cls.TRANSITIONS.get(current, set())
