"""Relay process state machine for validating lifecycle transitions."""

from relaycast.schemas import RelayProcessState


class RelayStateMachine:
    """State machine for the relay process lifecycle.

    State flow with triggers:
    - STOPPED -> STARTING (start() called)
    - STARTING -> RUNNING (control API answered the readiness probe)
               | FAILED (spawn error, early exit or readiness timeout)
               | STOPPING (stop() while a spawned process is being torn down)
    - RUNNING -> STOPPING (stop() called) | FAILED (health probe failed or process exited)
    - STOPPING -> STOPPED (process exited or was killed)
    - FAILED -> STARTING (start() retry only; stop() leaves FAILED in place)
    """

    TRANSITIONS: dict[RelayProcessState, set[RelayProcessState]] = {
        RelayProcessState.STOPPED: {RelayProcessState.STARTING},
        RelayProcessState.STARTING: {
            RelayProcessState.RUNNING,
            RelayProcessState.FAILED,
            RelayProcessState.STOPPING,
        },
        RelayProcessState.RUNNING: {
            RelayProcessState.STOPPING,
            RelayProcessState.FAILED,
        },
        RelayProcessState.STOPPING: {RelayProcessState.STOPPED},
        RelayProcessState.FAILED: {RelayProcessState.STARTING},
    }

    # States in which a process may be alive
    ACTIVE_STATES: set[RelayProcessState] = {
        RelayProcessState.STARTING,
        RelayProcessState.RUNNING,
        RelayProcessState.STOPPING,
    }

    @classmethod
    def can_transition(cls, current: RelayProcessState, new: RelayProcessState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current relay state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_active(cls, state: RelayProcessState) -> bool:
        return state in cls.ACTIVE_STATES

    @classmethod
    def get_valid_transitions(cls, state: RelayProcessState) -> set[RelayProcessState]:
        return cls.TRANSITIONS.get(state, set())
