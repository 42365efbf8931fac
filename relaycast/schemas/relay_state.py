"""Common enums used across schemas."""

from enum import Enum


class RelayProcessState(str, Enum):
    """Relay (MediaMTX) process lifecycle states.

    State Transition Flow:

    STOPPED → STARTING → RUNNING → STOPPING → STOPPED
                 ↓          ↓
               FAILED ←─────┘
                 ↓
              STARTING (retry via start())

    State Descriptions:
    - STOPPED: No process. Initial state, and the state after a clean stop().
    - STARTING: Config written, process spawned, waiting for the control API readiness probe.
    - RUNNING: Control API answered the readiness probe.
    - STOPPING: Termination signal sent, waiting for the process to exit.
    - FAILED: Spawn failure, readiness timeout, a failed health probe or an unexpected exit.
      Only another start() recovers from it.
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class StreamProbe(str, Enum):
    """Outcome of the live-source check behind `streamActive`."""

    OK = "ok"
    UNREACHABLE = "unreachable"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


__all__ = ["RelayProcessState", "StreamProbe"]
