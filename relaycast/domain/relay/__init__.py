from .relay_state_machine import RelayStateMachine
from .status import RelayStatusService
from .supervisor import RelaySupervisor, get_relay_supervisor

__all__ = [
    "RelayStateMachine",
    "RelayStatusService",
    "RelaySupervisor",
    "get_relay_supervisor",
]
