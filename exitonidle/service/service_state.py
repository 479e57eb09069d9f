from enum import Enum


class ServiceState(Enum):
    RUNNING = "STATE_RUNNING"
    FLUSHING = "STATE_FLUSHING"
    EXITING = "STATE_EXITING"

    @property
    def order(self) -> int:
        return _STATE_ORDER[self]

    def can_transition_to(self, state: "ServiceState") -> bool:
        return state.order == self.order + 1


_STATE_ORDER = {
    ServiceState.RUNNING: 0,
    ServiceState.FLUSHING: 1,
    ServiceState.EXITING: 2,
}
