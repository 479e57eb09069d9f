from .rearmable_timer import (
    PendingTimer as PendingTimer,
    RearmableTimer as RearmableTimer,
    TimerKind as TimerKind,
    TimerSet as TimerSet,
)
