from .notifier import (
    BusNotifier as BusNotifier,
    NullNotifier as NullNotifier,
    Supervisor as Supervisor,
    SystemdNotifier as SystemdNotifier,
)
