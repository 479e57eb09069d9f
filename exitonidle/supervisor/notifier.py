from __future__ import annotations

import os
import socket
from abc import ABC, abstractmethod

from exitonidle.bus import Bus
from exitonidle.errors import BusError


class Supervisor(ABC):
    """Receives sd_notify-style state lines such as READY=1 or STOPPING=1."""

    @abstractmethod
    async def notify(self, state: str):
        pass


class BusNotifier(Supervisor):
    """Reports state to the bus daemon, which doubles as the supervisor."""

    def __init__(self, bus: Bus) -> None:
        self._bus = bus

    async def notify(self, state: str):
        await self._bus.notify(state)


class SystemdNotifier(Supervisor):
    """
    Sends state to the service manager over $NOTIFY_SOCKET.

    Behaves like sd_notify(): when the variable is unset the process was
    not started by a notify-aware manager and every call is a no-op.
    Socket names starting with "@" live in the abstract namespace.
    """

    def __init__(self, notify_socket: str | None = None) -> None:
        if notify_socket is None:
            notify_socket = os.getenv("NOTIFY_SOCKET")

        self.address = notify_socket

    @property
    def enabled(self) -> bool:
        return bool(self.address)

    async def notify(self, state: str):
        if not self.enabled:
            return

        address = self.address
        if address.startswith("@"):
            address = "\0" + address[1:]

        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as notify_socket:
                notify_socket.sendto(state.encode(), address)

        except OSError as err:
            raise BusError(
                f"Failed to notify service manager: {err}",
                notify_socket=self.address,
            ) from err


class NullNotifier(Supervisor):

    async def notify(self, state: str):
        pass
