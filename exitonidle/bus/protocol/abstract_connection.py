from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from exitonidle.bus.models import Message

if TYPE_CHECKING:
    from .bus_protocol import BusProtocol


class AbstractConnection(ABC):

    @abstractmethod
    def connection_made(
        self,
        protocol: BusProtocol,
    ):
        pass

    @abstractmethod
    def read(
        self,
        message: Message,
    ):
        pass

    @abstractmethod
    def protocol_error(
        self,
        err: Exception,
    ):
        pass

    @abstractmethod
    def connection_lost(
        self,
        exc: Exception | None,
    ):
        pass
