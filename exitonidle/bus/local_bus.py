from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Callable

from exitonidle.errors import BusError, RemoteMethodError

from .bus import Bus
from .models import ERROR_NO_REPLY, MethodCall, NameOwnerChanged
from .registry import Activator, NameRegistry, Peer, ServiceInstance


DeliveryDelay = Callable[[MethodCall], float]
ServiceFactory = Callable[[str], Awaitable[int]]


class LocalBusHub:
    """
    An in-process message bus.

    Every LocalBus created by the hub shares one NameRegistry. Calls are
    delivered in the order they are issued unless a delivery delay function
    is given, in which case each call sleeps for the returned number of
    seconds first. A non-constant delay turns the hub into a transport that
    may reorder calls from the same connection.
    """

    def __init__(
        self,
        delivery_delay: DeliveryDelay | None = None,
        registry: NameRegistry | None = None,
    ) -> None:
        self.registry = registry or NameRegistry()
        self.delivery_delay = delivery_delay
        self.buses: list[LocalBus] = []

    def create_bus(self) -> LocalBus:
        bus = LocalBus(self)
        self.buses.append(bus)

        return bus

    def register_unit(
        self,
        name: str,
        factory: ServiceFactory,
    ):
        return self.registry.register_unit(
            name,
            CoroutineActivator(factory),
        )

    async def close(self):
        for bus in list(self.buses):
            if bus.closed is False:
                await bus.close()

        for unit in self.registry.units.values():
            if unit.run_task and not unit.run_task.done():
                unit.run_task.cancel()

                try:
                    await unit.run_task

                except asyncio.CancelledError:
                    pass


class LocalBus(Bus, Peer):
    def __init__(self, hub: LocalBusHub) -> None:
        super().__init__()
        self._hub = hub
        self._registry = hub.registry
        self._serials = itertools.count(1)
        self.sent_calls: list[MethodCall] = []

    async def connect(self) -> str:
        if self.unique_name is None:
            self.unique_name = self._registry.next_unique_name()
            self._registry.add_peer(self)

        return self.unique_name

    async def close(self):
        if self._closed:
            return

        self._closed = True
        self._registry.peer_disconnected(self)
        self._run_disconnect_callbacks(None)

    async def request_name(self, name: str) -> int:
        self._ensure_open()
        return self._registry.request_name(self, name)

    async def release_name(self, name: str) -> int:
        self._ensure_open()
        return self._registry.release_name(self, name)

    async def notify(self, state: str):
        self._ensure_open()
        self._registry.notify(self, state)

    async def start_service(self, name: str) -> int:
        self._ensure_open()
        return await self._registry.start_service(name)

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        method: str,
        args: list[Any] | None = None,
    ) -> Any:
        self._ensure_open()

        call = MethodCall(
            serial=next(self._serials),
            destination=destination,
            path=path,
            interface=interface,
            method=method,
            args=args or [],
            sender=self.unique_name,
        )

        self.sent_calls.append(call)

        if self._hub.delivery_delay:
            delay = self._hub.delivery_delay(call)
            if delay > 0:
                await asyncio.sleep(delay)

        return await self._registry.dispatch(call)

    async def deliver(self, call: MethodCall) -> Any:
        if self._closed:
            raise RemoteMethodError(
                f"{self.unique_name} disconnected before replying",
                error_name=ERROR_NO_REPLY,
            )

        return await self._invoke_exported(call)

    def emit(self, signal: NameOwnerChanged):
        if self._closed:
            return

        asyncio.get_running_loop().call_soon(
            self._emit_if_open,
            signal,
        )

    def _emit_if_open(self, signal: NameOwnerChanged):
        if self._closed is False:
            self.handle_owner_changed(signal)

    async def _add_watch(
        self,
        name: str,
        auto_start: bool,
    ) -> str | None:
        self._ensure_open()
        return self._registry.watch(self, name, auto_start=auto_start)

    async def _remove_watch(self, name: str):
        self._registry.unwatch(self, name)

    def _ensure_open(self):
        if self._closed:
            raise BusError("Bus connection is closed")

        if self.unique_name is None:
            raise BusError("Bus connection has not been established")


class TaskInstance(ServiceInstance):
    def __init__(self, task: asyncio.Task) -> None:
        self.task = task

    async def wait(self) -> int:
        try:
            return await self.task

        except asyncio.CancelledError:
            raise

        except Exception:
            return 1


class CoroutineActivator(Activator):
    """Activates a unit by running a service coroutine on the current loop."""

    def __init__(self, factory: ServiceFactory) -> None:
        self._factory = factory
        self.instances: list[TaskInstance] = []

    async def start(self, name: str) -> ServiceInstance:
        instance = TaskInstance(
            asyncio.ensure_future(self._factory(name)),
        )

        self.instances.append(instance)
        instance.task.add_done_callback(
            lambda _: self.instances.remove(instance),
        )

        return instance
