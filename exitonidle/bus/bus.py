from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from exitonidle.errors import RemoteMethodError

from .models import (
    ERROR_UNKNOWN_METHOD,
    MethodCall,
    NameOwnerChanged,
)


MethodHandler = Callable[..., Awaitable[Any]]
NameAppearedCallback = Callable[[str, str], Any]
NameVanishedCallback = Callable[[str], Any]


@dataclass(slots=True)
class NameWatch:
    watch_id: int
    name: str
    on_appeared: NameAppearedCallback
    on_vanished: NameVanishedCallback
    owner: str | None = None
    reported: bool = False


class ObjectTable:
    """Objects this connection exports, keyed by (path, interface)."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], dict[str, MethodHandler]] = {}

    def export(
        self,
        path: str,
        interface: str,
        methods: dict[str, MethodHandler],
    ):
        self._objects[(path, interface)] = dict(methods)

    def unexport(
        self,
        path: str,
        interface: str,
    ):
        self._objects.pop((path, interface), None)

    async def invoke(self, call: MethodCall) -> Any:
        methods = self._objects.get((call.path, call.interface))
        handler = methods.get(call.method) if methods else None

        if handler is None:
            raise RemoteMethodError(
                f"No such method {call.interface}.{call.method} at {call.path}",
                error_name=ERROR_UNKNOWN_METHOD,
            )

        return await handler(*call.args)


class Bus(ABC):
    """
    One process's connection to the message bus.

    Concrete buses provide the transport; this base keeps the exported
    object table and turns NameOwnerChanged signals into appeared and
    vanished callbacks for name watches.
    """

    def __init__(self) -> None:
        self.unique_name: str | None = None
        self.objects = ObjectTable()
        self._watches: dict[int, NameWatch] = {}
        self._watch_ids = itertools.count(1)
        self._disconnect_callbacks: list[Callable[[Exception | None], Any]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def connect(self) -> str:
        pass

    @abstractmethod
    async def close(self):
        pass

    @abstractmethod
    async def request_name(self, name: str) -> int:
        pass

    @abstractmethod
    async def release_name(self, name: str) -> int:
        pass

    @abstractmethod
    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        method: str,
        args: list[Any] | None = None,
    ) -> Any:
        pass

    @abstractmethod
    async def start_service(self, name: str) -> int:
        pass

    @abstractmethod
    async def notify(self, state: str):
        pass

    @abstractmethod
    async def _add_watch(
        self,
        name: str,
        auto_start: bool,
    ) -> str | None:
        pass

    @abstractmethod
    async def _remove_watch(self, name: str):
        pass

    def export(
        self,
        path: str,
        interface: str,
        methods: dict[str, MethodHandler],
    ):
        self.objects.export(path, interface, methods)

    def on_disconnect(
        self,
        callback: Callable[[Exception | None], Any],
    ):
        self._disconnect_callbacks.append(callback)

    async def watch_name(
        self,
        name: str,
        on_appeared: NameAppearedCallback,
        on_vanished: NameVanishedCallback,
        auto_start: bool = False,
    ) -> int:
        watch = NameWatch(
            watch_id=next(self._watch_ids),
            name=name,
            on_appeared=on_appeared,
            on_vanished=on_vanished,
        )

        self._watches[watch.watch_id] = watch

        current_owner = await self._add_watch(name, auto_start)

        if watch.reported is False:
            self._report(watch, current_owner)

        return watch.watch_id

    async def unwatch_name(self, watch_id: int):
        watch = self._watches.pop(watch_id, None)
        if watch is None:
            return

        still_watched = any(
            other.name == watch.name for other in self._watches.values()
        )

        if still_watched is False and self._closed is False:
            await self._remove_watch(watch.name)

    def handle_owner_changed(self, signal: NameOwnerChanged):
        for watch in list(self._watches.values()):
            if watch.name == signal.name:
                self._report(watch, signal.new_owner)

    def _report(
        self,
        watch: NameWatch,
        owner: str | None,
    ):
        if watch.reported and watch.owner == owner:
            return

        watch.reported = True
        watch.owner = owner

        if owner:
            watch.on_appeared(watch.name, owner)

        else:
            watch.on_vanished(watch.name)

    def _run_disconnect_callbacks(self, exc: Exception | None):
        callbacks = list(self._disconnect_callbacks)
        self._disconnect_callbacks.clear()

        for callback in callbacks:
            callback(exc)

        for watch in list(self._watches.values()):
            if watch.owner is not None:
                self._report(watch, None)

    async def _invoke_exported(self, call: MethodCall) -> Any:
        return await self.objects.invoke(call)
