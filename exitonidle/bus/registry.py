"""
Name registry shared by the in-process and TCP buses.

Besides name ownership and method routing, the registry plays the part of
the process supervisor for activatable names: it starts a unit when a call
(or an auto-starting watch) targets an unowned name, and tracks the unit's
lifecycle:

    INACTIVE -> ACTIVATING -> ACTIVE -> DEACTIVATING -> INACTIVE

A unit only reaches DEACTIVATING when its owner announces STOPPING=1. If an
owner drops its name while the unit is still ACTIVE, the supervisor believes
the old instance is alive and refuses to start another one, so calls that
arrive in that window fail with ActivationError. An instance that exits
before ever acquiring its name fails the queued calls the same way instead
of being started again.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from exitonidle.errors import ActivationError, ServiceUnknownError

from .models import (
    RELEASE_NAME_NON_EXISTENT,
    RELEASE_NAME_NOT_OWNER,
    RELEASE_NAME_RELEASED,
    REQUEST_NAME_ALREADY_OWNER,
    REQUEST_NAME_EXISTS,
    REQUEST_NAME_PRIMARY_OWNER,
    START_REPLY_ALREADY_RUNNING,
    START_REPLY_SUCCESS,
    MethodCall,
    NameOwnerChanged,
)


class Peer(ABC):
    unique_name: str

    @abstractmethod
    async def deliver(self, call: MethodCall) -> Any:
        """Hand a call to this peer's exported object and await its reply."""

    @abstractmethod
    def emit(self, signal: NameOwnerChanged):
        """Forward a name owner change to this peer."""


class ServiceInstance(ABC):

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the instance to exit and return its exit status."""


class Activator(ABC):

    @abstractmethod
    async def start(self, name: str) -> ServiceInstance:
        pass


class UnitState(Enum):
    INACTIVE = "inactive"
    ACTIVATING = "activating"
    ACTIVE = "active"
    DEACTIVATING = "deactivating"


# Exit statuses and notifications kept per unit.
UNIT_HISTORY = 32


class ServiceUnit:
    def __init__(
        self,
        name: str,
        activator: Activator,
    ) -> None:
        self.name = name
        self.activator = activator
        self.state = UnitState.INACTIVE
        self.owner_peer: Peer | None = None
        self.instance: ServiceInstance | None = None
        self.waiting: asyncio.Future[Peer] | None = None
        self.start_count = 0
        self.exit_statuses: deque[int] = deque(maxlen=UNIT_HISTORY)
        self.notifications: deque[str] = deque(maxlen=UNIT_HISTORY)
        self.run_task: asyncio.Task | None = None

    @property
    def has_waiters(self) -> bool:
        return self.waiting is not None and self.waiting.done() is False


class NameRegistry:
    def __init__(self) -> None:
        self._owners: dict[str, Peer] = {}
        self._watchers: dict[str, set[Peer]] = {}
        self._units: dict[str, ServiceUnit] = {}
        self._peers: dict[str, Peer] = {}
        self._unique_ids = itertools.count(1)

    @property
    def units(self) -> dict[str, ServiceUnit]:
        return self._units

    def next_unique_name(self) -> str:
        return f":1.{next(self._unique_ids)}"

    def add_peer(self, peer: Peer):
        self._peers[peer.unique_name] = peer

    def get_owner(self, name: str) -> str | None:
        owner = self._owners.get(name)
        if owner is None:
            return None

        return owner.unique_name

    def register_unit(
        self,
        name: str,
        activator: Activator,
    ) -> ServiceUnit:
        unit = ServiceUnit(name, activator)
        self._units[name] = unit

        return unit

    def request_name(
        self,
        peer: Peer,
        name: str,
    ) -> int:
        owner = self._owners.get(name)
        if owner is peer:
            return REQUEST_NAME_ALREADY_OWNER

        if owner is not None:
            return REQUEST_NAME_EXISTS

        self._owners[name] = peer

        if unit := self._units.get(name):
            unit.owner_peer = peer
            unit.state = UnitState.ACTIVE

            if unit.has_waiters:
                unit.waiting.set_result(peer)

        self._emit_owner_changed(
            name,
            old_owner=None,
            new_owner=peer.unique_name,
        )

        return REQUEST_NAME_PRIMARY_OWNER

    def release_name(
        self,
        peer: Peer,
        name: str,
    ) -> int:
        owner = self._owners.get(name)
        if owner is None:
            return RELEASE_NAME_NON_EXISTENT

        if owner is not peer:
            return RELEASE_NAME_NOT_OWNER

        del self._owners[name]

        self._emit_owner_changed(
            name,
            old_owner=peer.unique_name,
            new_owner=None,
        )

        if unit := self._units.get(name):
            self._maybe_restart(unit)

        return RELEASE_NAME_RELEASED

    def notify(
        self,
        peer: Peer,
        state: str,
    ):
        assignments = dict(
            line.split("=", maxsplit=1)
            for line in state.splitlines()
            if "=" in line
        )

        for unit in self._units.values():
            if unit.owner_peer is not peer:
                continue

            unit.notifications.append(state)

            if assignments.get("STOPPING") == "1" and unit.state == UnitState.ACTIVE:
                unit.state = UnitState.DEACTIVATING

            elif assignments.get("READY") == "1" and unit.state == UnitState.ACTIVATING:
                unit.state = UnitState.ACTIVE

    def watch(
        self,
        peer: Peer,
        name: str,
        auto_start: bool = False,
    ) -> str | None:
        self._watchers.setdefault(name, set()).add(peer)

        owner = self._owners.get(name)
        if owner is not None:
            return owner.unique_name

        unit = self._units.get(name)
        if auto_start and unit and unit.state == UnitState.INACTIVE:
            self._start_unit(unit)

        return None

    def unwatch(
        self,
        peer: Peer,
        name: str,
    ):
        watchers = self._watchers.get(name)
        if watchers:
            watchers.discard(peer)

    def peer_disconnected(self, peer: Peer):
        self._peers.pop(peer.unique_name, None)

        for watchers in self._watchers.values():
            watchers.discard(peer)

        owned = [
            name for name, owner in self._owners.items() if owner is peer
        ]

        for name in owned:
            del self._owners[name]
            self._emit_owner_changed(
                name,
                old_owner=peer.unique_name,
                new_owner=None,
            )

        for unit in self._units.values():
            if unit.owner_peer is not peer:
                continue

            if unit.instance is None and unit.state != UnitState.ACTIVATING:
                # Not spawned by us, so the connection is the only sign of life.
                self._unit_exited(unit, 0)

            else:
                self._maybe_restart(unit)

    async def start_service(self, name: str) -> int:
        if name in self._owners:
            return START_REPLY_ALREADY_RUNNING

        await self._wait_for_owner(name)

        return START_REPLY_SUCCESS

    async def dispatch(self, call: MethodCall) -> Any:
        owner = self._owners.get(call.destination)

        if owner is None:
            owner = await self._wait_for_owner(call.destination)

        return await owner.deliver(call)

    async def _wait_for_owner(self, name: str) -> Peer:
        unit = self._units.get(name)
        if unit is None:
            raise ServiceUnknownError(
                f"The name {name} was not provided by any service files",
                name=name,
            )

        match unit.state:
            case UnitState.ACTIVE:
                raise ActivationError(
                    f"Unit for {name} is still active but does not own its name",
                    name=name,
                )

            case UnitState.INACTIVE:
                self._start_unit(unit)

            case UnitState.ACTIVATING | UnitState.DEACTIVATING:
                self._ensure_waiting(unit)

        return await asyncio.shield(unit.waiting)

    def _ensure_waiting(self, unit: ServiceUnit):
        if unit.waiting is None or unit.waiting.done():
            unit.waiting = asyncio.get_running_loop().create_future()
            unit.waiting.add_done_callback(_consume_result)

    def _start_unit(self, unit: ServiceUnit):
        unit.state = UnitState.ACTIVATING
        unit.owner_peer = None
        unit.start_count += 1

        self._ensure_waiting(unit)

        unit.run_task = asyncio.ensure_future(
            self._run_unit(unit),
        )

    async def _run_unit(self, unit: ServiceUnit):
        try:
            instance = await unit.activator.start(unit.name)

        except (OSError, ActivationError) as err:
            unit.state = UnitState.INACTIVE

            self._fail_waiters(
                unit,
                ActivationError(
                    f"Failed to activate {unit.name}: {err}",
                    name=unit.name,
                ),
            )

            return

        unit.instance = instance
        exit_status = await instance.wait()
        unit.instance = None

        self._unit_exited(unit, exit_status)

    def _unit_exited(
        self,
        unit: ServiceUnit,
        exit_status: int,
    ):
        unit.exit_statuses.append(exit_status)

        owner = self._owners.get(unit.name)
        if owner is not None and owner is not unit.owner_peer:
            unit.owner_peer = owner
            unit.state = UnitState.ACTIVE
            return

        never_owned = unit.state == UnitState.ACTIVATING
        unit.state = UnitState.INACTIVE

        if never_owned:
            # Queued callers get the failure instead of another start.
            self._fail_waiters(
                unit,
                ActivationError(
                    f"{unit.name} exited with status {exit_status} before acquiring its name",
                    name=unit.name,
                    exit_status=exit_status,
                ),
            )
            return

        self._maybe_restart(unit)

    def _fail_waiters(
        self,
        unit: ServiceUnit,
        err: ActivationError,
    ):
        if unit.has_waiters:
            unit.waiting.set_exception(err)

    def _maybe_restart(self, unit: ServiceUnit):
        if (
            unit.state == UnitState.INACTIVE
            and unit.has_waiters
            and self._owners.get(unit.name) is None
        ):
            self._start_unit(unit)

    def _emit_owner_changed(
        self,
        name: str,
        old_owner: str | None,
        new_owner: str | None,
    ):
        signal = NameOwnerChanged(
            name=name,
            old_owner=old_owner,
            new_owner=new_owner,
        )

        for watcher in list(self._watchers.get(name, ())):
            watcher.emit(signal)


def _consume_result(future: asyncio.Future):
    if not future.cancelled():
        future.exception()
