from __future__ import annotations

import asyncio
import os
import shlex
import signal
from typing import Callable

from exitonidle.errors import ActivationError

from .registry import Activator, ServiceInstance


class SubprocessInstance(ServiceInstance):
    def __init__(
        self,
        process: asyncio.subprocess.Process,
        on_exit: Callable[[SubprocessInstance], None] | None = None,
    ) -> None:
        self.process = process
        self._on_exit = on_exit

    @property
    def pid(self) -> int:
        return self.process.pid

    async def wait(self) -> int:
        status = await self.process.wait()

        if self._on_exit is not None:
            self._on_exit(self)

        return status

    def terminate(self):
        if self.process.returncode is None:
            self.process.send_signal(signal.SIGTERM)


class SubprocessActivator(Activator):
    """
    Starts a unit by spawning its configured command.

    The child inherits the daemon's environment plus the bus address, so a
    service started with no arguments connects back to the daemon that
    activated it.
    """

    def __init__(
        self,
        commands: dict[str, list[str]],
        bus_address: tuple[str, int],
        env: dict[str, str] | None = None,
    ) -> None:
        self.commands = commands
        self.bus_address = bus_address
        self._env = env
        self.instances: list[SubprocessInstance] = []

    @classmethod
    def parse_command(cls, activation: str) -> tuple[str, list[str]]:
        name, separator, command = activation.partition("=")
        if not separator or not name.strip() or not command.strip():
            raise ValueError(
                f"Activation must be given as NAME=COMMAND, got {activation!r}"
            )

        return name.strip(), shlex.split(command)

    async def start(self, name: str) -> ServiceInstance:
        command = self.commands.get(name)
        if command is None:
            raise ActivationError(
                f"No activation command configured for {name}",
                name=name,
            )

        host, port = self.bus_address

        env = dict(self._env if self._env is not None else os.environ)
        env.update({
            "EXIT_ON_IDLE_BUS_HOST": host,
            "EXIT_ON_IDLE_BUS_PORT": str(port),
            "EXIT_ON_IDLE_BUS_NAME": name,
        })

        process = await asyncio.create_subprocess_exec(
            *command,
            env=env,
        )

        instance = SubprocessInstance(
            process,
            on_exit=self._discard,
        )
        self.instances.append(instance)

        return instance

    def _discard(self, instance: SubprocessInstance):
        if instance in self.instances:
            self.instances.remove(instance)

    async def shutdown(self):
        running = [
            instance for instance in self.instances
            if instance.process.returncode is None
        ]

        for instance in running:
            instance.terminate()

        if running:
            await asyncio.gather(*[
                instance.wait() for instance in running
            ])
