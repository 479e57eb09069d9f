from __future__ import annotations

import asyncio
import functools
import random
import signal

from exitonidle.bus import (
    REQUEST_NAME_ALREADY_OWNER,
    REQUEST_NAME_PRIMARY_OWNER,
    Bus,
)
from exitonidle.chaos import ChaosDelay
from exitonidle.errors import (
    BusError,
    ExitOnIdleError,
    NameNotOwnedError,
)
from exitonidle.fault import AsyncFault
from exitonidle.logging import Logger
from exitonidle.persistence import CounterStore
from exitonidle.supervisor import NullNotifier, Supervisor
from exitonidle.timers import TimerSet

from .handlers import (
    bump_idle_timer,
    enter_flushing,
    handle_get,
    handle_increment,
    on_idle_timer,
    on_save_timer,
    save_counter,
)
from .service_config import ServiceConfig
from .service_context import ServiceContext
from .service_state import ServiceState


class CounterService:
    """
    The exit-on-idle counter service.

    Serves Inc and Get on the bus while RUNNING. When the idle timer fires
    (or SIGTERM/SIGINT arrives) it flushes and exits in a fixed order:

        FLUSHING -> chaos delay -> STOPPING=1 -> ReleaseName -> ack
        -> EXITING -> chaos delay -> final save if pending -> exit

    Skipping STOPPING=1 (racy_exit) leaves the supervisor believing the
    instance is still alive after the name disappears, which is the race
    clients are meant to hit.
    """

    def __init__(
        self,
        bus: Bus,
        config: ServiceConfig | None = None,
        supervisor: Supervisor | None = None,
        store: CounterStore | None = None,
        chaos: ChaosDelay | None = None,
        rng: random.Random | None = None,
        logger: Logger | None = None,
        install_signal_handlers: bool = False,
    ) -> None:
        if config is None:
            config = ServiceConfig()

        if chaos is None:
            chaos = ChaosDelay(max_ms=config.exit_sleep_ms, rng=rng)

        self.context = ServiceContext(
            config=config,
            bus=bus,
            supervisor=supervisor or NullNotifier(),
            store=store or CounterStore(config.state_path),
            chaos=chaos,
            logger=logger or Logger(),
        )

        self.context.timers = TimerSet(
            on_save=functools.partial(on_save_timer, self.context),
            on_idle=functools.partial(on_idle_timer, self.context),
            save_range=config.save_range,
            idle_range=config.idle_range,
            rng=rng,
        )

        self._install_signal_handlers = install_signal_handlers
        self._installed_signals: list[signal.Signals] = []
        self._signal_tasks: set[asyncio.Task] = set()
        self._shutting_down = False
        self._release_reply: int | None = None

    @property
    def state(self) -> ServiceState:
        return self.context.state

    @property
    def counter(self) -> int:
        return self.context.counter

    @property
    def fault(self) -> AsyncFault:
        return self.context.fault

    async def start(self):
        context = self.context
        config = context.config

        context.counter = context.store.load()
        context.saved_counter = context.counter
        await context.log_info(f"Initial counter: {context.counter}")

        await context.bus.connect()

        context.bus.export(
            config.object_path,
            config.interface,
            {
                "Inc": functools.partial(handle_increment, context),
                "Get": functools.partial(handle_get, context),
            },
        )

        context.bus.on_disconnect(self._on_bus_lost)

        result = await context.bus.request_name(config.bus_name)
        if result not in (REQUEST_NAME_PRIMARY_OWNER, REQUEST_NAME_ALREADY_OWNER):
            raise NameNotOwnedError(
                f"Could not become primary owner of {config.bus_name}",
                reply=result,
            )

        await context.log_debug("Bus name acquired")

        idle_delay = bump_idle_timer(context)
        await context.log_trace(f"Reset idle timer ({idle_delay} ms)")

        if self._install_signal_handlers:
            self._add_signal_handlers()

        await context.log_info(f"=> {ServiceState.RUNNING.value}")

        await context.supervisor.notify("READY=1")

    async def run(self) -> int:
        context = self.context

        try:
            await self.start()

        except ExitOnIdleError as err:
            context.fault.set(err)
            await context.log_error(str(err))
            await self._close()

            return 1

        while context.state == ServiceState.RUNNING:
            context.state_changed.clear()
            await context.state_changed.wait()

        return await self.flush_and_exit()

    async def flush_and_exit(self) -> int:
        context = self.context
        config = context.config
        self._shutting_down = True

        await context.log_info(f"=> {ServiceState.FLUSHING.value}")

        await context.chaos.sleep("flushing")

        if not config.racy_exit:
            await self._notify_stopping()

        await self._release_name()

        context.transition(ServiceState.EXITING)
        await context.log_info(f"=> {ServiceState.EXITING.value}")

        await context.chaos.sleep("exiting")

        await context.timers.drain()
        if context.timers.save.cancel():
            await save_counter(context)

        context.timers.cancel_all()

        exit_code = 1 if context.fault.is_set else 0
        if exit_code:
            await context.log_error(f"exit(1): {context.fault.error}")

        else:
            await context.log_info("exit(0)")

        await self._close()

        return exit_code

    def request_shutdown(self) -> bool:
        return enter_flushing(self.context)

    async def _notify_stopping(self):
        try:
            await self.context.supervisor.notify("STOPPING=1")

        except BusError as err:
            self.context.fault.set(err)
            await self.context.log_error(str(err))

    async def _release_name(self):
        context = self.context

        if context.bus.closed:
            return

        try:
            self._release_reply = await context.bus.release_name(
                context.config.bus_name,
            )

            await context.log_debug(
                f"Released {context.config.bus_name} (reply={self._release_reply})"
            )

        except BusError as err:
            context.fault.set(err)
            await context.log_error(str(err))

    def _on_signal(self, signum: signal.Signals):
        context = self.context

        if enter_flushing(context):
            task = asyncio.ensure_future(
                context.log_info(f"({signum.name})"),
            )
            self._signal_tasks.add(task)
            task.add_done_callback(self._signal_tasks.discard)

    def _add_signal_handlers(self):
        loop = asyncio.get_running_loop()

        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                signum,
                self._on_signal,
                signum,
            )

            self._installed_signals.append(signum)

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()

        for signum in self._installed_signals:
            loop.remove_signal_handler(signum)

        self._installed_signals.clear()

    def _on_bus_lost(self, exc: Exception | None):
        if self._shutting_down:
            return

        self.context.fault.set(
            BusError(
                "Lost connection to the bus",
                reason=str(exc) if exc else None,
            )
        )

        enter_flushing(self.context)

    async def _close(self):
        self._shutting_down = True
        self.context.timers.cancel_all()
        self._remove_signal_handlers()

        if not self.context.bus.closed:
            await self.context.bus.close()

        await self.context.logger.close()
