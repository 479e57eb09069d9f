"""
Integration tests for CounterService on an in-process bus.

Covers:
- Idle exit with and without prior calls, and resuming persisted state
- The shutdown order: STOPPING=1 while the name is still owned, EXITING
  only after the release is acknowledged, final save when one is pending
- Racy exit skipping STOPPING=1
- Startup failures and losing the bus
"""

import asyncio

import pytest

from exitonidle.bus import RELEASE_NAME_RELEASED, LocalBusHub
from exitonidle.chaos import ChaosDelay
from exitonidle.errors import (
    BusError,
    NameNotOwnedError,
    PersistenceLoadError,
)
from exitonidle.persistence import MAX_COUNTER, CounterStore
from exitonidle.service import CounterService, ServiceConfig, ServiceState

from tests.mocks import (
    FailingCounterStore,
    ProbingChaosDelay,
    RecordingSupervisor,
    wait_for_condition,
)


def create_service(
    hub: LocalBusHub,
    config: ServiceConfig,
    supervisor: RecordingSupervisor | None = None,
    chaos: ChaosDelay | None = None,
    store: CounterStore | None = None,
) -> CounterService:
    return CounterService(
        hub.create_bus(),
        config=config,
        supervisor=supervisor or RecordingSupervisor(),
        chaos=chaos or ChaosDelay.disabled(),
        store=store,
    )


async def connect_client(hub: LocalBusHub):
    client = hub.create_bus()
    await client.connect()

    return client


async def call(client, config: ServiceConfig, method: str):
    return await client.call(
        config.bus_name,
        config.object_path,
        config.interface,
        method,
    )


async def start_service(hub: LocalBusHub, service: CounterService) -> asyncio.Task:
    running = asyncio.ensure_future(service.run())

    await wait_for_condition(
        lambda: hub.registry.get_owner(service.context.config.bus_name) is not None
    )

    return running


class TestIdleExitScenarios:
    """End-to-end runs of a single service instance."""

    @pytest.mark.asyncio
    async def test_idle_exit_without_calls(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
        counter_store: CounterStore,
        state_path: str,
    ) -> None:
        """An untouched service goes through every state and exits 0."""
        supervisor = RecordingSupervisor()
        service = create_service(hub, service_config, supervisor=supervisor)

        exit_code = await asyncio.wait_for(service.run(), timeout=2)

        assert exit_code == 0
        assert service.context.transitions == [
            ServiceState.RUNNING,
            ServiceState.FLUSHING,
            ServiceState.EXITING,
        ]
        assert supervisor.notifications == ["READY=1", "STOPPING=1"]
        assert service._release_reply == RELEASE_NAME_RELEASED
        assert hub.registry.get_owner(service_config.bus_name) is None
        assert counter_store.load() == 0

    @pytest.mark.asyncio
    async def test_increments_are_persisted(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
        state_path: str,
    ) -> None:
        """Three increments before going idle leave 3 on disk."""
        service = create_service(hub, service_config)
        running = await start_service(hub, service)
        client = await connect_client(hub)

        for _ in range(3):
            assert await call(client, service_config, "Inc") is None

        assert await call(client, service_config, "Get") == 3
        assert await asyncio.wait_for(running, timeout=2) == 0

        with open(state_path) as state_file:
            assert state_file.read() == "3\n"

    @pytest.mark.asyncio
    async def test_resumes_from_persisted_value(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
        counter_store: CounterStore,
    ) -> None:
        """A new instance picks up where the last one left off."""
        counter_store.save(41)

        service = create_service(hub, service_config)
        running = await start_service(hub, service)
        client = await connect_client(hub)

        await call(client, service_config, "Inc")

        assert await call(client, service_config, "Get") == 42
        assert await asyncio.wait_for(running, timeout=2) == 0
        assert counter_store.load() == 42

    @pytest.mark.asyncio
    async def test_concurrent_increments_all_count(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
        counter_store: CounterStore,
    ) -> None:
        """Increments from several clients are neither lost nor doubled."""
        service = create_service(hub, service_config)
        running = await start_service(hub, service)
        clients = [await connect_client(hub) for _ in range(3)]

        await asyncio.gather(*[
            call(client, service_config, "Inc")
            for client in clients
            for _ in range(10)
        ])

        assert await call(clients[0], service_config, "Get") == 30
        assert await asyncio.wait_for(running, timeout=2) == 0
        assert counter_store.load() == 30

    @pytest.mark.asyncio
    async def test_activity_postpones_idle_exit(
        self,
        hub: LocalBusHub,
        state_path: str,
    ) -> None:
        """Each Inc pushes the idle deadline out again."""
        config = ServiceConfig(
            idle_range=(150, 150),
            save_range=(10, 10),
            exit_sleep_ms=0,
            state_path=state_path,
        )
        service = create_service(hub, config)
        running = await start_service(hub, service)
        client = await connect_client(hub)

        for _ in range(6):
            await asyncio.sleep(0.05)
            await call(client, config, "Inc")

        assert service.state == ServiceState.RUNNING

        assert await asyncio.wait_for(running, timeout=2) == 0
        assert service.counter == 6


class TestShutdownOrdering:
    """What the rest of the system can observe during shutdown."""

    @pytest.mark.asyncio
    async def test_stopping_sent_while_name_owned(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
    ) -> None:
        """STOPPING=1 goes out in FLUSHING, before the name is released."""
        service: CounterService | None = None

        def probe():
            return (
                hub.registry.get_owner(service_config.bus_name),
                service.state,
            )

        supervisor = RecordingSupervisor(probe=probe)
        service = create_service(hub, service_config, supervisor=supervisor)

        assert await asyncio.wait_for(service.run(), timeout=2) == 0

        unique_name = service.context.bus.unique_name

        assert supervisor.snapshots == [
            ("READY=1", (unique_name, ServiceState.RUNNING)),
            ("STOPPING=1", (unique_name, ServiceState.FLUSHING)),
        ]

    @pytest.mark.asyncio
    async def test_exiting_follows_release(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
    ) -> None:
        """The name is held through FLUSHING and gone once EXITING."""
        service: CounterService | None = None

        def probe():
            return (
                hub.registry.get_owner(service_config.bus_name) is not None,
                service.state,
            )

        chaos = ProbingChaosDelay(probe)
        service = create_service(hub, service_config, chaos=chaos)

        assert await asyncio.wait_for(service.run(), timeout=2) == 0
        assert chaos.snapshots == [
            ("flushing", (True, ServiceState.FLUSHING)),
            ("exiting", (False, ServiceState.EXITING)),
        ]

    @pytest.mark.asyncio
    async def test_pending_save_flushed_on_exit(
        self,
        hub: LocalBusHub,
        state_path: str,
        counter_store: CounterStore,
    ) -> None:
        """A save still pending at exit runs before the process ends."""
        config = ServiceConfig(
            idle_range=(50, 50),
            save_range=(10_000, 10_000),
            exit_sleep_ms=0,
            state_path=state_path,
        )
        service = create_service(hub, config)
        running = await start_service(hub, service)
        client = await connect_client(hub)

        await call(client, config, "Inc")

        assert service.context.timers.save.is_pending is True
        assert await asyncio.wait_for(running, timeout=2) == 0
        assert counter_store.load() == 1
        assert service.context.saved_counter == 1

    @pytest.mark.asyncio
    async def test_request_shutdown(
        self,
        hub: LocalBusHub,
        state_path: str,
    ) -> None:
        """An external shutdown request runs the same exit sequence."""
        config = ServiceConfig(
            idle_range=(10_000, 10_000),
            exit_sleep_ms=0,
            state_path=state_path,
        )
        supervisor = RecordingSupervisor()
        service = create_service(hub, config, supervisor=supervisor)
        running = await start_service(hub, service)

        assert service.request_shutdown() is True
        assert service.request_shutdown() is False

        assert await asyncio.wait_for(running, timeout=2) == 0
        assert supervisor.notifications == ["READY=1", "STOPPING=1"]
        assert service.state == ServiceState.EXITING

    @pytest.mark.asyncio
    async def test_racy_exit_skips_stopping(
        self,
        hub: LocalBusHub,
        state_path: str,
    ) -> None:
        """With racy exit the supervisor never hears STOPPING=1."""
        config = ServiceConfig(
            idle_range=(20, 20),
            exit_sleep_ms=0,
            racy_exit=True,
            state_path=state_path,
        )
        supervisor = RecordingSupervisor()
        service = create_service(hub, config, supervisor=supervisor)

        assert await asyncio.wait_for(service.run(), timeout=2) == 0
        assert supervisor.notifications == ["READY=1"]
        assert hub.registry.get_owner(config.bus_name) is None


class TestServiceEdgeCases:

    @pytest.mark.asyncio
    async def test_counter_wraps(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
        counter_store: CounterStore,
    ) -> None:
        """Inc at 2**32 - 1 wraps to zero."""
        counter_store.save(MAX_COUNTER)

        service = create_service(hub, service_config)
        running = await start_service(hub, service)
        client = await connect_client(hub)

        await call(client, service_config, "Inc")

        assert await call(client, service_config, "Get") == 0
        assert await asyncio.wait_for(running, timeout=2) == 0
        assert counter_store.load() == 0

    @pytest.mark.asyncio
    async def test_save_failure_is_not_fatal(
        self,
        hub: LocalBusHub,
        state_path: str,
    ) -> None:
        """The service keeps serving and exits 0 when saves fail."""
        config = ServiceConfig(
            idle_range=(100, 100),
            save_range=(5, 5),
            exit_sleep_ms=0,
            state_path=state_path,
        )
        store = FailingCounterStore(state_path)
        service = create_service(hub, config, store=store)
        running = await start_service(hub, service)
        client = await connect_client(hub)

        await call(client, config, "Inc")
        await wait_for_condition(lambda: store.save_attempts >= 1)

        assert await call(client, config, "Get") == 1
        assert await asyncio.wait_for(running, timeout=2) == 0
        assert service.fault.is_set is False

    @pytest.mark.asyncio
    async def test_calls_during_flushing_are_saved(
        self,
        hub: LocalBusHub,
        state_path: str,
        counter_store: CounterStore,
    ) -> None:
        """An Inc that lands while FLUSHING is still persisted."""
        config = ServiceConfig(
            idle_range=(10_000, 10_000),
            save_range=(10_000, 10_000),
            exit_sleep_ms=0,
            state_path=state_path,
        )
        service = create_service(
            hub,
            config,
            chaos=ChaosDelay(max_ms=30, min_ms=30),
        )
        running = await start_service(hub, service)
        client = await connect_client(hub)

        service.request_shutdown()
        await asyncio.sleep(0.01)

        assert service.state == ServiceState.FLUSHING

        await call(client, config, "Inc")

        assert service.context.timers.idle.is_pending is False
        assert await asyncio.wait_for(running, timeout=2) == 0
        assert counter_store.load() == 1


class TestServiceNegativePath:

    @pytest.mark.asyncio
    async def test_name_already_owned(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
    ) -> None:
        """Failing to become primary owner exits 1."""
        squatter = hub.create_bus()
        await squatter.connect()
        await squatter.request_name(service_config.bus_name)

        service = create_service(hub, service_config)

        assert await asyncio.wait_for(service.run(), timeout=2) == 1
        assert isinstance(service.fault.error, NameNotOwnedError)
        assert hub.registry.get_owner(service_config.bus_name) == squatter.unique_name

    @pytest.mark.asyncio
    async def test_unreadable_state_exits_1(
        self,
        hub: LocalBusHub,
        service_config: ServiceConfig,
        state_path: str,
    ) -> None:
        """A corrupt counter file stops startup before the name is taken."""
        with open(state_path, "w") as state_file:
            state_file.write("garbage\n")

        service = create_service(hub, service_config)

        assert await asyncio.wait_for(service.run(), timeout=2) == 1
        assert isinstance(service.fault.error, PersistenceLoadError)
        assert hub.registry.get_owner(service_config.bus_name) is None

    @pytest.mark.asyncio
    async def test_bus_loss_exits_1(
        self,
        hub: LocalBusHub,
        state_path: str,
    ) -> None:
        """Losing the bus flushes and exits with a failure status."""
        config = ServiceConfig(
            idle_range=(10_000, 10_000),
            exit_sleep_ms=0,
            state_path=state_path,
        )
        service = create_service(hub, config)
        running = await start_service(hub, service)

        await service.context.bus.close()

        assert await asyncio.wait_for(running, timeout=2) == 1
        assert isinstance(service.fault.error, BusError)
        assert service.context.transitions == [
            ServiceState.RUNNING,
            ServiceState.FLUSHING,
            ServiceState.EXITING,
        ]
