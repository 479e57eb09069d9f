"""
Pytest configuration shared by the unit and integration suites.

Async tests run under pytest-asyncio's auto mode (see pyproject.toml).
"""

import random
from typing import AsyncGenerator, Callable

import pytest

from exitonidle.bus import LocalBusHub
from exitonidle.bus.local_bus import DeliveryDelay
from exitonidle.client import ClientConfig
from exitonidle.persistence import CounterStore
from exitonidle.service import ServiceConfig


BUS_NAME = "org.verbum.TestExitOnIdle"


@pytest.fixture
def state_path(tmp_path) -> str:
    return str(tmp_path / "counter")


@pytest.fixture
def counter_store(state_path: str) -> CounterStore:
    return CounterStore(state_path)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def service_config(state_path: str) -> ServiceConfig:
    return ServiceConfig(
        bus_name=BUS_NAME,
        idle_range=(200, 200),
        save_range=(20, 20),
        exit_sleep_ms=0,
        state_path=state_path,
    )


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        bus_name=BUS_NAME,
        min_freq_ms=0,
        max_freq_ms=5,
        period_ms=10,
        status_interval=60.0,
    )


@pytest.fixture
async def make_hub() -> AsyncGenerator[Callable[..., LocalBusHub], None]:
    hubs: list[LocalBusHub] = []

    def create_hub(delivery_delay: DeliveryDelay | None = None) -> LocalBusHub:
        hub = LocalBusHub(delivery_delay=delivery_delay)
        hubs.append(hub)

        return hub

    yield create_hub

    for hub in hubs:
        await hub.close()


@pytest.fixture
def hub(make_hub: Callable[..., LocalBusHub]) -> LocalBusHub:
    return make_hub()
