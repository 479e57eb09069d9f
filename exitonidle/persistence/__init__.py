from .counter_store import (
    CounterStore as CounterStore,
    MAX_COUNTER as MAX_COUNTER,
)
