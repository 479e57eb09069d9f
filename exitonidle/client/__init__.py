from .client_config import ClientConfig as ClientConfig
from .rpc_call_engine import RPCCallEngine as RPCCallEngine
from .client_context import ClientContext as ClientContext
from .load_generator import LoadGenerator as LoadGenerator
from .continuous_load_generator import (
    ContinuousLoadGenerator as ContinuousLoadGenerator,
)
from .periodic_load_generator import (
    PeriodicLoadGenerator as PeriodicLoadGenerator,
)
