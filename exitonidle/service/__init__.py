from .service_state import ServiceState as ServiceState
from .service_config import ServiceConfig as ServiceConfig
from .service_context import ServiceContext as ServiceContext
from .counter_service import CounterService as CounterService
