from .models import (
    MethodCall as MethodCall,
    NameOwnerChanged as NameOwnerChanged,
    REQUEST_NAME_PRIMARY_OWNER as REQUEST_NAME_PRIMARY_OWNER,
    REQUEST_NAME_EXISTS as REQUEST_NAME_EXISTS,
    REQUEST_NAME_ALREADY_OWNER as REQUEST_NAME_ALREADY_OWNER,
    RELEASE_NAME_RELEASED as RELEASE_NAME_RELEASED,
    RELEASE_NAME_NON_EXISTENT as RELEASE_NAME_NON_EXISTENT,
    RELEASE_NAME_NOT_OWNER as RELEASE_NAME_NOT_OWNER,
    START_REPLY_SUCCESS as START_REPLY_SUCCESS,
    START_REPLY_ALREADY_RUNNING as START_REPLY_ALREADY_RUNNING,
)
from .bus import Bus as Bus
from .registry import (
    Activator as Activator,
    NameRegistry as NameRegistry,
    ServiceInstance as ServiceInstance,
    ServiceUnit as ServiceUnit,
    UnitState as UnitState,
)
from .local_bus import (
    CoroutineActivator as CoroutineActivator,
    LocalBus as LocalBus,
    LocalBusHub as LocalBusHub,
)
from .activation import SubprocessActivator as SubprocessActivator
from .tcp_bus import TCPBus as TCPBus
from .daemon import BusDaemon as BusDaemon
