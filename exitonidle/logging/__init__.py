from .models import (
    Entry as Entry,
    Log as Log,
    LogLevel as LogLevel,
    LogLevelName as LogLevelName,
)
from .config import (
    LoggingConfig as LoggingConfig,
    StreamType as StreamType,
)
from .streams import (
    Logger as Logger,
    LoggerStream as LoggerStream,
)
