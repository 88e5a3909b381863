from .base import ObservationSink, SinkEmissionError
from .sqlite import LoggingObservationSink, SqliteObservationSink

__all__ = [
    "LoggingObservationSink",
    "ObservationSink",
    "SinkEmissionError",
    "SqliteObservationSink",
]
