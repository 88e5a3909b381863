from .db import initialize_database
from .observations import count_observations, get_latest_observation, insert_observation
from .state import (
    ScheduleState,
    SqliteScheduleStore,
    get_or_create_source_id,
    get_schedule_state,
    set_schedule_state,
)

__all__ = [
    "ScheduleState",
    "SqliteScheduleStore",
    "count_observations",
    "get_latest_observation",
    "get_or_create_source_id",
    "get_schedule_state",
    "initialize_database",
    "insert_observation",
    "set_schedule_state",
]
