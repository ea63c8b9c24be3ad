"""
Persistence adapters: phase timelines and trigger history.
"""

from intentflow.infrastructure.persistence.phase_events import (
    FilesystemPhaseEventStore,
    InMemoryPhaseEventStore,
)
from intentflow.infrastructure.persistence.triggers import (
    InMemoryTriggerHistory,
    JsonlTriggerHistory,
)

__all__ = [
    "InMemoryPhaseEventStore",
    "FilesystemPhaseEventStore",
    "InMemoryTriggerHistory",
    "JsonlTriggerHistory",
]
