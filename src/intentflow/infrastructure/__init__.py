"""
Infrastructure layer for intentflow.

Contains adapters for external concerns (tool processes, launchers,
persistence, documentation files).
"""

from intentflow.infrastructure.actions import DocumentActions
from intentflow.infrastructure.gateway import (
    EchoToolGateway,
    MockToolGateway,
    ProcessToolGateway,
)
from intentflow.infrastructure.launcher import SubprocessIntentLauncher
from intentflow.infrastructure.persistence import (
    FilesystemPhaseEventStore,
    InMemoryPhaseEventStore,
    InMemoryTriggerHistory,
    JsonlTriggerHistory,
)

__all__ = [
    # Gateways
    "ProcessToolGateway",
    "MockToolGateway",
    "EchoToolGateway",
    # Launcher
    "SubprocessIntentLauncher",
    # Persistence
    "InMemoryPhaseEventStore",
    "FilesystemPhaseEventStore",
    "InMemoryTriggerHistory",
    "JsonlTriggerHistory",
    # Actions
    "DocumentActions",
]
