"""
Domain interfaces (Ports) for intentflow.

These abstract base classes define the contracts adapters must satisfy.
They have no external dependencies.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from intentflow.domain.models import (
        ProcessResult,
        ServerSpec,
        Step,
        ToolInfo,
        ToolResponse,
        Trigger,
    )
    from intentflow.domain.phase_event import PhaseEvent, PhaseEventType


class ToolGatewayInterface(ABC):
    """
    Port for invoking one tool on an external server.

    Implementations block until the call completes. They never retry:
    any failure surfaces as ServerUnavailable.
    """

    @abstractmethod
    def call_tool(
        self, server: "ServerSpec", tool: str, params: dict[str, Any]
    ) -> "ToolResponse":
        """
        Invoke a tool.

        Args:
            server: Server process description
            tool: Tool name
            params: Fully resolved parameters

        Returns:
            Parsed ToolResponse

        Raises:
            ServerUnavailable: On process failure, timeout or malformed response
        """
        pass

    @abstractmethod
    def list_tools(self, server: "ServerSpec") -> tuple["ToolInfo", ...]:
        """
        Ask the server which tools it offers.

        Raises:
            ServerUnavailable: On process failure, timeout or malformed response
        """
        pass


class ScorerInterface(ABC):
    """
    Port for numeric candidate scoring.

    Scores are clamped to [0, 1] by the caller.
    """

    @abstractmethod
    def score(self, step: "Step", server: "ServerSpec") -> float:
        """
        Score one candidate step.

        Args:
            step: The candidate (hypothesis, evaluated graph node, proposal)
            server: Server the run talks to (judges may call tools on it)

        Returns:
            Score, nominally in [0, 1]
        """
        pass


class IntentLauncherInterface(ABC):
    """Port for executing one intent file out-of-process."""

    @abstractmethod
    def launch(self, config_path: Path, out_path: Path) -> "ProcessResult":
        """
        Run the executor for one intent file and block until it exits.

        Args:
            config_path: Intent file to execute
            out_path: Where the run envelope should be written

        Returns:
            ProcessResult with exit code and captured output
        """
        pass


class PhaseEventStoreInterface(ABC):
    """Append-only storage for the orchestration timeline."""

    @abstractmethod
    def store_event(self, event: "PhaseEvent") -> str:
        """Append an event. Returns its event_id."""
        pass

    @abstractmethod
    def get_events(
        self,
        workflow_id: str,
        event_type: "PhaseEventType | None" = None,
        phase: str | None = None,
    ) -> list["PhaseEvent"]:
        """Events of one cycle in append order, optionally filtered."""
        pass


class TriggerHistoryInterface(ABC):
    """Append-only storage for trigger records."""

    @abstractmethod
    def append(self, trigger: "Trigger") -> None:
        """Record a trigger state (every transition is a new record)."""
        pass

    @abstractmethod
    def records(self) -> list["Trigger"]:
        """All records in append order."""
        pass

    def latest(self) -> dict[str, "Trigger"]:
        """Most recent record per trigger id."""
        result: dict[str, Trigger] = {}
        for record in self.records():
            result[record.trigger_id] = record
        return result
