"""Reporting extension points for commands.

A command does not interpret or transmit reports. It delegates to an
injected ``ReportCapability``; concrete command variants plug in their own
capability instead of subclassing ``GenericCommand``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Protocol

from prometheus_client import CollectorRegistry, Gauge
from prometheus_client.registry import Collector
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .runtime.command import GenericCommand

__all__ = [
    "CommandOutcome",
    "NO_REPORTS",
    "NoReports",
    "OutcomeReports",
    "ReportCapability",
    "WebhookPayload",
]


class WebhookPayload(BaseModel):
    """Base for JSON-serializable webhook payloads."""

    model_config = ConfigDict(frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json()


class ReportCapability(Protocol):
    """Supplies webhook payloads and metric collectors for a command."""

    def webhook_payloads(self, command: "GenericCommand") -> list[WebhookPayload]:
        ...

    def metric_collectors(self, command: "GenericCommand") -> list[Collector]:
        ...


class NoReports:
    """Default capability: nothing to report."""

    def webhook_payloads(self, command: "GenericCommand") -> list[WebhookPayload]:
        return []

    def metric_collectors(self, command: "GenericCommand") -> list[Collector]:
        return []


NO_REPORTS = NoReports()


class CommandOutcome(WebhookPayload):
    """Terminal outcome of one invocation."""

    argv: list[str]
    state: str
    returncode: int | None = None
    error: str | None = None
    stdout_lines: int = 0
    stderr_lines: int = 0
    reported_at: float = Field(default_factory=time.time)


class OutcomeReports:
    """Reports the invocation outcome as a payload and an exit-code gauge.

    Each call builds collectors in a private ``CollectorRegistry`` so that
    repeated invocations never clash in the global registry.
    """

    def __init__(self, metric_prefix: str = "restic_exec") -> None:
        self.metric_prefix = metric_prefix

    def webhook_payloads(self, command: "GenericCommand") -> list[WebhookPayload]:
        error = command.error
        return [
            CommandOutcome(
                argv=command.argv,
                state=command.state.value,
                returncode=command.returncode,
                error=str(error) if error is not None else None,
                stdout_lines=len(command.stdout),
                stderr_lines=len(command.stderr),
            )
        ]

    def metric_collectors(self, command: "GenericCommand") -> list[Collector]:
        if command.returncode is None:
            return []

        subcommand = command.argv[1] if len(command.argv) > 1 else ""
        gauge = Gauge(
            f"{self.metric_prefix}_last_exit_code",
            "Exit code of the last restic invocation",
            labelnames=["subcommand"],
            registry=CollectorRegistry(),
        )
        gauge.labels(subcommand=subcommand).set(command.returncode)
        return [gauge]
