"""
Domain models for deployment runs.
A run is created by a submission, mutated only by the polling loop and never reused.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DeploymentStatus(str, Enum):
    """Lifecycle status of a deployment run."""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not DeploymentStatus.RUNNING


@dataclass
class SubmitResult:
    """Backend answer to a deployment submission."""
    success: bool
    deployment_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PollResult:
    """Outcome of a single log poll."""
    new_lines: List[str]
    terminal: bool
    succeeded: bool


@dataclass
class DeploymentRun:
    """One submitted provisioning job and its append-only log."""
    provider: str
    deployment_id: Optional[str] = None
    status: DeploymentStatus = DeploymentStatus.RUNNING
    log_lines: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def append_lines(self, lines: List[str]) -> None:
        """Append lines in order. Lines are never reordered or deduplicated."""
        self.log_lines.extend(lines)

    def finish(self, status: DeploymentStatus, reason: Optional[str] = None) -> None:
        """
        Move the run into a terminal status.

        Args:
            status: Terminal status to record
            reason: Optional failure reason

        Raises:
            ValueError: If status is RUNNING or the run is already terminal
        """
        if not status.is_terminal:
            raise ValueError("finish() requires a terminal status")
        if self.is_terminal:
            raise ValueError(f"Deployment run already finished with status {self.status.value}")
        self.status = status
        self.failure_reason = reason
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "log_lines": list(self.log_lines),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "failure_reason": self.failure_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRun":
        """
        Rebuild a run from its serialized form.

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("Deployment run must be a mapping")
        finished_at = data.get("finished_at")
        return cls(
            provider=data["provider"],
            deployment_id=data.get("deployment_id"),
            status=DeploymentStatus(data["status"]),
            log_lines=list(data.get("log_lines") or []),
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(finished_at) if finished_at else None,
            failure_reason=data.get("failure_reason"),
        )
