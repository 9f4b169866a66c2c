"""
Domain models for the cluster reconciliation read model.
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass
from enum import Enum


class ClusterStatus(str, Enum):
    """Status values of a persisted cluster record."""
    RUNNING = "running"
    STOPPED = "stopped"
    PENDING = "pending"
    UNKNOWN = "unknown"
    NOT_FOUND = "not-found"


@dataclass(frozen=True)
class ClusterRecord:
    """A cluster the platform has persisted for an account."""
    name: str
    account: str
    provider: str = "aws"
    region: str = ""
    account_name: Optional[str] = None
    status: ClusterStatus = ClusterStatus.RUNNING
    version: Optional[str] = None
    live_node_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "account": self.account,
            "provider": self.provider,
            "region": self.region,
            "account_name": self.account_name,
            "status": self.status.value,
            "version": self.version,
            "live_node_count": self.live_node_count,
        }


@dataclass(frozen=True)
class LiveCluster:
    """A cluster returned by a live query against a connected account."""
    name: str
    account: str
    provider: str = "aws"
    version: Optional[str] = None
    live_node_count: int = 0
