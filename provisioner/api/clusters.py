"""
API routes for the reconciled cluster view.
"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from provisioner.domain.cluster_models import ClusterRecord, ClusterStatus, LiveCluster
from provisioner.services.cluster_reconciler import reconcile_clusters


logger = logging.getLogger(__name__)
router = APIRouter()


class PersistedCluster(BaseModel):
    """A cluster record stored by the platform."""
    name: str = Field(..., description="Cluster name")
    account: str = Field(..., description="Account the cluster belongs to")
    provider: str = Field(default="aws", description="Cloud provider id")
    region: str = Field(default="", description="Region of the cluster")
    account_name: Optional[str] = Field(None, description="Display name of the account")
    status: Optional[str] = Field(None, description="Stored status")
    version: Optional[str] = Field(None, description="Last known Kubernetes version")
    live_node_count: int = Field(default=0, ge=0, description="Last known node count")


class QueriedCluster(BaseModel):
    """A cluster found by a live query."""
    name: str
    account: str
    provider: str = "aws"
    version: Optional[str] = None
    live_node_count: int = Field(default=0, ge=0)


class ReconcileRequest(BaseModel):
    """Request model for cluster reconciliation."""
    persisted: List[PersistedCluster] = Field(default_factory=list, description="Persisted cluster records")
    live: List[QueriedCluster] = Field(default_factory=list, description="Live query results")


def _to_record(cluster: PersistedCluster) -> ClusterRecord:
    try:
        status = ClusterStatus(cluster.status) if cluster.status else ClusterStatus.UNKNOWN
    except ValueError:
        logger.warning(f"Unknown status '{cluster.status}' for cluster {cluster.name}")
        status = ClusterStatus.UNKNOWN
    return ClusterRecord(
        name=cluster.name,
        account=cluster.account,
        provider=cluster.provider,
        region=cluster.region,
        account_name=cluster.account_name,
        status=status,
        version=cluster.version,
        live_node_count=cluster.live_node_count,
    )


@router.post("/api/clusters/reconcile")
async def reconcile(reconcile_request: ReconcileRequest) -> Dict[str, Any]:
    """
    Merge persisted cluster records with live query results.

    Returns:
        Reconciled clusters and the number not found by the live queries
    """
    try:
        clusters = reconcile_clusters(
            [_to_record(cluster) for cluster in reconcile_request.persisted],
            [
                LiveCluster(
                    name=cluster.name,
                    account=cluster.account,
                    provider=cluster.provider,
                    version=cluster.version,
                    live_node_count=cluster.live_node_count,
                )
                for cluster in reconcile_request.live
            ],
        )
        return {
            "clusters": [cluster.to_dict() for cluster in clusters],
            "not_found": sum(1 for cluster in clusters if cluster.status is ClusterStatus.NOT_FOUND),
        }
    except Exception as error:
        logger.error(f"Cluster reconciliation failed: {error}")
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while reconciling clusters"
        ) from error
