"""
Cluster reconciliation read model.
Joins persisted cluster records with clusters found by live queries.
"""
from typing import Dict, Iterable, List, Tuple
from dataclasses import replace

from provisioner.domain.cluster_models import ClusterRecord, ClusterStatus, LiveCluster


ClusterKey = Tuple[str, str, str]


def _key(name: str, account: str, provider: str) -> ClusterKey:
    return (name, account, (provider or "aws").lower())


def reconcile_clusters(
    persisted: Iterable[ClusterRecord],
    live: Iterable[LiveCluster]
) -> List[ClusterRecord]:
    """
    Merge persisted clusters with live query results.

    A persisted record matched by (name, account, provider) takes the live node
    count and version and keeps its stored status (running when it has none).
    An unmatched record is marked not-found and keeps its last known version
    and node count. Live clusters without a persisted record are not added.

    The merge is pure: the result depends only on the two inputs, not on their
    order, and reconciling an already reconciled list with the same live data
    gives the same list.

    Args:
        persisted: Cluster records stored by the platform
        live: Clusters returned by live queries per connected account

    Returns:
        Reconciled records sorted by (provider, account, name)
    """
    live_by_key: Dict[ClusterKey, LiveCluster] = {}
    # Duplicate live entries resolve to the largest node count, independent of input order
    for cluster in sorted(live, key=lambda c: (c.live_node_count, c.version or "")):
        live_by_key[_key(cluster.name, cluster.account, cluster.provider)] = cluster

    merged = []
    for record in persisted:
        match = live_by_key.get(_key(record.name, record.account, record.provider))
        if match is None:
            merged.append(replace(record, status=ClusterStatus.NOT_FOUND))
            continue
        status = record.status
        if status in (None, ClusterStatus.NOT_FOUND, ClusterStatus.UNKNOWN):
            status = ClusterStatus.RUNNING
        merged.append(
            replace(
                record,
                status=status,
                version=match.version if match.version is not None else record.version,
                live_node_count=match.live_node_count,
            )
        )

    return sorted(
        merged,
        key=lambda r: (r.provider, r.account, r.name, r.region, r.status.value, r.version or "", r.live_node_count)
    )
