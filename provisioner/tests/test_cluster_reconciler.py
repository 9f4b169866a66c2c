"""
Tests for cluster reconciliation.
"""

from provisioner.domain.cluster_models import ClusterRecord, ClusterStatus, LiveCluster
from provisioner.services.cluster_reconciler import reconcile_clusters


def test_unmatched_record_is_marked_not_found_and_keeps_values():
    """A persisted cluster missing from live data is not-found with its last values."""
    persisted = [ClusterRecord(name='x', account='a', version='1.28', live_node_count=3)]

    merged = reconcile_clusters(persisted, [])

    assert merged == [ClusterRecord(
        name='x', account='a', status=ClusterStatus.NOT_FOUND, version='1.28', live_node_count=3,
    )]


def test_matched_record_takes_live_values():
    """A matched record takes live node count and version and keeps its status."""
    persisted = [ClusterRecord(name='x', account='a', status=ClusterStatus.STOPPED, version='1.27', live_node_count=1)]
    live = [LiveCluster(name='x', account='a', version='1.29', live_node_count=5)]

    merged = reconcile_clusters(persisted, live)

    assert merged[0].status is ClusterStatus.STOPPED
    assert merged[0].version == '1.29'
    assert merged[0].live_node_count == 5


def test_matched_record_without_usable_status_is_running():
    """Records found live with unknown or not-found status become running."""
    persisted = [
        ClusterRecord(name='x', account='a', status=ClusterStatus.UNKNOWN),
        ClusterRecord(name='y', account='a', status=ClusterStatus.NOT_FOUND),
    ]
    live = [LiveCluster(name='x', account='a'), LiveCluster(name='y', account='a')]

    assert {c.status for c in reconcile_clusters(persisted, live)} == {ClusterStatus.RUNNING}


def test_live_version_missing_keeps_known_version():
    """A live entry without a version does not erase the stored one."""
    persisted = [ClusterRecord(name='x', account='a', version='1.28')]
    merged = reconcile_clusters(persisted, [LiveCluster(name='x', account='a', live_node_count=2)])
    assert merged[0].version == '1.28'


def test_match_key_includes_account_and_provider():
    """Same name in another account or provider does not match."""
    persisted = [ClusterRecord(name='x', account='a', provider='aws')]
    live = [
        LiveCluster(name='x', account='b', provider='aws'),
        LiveCluster(name='x', account='a', provider='gcp'),
    ]
    assert reconcile_clusters(persisted, live)[0].status is ClusterStatus.NOT_FOUND

    live = [LiveCluster(name='x', account='a', provider='AWS', live_node_count=2)]
    assert reconcile_clusters(persisted, live)[0].live_node_count == 2


def test_live_only_clusters_are_not_added():
    """Clusters with no persisted record are ignored."""
    merged = reconcile_clusters([], [LiveCluster(name='x', account='a')])
    assert merged == []


def test_reconcile_is_order_independent_and_idempotent():
    """Input order does not matter and re-reconciling changes nothing."""
    persisted = [
        ClusterRecord(name='b', account='a'),
        ClusterRecord(name='a', account='a', version='1.27'),
        ClusterRecord(name='c', account='z', provider='gcp'),
    ]
    live = [
        LiveCluster(name='a', account='a', version='1.28', live_node_count=2),
        LiveCluster(name='a', account='a', version='1.28', live_node_count=4),
        LiveCluster(name='c', account='z', provider='gcp', live_node_count=1),
    ]

    first = reconcile_clusters(persisted, live)
    second = reconcile_clusters(list(reversed(persisted)), list(reversed(live)))

    assert first == second
    assert reconcile_clusters(first, live) == first
    assert [c.name for c in first] == ['a', 'b', 'c']
    assert first[0].live_node_count == 4
