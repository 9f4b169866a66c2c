"""
Tests for snapshot service and workflow state persistence.
"""

import pytest
from datetime import datetime, timedelta, timezone

from provisioner.domain.account_models import CloudAccount
from provisioner.domain.deployment_models import DeploymentRun, DeploymentStatus
from provisioner.domain.providers import Provider
from provisioner.domain.workflow_models import Stage, WorkflowState
from provisioner.services.snapshot_service import SnapshotService, get_snapshot_service
from provisioner.services.workflow_engine import WorkflowEngine


@pytest.fixture
def full_state():
    """State with every persisted field populated."""
    run = DeploymentRun(
        provider='aws',
        deployment_id='dep-42',
        log_lines=['[10:00:00] Plan: 1 to add', '[10:00:05] Apply complete!'],
        started_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
    )
    run.finish(DeploymentStatus.SUCCEEDED)
    return WorkflowState(
        provider=Provider.AWS,
        current_stage=Stage.CREATE,
        region='eu-central-1',
        account_name='Production',
        selected_account_id='acc-1',
        using_existing_account=True,
        connected_accounts=[
            CloudAccount(id='acc-1', display_name='Production', provider='aws',
                         default_region='eu-central-1', account_number='123456789012'),
        ],
        selected_module_ids=['vpc', 's3'],
        module_config_by_module_id={'s3': {'name': 'logs', 'storageClass': 'STANDARD'}, 'vpc': {'cidrBlock': '10.0.0.0/16'}},
        pricing_overrides_by_module_id={'s3': {'STANDARD': 0.024}},
        estimated_monthly_cost=50.37,
        iac_preview_text='provider "aws" {}',
        confirmation_acknowledged=True,
        deployment=run,
    )


def test_snapshot_round_trip_restores_equal_state(full_state):
    """Serialize then restore gives a deep-equal state."""
    assert WorkflowState.from_dict(full_state.to_dict()) == full_state


def test_snapshot_excludes_transient_fields(full_state):
    """Credentials, the tested flag and discovered resources are not persisted."""
    full_state.credentials = {'access_key': 'AKIA', 'secret_key': 'very-secret'}
    full_state.connection_tested = True
    full_state.discovered_resources = [{'id': 'r-1'}]

    data = full_state.to_dict()
    assert 'credentials' not in data
    assert 'very-secret' not in repr(data)

    restored = WorkflowState.from_dict(data)
    assert restored.credentials == {}
    assert restored.connection_tested is False
    assert restored.discovered_resources == []


def test_unsupported_version_is_rejected(full_state):
    """Snapshots of another version are refused."""
    data = full_state.to_dict()
    data['version'] = 99
    with pytest.raises(ValueError):
        WorkflowState.from_dict(data)


def test_snapshot_retrieval_returns_copy(snapshot_service, full_state):
    """Stored snapshots cannot be mutated through returned data."""
    snapshot_service.save_snapshot('s1', full_state.to_dict())
    data = snapshot_service.get_snapshot('s1')
    data['region'] = 'us-east-1'
    assert snapshot_service.get_snapshot('s1')['region'] == 'eu-central-1'


def test_last_write_wins(snapshot_service):
    """A save replaces the previous snapshot of the session."""
    snapshot_service.save_snapshot('s1', {'n': 1})
    snapshot_service.save_snapshot('s1', {'n': 2})
    assert snapshot_service.get_snapshot('s1') == {'n': 2}
    assert snapshot_service.has_snapshot('s1')


def test_snapshot_expires_after_ttl(snapshot_service, monkeypatch):
    """Snapshot expires after TTL."""
    snapshot_service.save_snapshot('s1', {'n': 1})

    future_time = datetime.utcnow() + timedelta(hours=2)
    monkeypatch.setattr('provisioner.services.snapshot_service.datetime', type('MockDatetime', (), {
        'utcnow': staticmethod(lambda: future_time),
        'fromisoformat': datetime.fromisoformat,
    }))

    assert snapshot_service.get_snapshot('s1') is None
    assert not snapshot_service.has_snapshot('s1')


def test_delete_snapshot(snapshot_service):
    """Deleted snapshots are gone."""
    snapshot_service.save_snapshot('s1', {'n': 1})
    snapshot_service.delete_snapshot('s1')
    assert snapshot_service.get_snapshot('s1') is None


def test_restore_corrupt_snapshot_yields_fresh_state(snapshot_service):
    """A malformed snapshot restores to the initial state."""
    snapshot_service.save_snapshot('s1', {'version': 1, 'provider': 'aws'})
    engine = WorkflowEngine.restore('s1', snapshot_service)
    assert engine.state == WorkflowState()
    assert snapshot_service.get_snapshot('s1')['provider'] is None


@pytest.mark.parametrize('field,value', [
    ('deployment', 'garbage'),
    ('deployment', ['running']),
    ('connected_accounts', ['acc-1']),
])
def test_restore_snapshot_with_non_mapping_entries_yields_fresh_state(snapshot_service, field, value):
    """Nested records that are not mappings also restore to the initial state."""
    data = WorkflowState(provider=Provider.AWS, region='us-east-1').to_dict()
    data[field] = value
    snapshot_service.save_snapshot('s2', data)

    engine = WorkflowEngine.restore('s2', snapshot_service)

    assert engine.state == WorkflowState()
    assert snapshot_service.get_snapshot('s2')['provider'] is None


def test_non_mapping_records_raise_type_error():
    """Account and run records must be mappings."""
    with pytest.raises(TypeError):
        CloudAccount.from_dict('acc-1')
    with pytest.raises(TypeError):
        DeploymentRun.from_dict('garbage')


def test_restore_missing_snapshot_yields_fresh_state(snapshot_service):
    """No snapshot restores to the initial state."""
    engine = WorkflowEngine.restore('unknown', snapshot_service)
    assert engine.state.current_stage is Stage.CONNECTION
    assert engine.state.provider is None


def test_restore_resumes_saved_state(snapshot_service, full_state):
    """A valid snapshot is restored as saved."""
    snapshot_service.save_snapshot('s1', full_state.to_dict())
    engine = WorkflowEngine.restore('s1', snapshot_service)
    assert engine.state == full_state


def test_global_snapshot_service_is_singleton():
    """get_snapshot_service returns the same instance."""
    assert get_snapshot_service() is get_snapshot_service()
