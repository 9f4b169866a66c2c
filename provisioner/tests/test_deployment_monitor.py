"""
Tests for deployment submission and log monitoring.
"""

import asyncio
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from provisioner.domain.deployment_models import DeploymentRun, DeploymentStatus
from provisioner.domain.providers import Provider
from provisioner.services.deployment_monitor import FAILURE_SUMMARY, DeploymentMonitor, classify_logs
from provisioner.services.platform_client import PlatformAPIError


FIXED_NOW = datetime(2024, 5, 1, 12, 30, 5, tzinfo=timezone.utc)


def make_monitor(platform, **kwargs):
    options = dict(poll_interval=0, error_backoff=0, max_poll_seconds=0, sleep=AsyncMock(), now=lambda: FIXED_NOW)
    options.update(kwargs)
    return DeploymentMonitor(platform, **options)


def running_run():
    return DeploymentRun(provider='aws', deployment_id='dep-1')


def test_success_marker_wins_over_failure_markers():
    """A log with both markers counts as success."""
    assert classify_logs('Error: retrying\nApply complete! Resources: 1 added') == (True, True)
    assert classify_logs('╷\n│ Error: invalid') == (True, False)
    assert classify_logs('Refreshing state...') == (False, False)


def test_format_lines_stamps_and_drops_blank_lines(mock_platform):
    """Each non-blank line gets a [HH:MM:SS] prefix."""
    monitor = make_monitor(mock_platform)
    assert monitor.format_lines('one\n\n  \ntwo') == ['[12:30:05] one', '[12:30:05] two']


@pytest.mark.asyncio
async def test_first_poll_success_stops_polling(mock_platform):
    """Apply complete on the first poll ends the run successfully without further polls."""
    mock_platform.get_deployment_logs = AsyncMock(return_value='Apply complete! Resources: 3 added')
    monitor = make_monitor(mock_platform)

    run = await monitor.monitor(running_run())

    assert run.status is DeploymentStatus.SUCCEEDED
    assert mock_platform.get_deployment_logs.await_count == 1
    assert run.log_lines == ['[12:30:05] Apply complete! Resources: 3 added']
    assert run.finished_at is not None


@pytest.mark.asyncio
async def test_error_box_on_fourth_poll_fails_and_keeps_all_lines(mock_platform):
    """Three in-progress polls then an error box: failed run with every line in order."""
    mock_platform.get_deployment_logs = AsyncMock(side_effect=[
        'Initializing',
        'Initializing\nPlanning',
        'Initializing\nPlanning\nCreating',
        'Initializing\nPlanning\nCreating\n╷\n│ Error: access denied',
    ])
    monitor = make_monitor(mock_platform)
    updates = []

    run = await monitor.monitor(running_run(), updates.append)

    assert run.status is DeploymentStatus.FAILED
    assert mock_platform.get_deployment_logs.await_count == 4
    assert run.log_lines == [
        '[12:30:05] Initializing',
        '[12:30:05] Planning',
        '[12:30:05] Creating',
        '[12:30:05] ╷',
        '[12:30:05] │ Error: access denied',
        f'[12:30:05] {FAILURE_SUMMARY}',
    ]
    assert updates[-1].status is DeploymentStatus.FAILED
    assert len(updates) == 4


@pytest.mark.asyncio
async def test_non_cumulative_logs_are_appended_whole(mock_platform):
    """Log chunks that do not extend the previous text are appended in full."""
    mock_platform.get_deployment_logs = AsyncMock(side_effect=['step one', 'step two', 'Apply complete'])
    monitor = make_monitor(mock_platform)

    run = await monitor.monitor(running_run())

    assert [line.split('] ', 1)[1] for line in run.log_lines] == ['step one', 'step two', 'Apply complete']


@pytest.mark.asyncio
async def test_resumed_run_skips_lines_it_already_holds(mock_platform):
    """Monitoring a run that already has lines appends only the part of the log after them."""
    mock_platform.get_deployment_logs = AsyncMock(side_effect=[
        'line one\n\nline two',
        'line one\n\nline two\nApply complete',
    ])
    monitor = make_monitor(mock_platform)
    run = DeploymentRun(provider='aws', deployment_id='dep-1', log_lines=['[00:00:00] line one'])

    run = await monitor.monitor(run)

    assert run.status is DeploymentStatus.SUCCEEDED
    assert run.log_lines == ['[00:00:00] line one', '[12:30:05] line two', '[12:30:05] Apply complete']


@pytest.mark.asyncio
async def test_first_poll_without_recorded_lines_reports_whole_log(mock_platform):
    """A fresh deployment reports every non-blank line of its first poll."""
    mock_platform.get_deployment_logs = AsyncMock(return_value='Init\n\nApply complete')
    monitor = make_monitor(mock_platform)

    result = await monitor.poll_logs('dep-1')

    assert result.new_lines == ['[12:30:05] Init', '[12:30:05] Apply complete']
    assert result.terminal and result.succeeded


@pytest.mark.asyncio
async def test_transient_poll_error_is_retried(mock_platform):
    """A failed poll backs off and polling continues."""
    mock_platform.get_deployment_logs = AsyncMock(side_effect=[PlatformAPIError('bad gateway', 502), 'Apply complete'])
    sleep = AsyncMock()
    monitor = make_monitor(mock_platform, sleep=sleep, error_backoff=2.0)

    run = await monitor.monitor(running_run())

    assert run.status is DeploymentStatus.SUCCEEDED
    sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_deadline_times_out_run(mock_platform):
    """Polling past the deadline finishes the run as timed out."""
    mock_platform.get_deployment_logs = AsyncMock(return_value='Still creating...')
    clock = iter([0.0, 0.0, 100.0]).__next__
    monitor = make_monitor(mock_platform, max_poll_seconds=10, clock=clock)

    run = await monitor.monitor(running_run())

    assert run.status is DeploymentStatus.TIMED_OUT
    assert run.log_lines[-1] == f'[12:30:05] {FAILURE_SUMMARY}'
    assert 'did not finish' in run.failure_reason


@pytest.mark.asyncio
async def test_cancel_stops_polling_without_touching_logs(mock_platform):
    """Cancelling the monitor task leaves recorded lines and status as they were."""
    mock_platform.get_deployment_logs = AsyncMock(return_value='Still creating...')
    monitor = make_monitor(mock_platform, sleep=asyncio.sleep)
    run = running_run()

    task = monitor.start(run)
    for _ in range(5):
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert run.status is DeploymentStatus.RUNNING
    assert run.log_lines == ['[12:30:05] Still creating...']


@pytest.mark.asyncio
async def test_updates_receive_copies(mock_platform):
    """Observers get snapshots they cannot use to mutate the run."""
    mock_platform.get_deployment_logs = AsyncMock(return_value='Apply complete')
    monitor = make_monitor(mock_platform)
    updates = []
    run = running_run()

    await monitor.monitor(run, updates.append)
    updates[0].log_lines.append('tampered')

    assert 'tampered' not in run.log_lines


@pytest.mark.asyncio
async def test_async_update_callbacks_are_awaited(mock_platform):
    """Coroutine callbacks are awaited."""
    mock_platform.get_deployment_logs = AsyncMock(return_value='Apply complete')
    monitor = make_monitor(mock_platform)
    callback = AsyncMock()

    await monitor.monitor(running_run(), callback)

    callback.assert_awaited_once()


@pytest.mark.asyncio
async def test_submit_uses_provider_deploy_endpoint(mock_platform):
    """Each provider submits to its own endpoint."""
    monitor = make_monitor(mock_platform)

    result = await monitor.submit(Provider.AZURE, {'modules': ['vm']})

    assert result.success
    assert result.deployment_id == 'dep-1'
    mock_platform.submit_deployment.assert_awaited_once_with('/api/azure/terraform/deploy', {'modules': ['vm']})


@pytest.mark.asyncio
async def test_rejected_submission_creates_failed_run(mock_platform):
    """A rejected submission yields a failed run with the error as its only line."""
    mock_platform.submit_deployment = AsyncMock(return_value={'success': False, 'error': 'Quota exceeded'})
    monitor = make_monitor(mock_platform)

    run = await monitor.start_run(Provider.AWS, {})

    assert run.status is DeploymentStatus.FAILED
    assert run.deployment_id is None
    assert run.log_lines == ['❌ Deploy failed: Quota exceeded']


@pytest.mark.asyncio
async def test_unreachable_backend_creates_failed_run(mock_platform):
    """A submission that cannot reach the backend fails the run."""
    mock_platform.submit_deployment = AsyncMock(side_effect=PlatformAPIError('Failed to reach platform backend'))
    monitor = make_monitor(mock_platform)

    run = await monitor.start_run(Provider.GCP, {})

    assert run.is_terminal
    assert 'Failed to reach platform backend' in run.failure_reason


@pytest.mark.asyncio
async def test_monitor_requires_deployment_id(mock_platform):
    """Runs without a deployment id cannot be monitored."""
    monitor = make_monitor(mock_platform)
    with pytest.raises(ValueError):
        await monitor.monitor(DeploymentRun(provider='aws'))
