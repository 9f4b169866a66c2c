"""
Deployment execution monitor.
Submits a provisioning job to the platform backend and follows its log until a
success or failure marker appears, the deadline passes, or the task is cancelled.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from datetime import datetime, timezone
import asyncio
import copy
import inspect
import logging
import time

from provisioner.core.config import config
from provisioner.domain.deployment_models import DeploymentRun, DeploymentStatus, PollResult, SubmitResult
from provisioner.domain.errors import DeploymentTimeoutError, ExecutionError, SubmissionError, TransientPollError
from provisioner.domain.providers import Provider
from provisioner.providers.base import ProviderCapability
from provisioner.providers.registry import get_provider_capability
from provisioner.services.platform_client import PlatformAPIError, PlatformClient


logger = logging.getLogger(__name__)


SUCCESS_MARKERS = ("Apply complete",)
FAILURE_MARKERS = ("Error:", "[ERROR]", "Unsupported argument", "An argument named", "╷")
FAILURE_SUMMARY = "[ERROR] Deployment failed. See above for details."

RunCallback = Callable[[DeploymentRun], Union[None, Awaitable[None]]]


def classify_logs(text: str) -> Tuple[bool, bool]:
    """
    Classify a deployment log.

    Success wins when both kinds of marker are present, since the completion
    phrase is only printed after every resource was applied.

    Args:
        text: Full log text

    Returns:
        (terminal, succeeded)
    """
    if any(marker in text for marker in SUCCESS_MARKERS):
        return True, True
    if any(marker in text for marker in FAILURE_MARKERS):
        return True, False
    return False, False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentMonitor:
    """Submits deployments and polls their logs."""

    def __init__(
        self,
        platform_client: Optional[PlatformClient] = None,
        poll_interval: Optional[float] = None,
        error_backoff: Optional[float] = None,
        max_poll_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = _utc_now
    ):
        """
        Args:
            platform_client: Backend client for submit and log calls
            poll_interval: Seconds between polls (DEPLOY_POLL_INTERVAL_SECONDS)
            error_backoff: Seconds after a failed poll (DEPLOY_POLL_ERROR_BACKOFF_SECONDS)
            max_poll_seconds: Deadline in seconds, 0 for none (DEPLOY_MAX_POLL_SECONDS)
            clock: Monotonic clock used for the deadline
            sleep: Coroutine used to wait between polls
            now: Wall clock used for line timestamps
        """
        self.platform_client = platform_client or PlatformClient()
        self.poll_interval = config.DEPLOY_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.error_backoff = (
            config.DEPLOY_POLL_ERROR_BACKOFF_SECONDS if error_backoff is None else error_backoff
        )
        self.max_poll_seconds = config.DEPLOY_MAX_POLL_SECONDS if max_poll_seconds is None else max_poll_seconds
        self._clock = clock
        self._sleep = sleep
        self._now = now
        # Last full log text seen per deployment id
        self._seen_text: Dict[str, str] = {}

    def _stamp(self, line: str) -> str:
        return f"[{self._now().strftime('%H:%M:%S')}] {line}"

    def format_lines(self, text: str) -> List[str]:
        """Split log text into timestamped lines, dropping blank lines."""
        return [self._stamp(line) for line in text.split("\n") if line.strip()]

    async def submit(
        self,
        provider: Provider,
        payload: Dict[str, Any],
        capability: Optional[ProviderCapability] = None
    ) -> SubmitResult:
        """
        Submit a deployment to the provider's deploy endpoint.

        Args:
            provider: Target provider
            payload: Deployment payload
            capability: Provider capability (looked up when omitted)

        Returns:
            SubmitResult; a rejected or unreachable submission is a failed result
        """
        capability = capability or get_provider_capability(provider, self.platform_client)
        try:
            body = await self.platform_client.submit_deployment(capability.deploy_endpoint, payload)
        except PlatformAPIError as error:
            logger.error(f"Deployment submission to {capability.deploy_endpoint} failed: {error}")
            return SubmitResult(success=False, error=str(error))

        deployment_id = body.get("deploymentId") or body.get("deployment_id")
        if not body.get("success") or not deployment_id:
            error = body.get("error") or "Deployment backend did not return a deployment id"
            logger.error(f"Deployment submission rejected: {error}")
            return SubmitResult(success=False, error=str(error))

        logger.info(f"Deployment {deployment_id} submitted for {Provider.parse(provider).value}")
        return SubmitResult(success=True, deployment_id=str(deployment_id))

    async def start_run(
        self,
        provider: Provider,
        payload: Dict[str, Any],
        capability: Optional[ProviderCapability] = None
    ) -> DeploymentRun:
        """
        Submit a deployment and create its run.

        Returns:
            A RUNNING run with its deployment id, or a FAILED run whose only
            log line is the submission error
        """
        result = await self.submit(provider, payload, capability)
        run = DeploymentRun(provider=Provider.parse(provider).value, started_at=self._now())
        if result.success:
            run.deployment_id = result.deployment_id
            return run

        error = SubmissionError(result.error or "Deployment submission failed")
        run.append_lines([f"❌ Deploy failed: {error}"])
        run.finish(DeploymentStatus.FAILED, str(error))
        return run

    async def poll_logs(self, deployment_id: str, recorded_lines: int = 0) -> PollResult:
        """
        Fetch the deployment log once.

        When the backend returns the cumulative log, only the unseen part is
        reported as new lines. On the first poll of a deployment that already
        has lines (a run resumed after a restart), the first recorded_lines
        non-blank lines of the log are treated as seen.

        Args:
            deployment_id: Deployment identifier
            recorded_lines: Lines the run already holds before this poll

        Returns:
            PollResult with the new timestamped lines and the classification

        Raises:
            TransientPollError: If the log could not be fetched
        """
        try:
            text = await self.platform_client.get_deployment_logs(deployment_id)
        except PlatformAPIError as error:
            raise TransientPollError(f"Log poll for {deployment_id} failed: {error}") from error

        if deployment_id in self._seen_text:
            previous = self._seen_text[deployment_id]
            fresh = text[len(previous):] if previous and text.startswith(previous) else text
        else:
            fresh = "\n".join([line for line in text.split("\n") if line.strip()][recorded_lines:])
        self._seen_text[deployment_id] = text

        terminal, succeeded = classify_logs(text)
        return PollResult(new_lines=self.format_lines(fresh), terminal=terminal, succeeded=succeeded)

    async def _notify(self, on_update: Optional[RunCallback], run: DeploymentRun) -> None:
        if on_update is None:
            return
        outcome = on_update(copy.deepcopy(run))
        if inspect.isawaitable(outcome):
            await outcome

    def _finish_failed(self, run: DeploymentRun, status: DeploymentStatus, error: Exception) -> None:
        run.append_lines([self._stamp(FAILURE_SUMMARY)])
        run.finish(status, str(error))
        logger.warning(f"Deployment {run.deployment_id} {status.value}: {error}")

    async def monitor(self, run: DeploymentRun, on_update: Optional[RunCallback] = None) -> DeploymentRun:
        """
        Poll until the run reaches a terminal status.

        Transient poll errors never end the run; they are retried after the
        error backoff. Cancelling the awaiting task stops polling and leaves the
        recorded lines untouched.

        Args:
            run: A RUNNING run with a deployment id
            on_update: Called with a copy of the run after every change

        Returns:
            The terminal run
        """
        if run.is_terminal:
            return run
        if not run.deployment_id:
            raise ValueError("Cannot monitor a run without a deployment id")

        recorded_lines = len(run.log_lines)
        started = self._clock()
        try:
            while True:
                if self.max_poll_seconds and self._clock() - started >= self.max_poll_seconds:
                    self._finish_failed(
                        run,
                        DeploymentStatus.TIMED_OUT,
                        DeploymentTimeoutError(
                            f"Deployment did not finish within {self.max_poll_seconds:g} seconds"
                        ),
                    )
                    await self._notify(on_update, run)
                    return run

                try:
                    result = await self.poll_logs(run.deployment_id, recorded_lines)
                except TransientPollError as error:
                    logger.warning(f"{error}; retrying in {self.error_backoff:g}s")
                    await self._sleep(self.error_backoff)
                    continue

                run.append_lines(result.new_lines)
                if result.terminal:
                    if result.succeeded:
                        run.finish(DeploymentStatus.SUCCEEDED)
                        logger.info(f"Deployment {run.deployment_id} succeeded")
                    else:
                        self._finish_failed(
                            run,
                            DeploymentStatus.FAILED,
                            ExecutionError("Failure marker found in deployment log"),
                        )
                    await self._notify(on_update, run)
                    return run

                if result.new_lines:
                    await self._notify(on_update, run)
                await self._sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.info(f"Stopped monitoring deployment {run.deployment_id}")
            raise
        finally:
            self._seen_text.pop(run.deployment_id, None)

    def start(self, run: DeploymentRun, on_update: Optional[RunCallback] = None) -> "asyncio.Task[DeploymentRun]":
        """Run monitor() as a background task on the current event loop."""
        return asyncio.ensure_future(self.monitor(run, on_update))
