"""
Error taxonomy for the provisioning workflow.

Only SubmissionError and ExecutionError (and the deadline variant,
DeploymentTimeoutError) describe a terminal deployment outcome. Everything else
is recoverable by user action or automatic retry.
"""
from typing import List, Optional


class ProvisioningError(Exception):
    """Base class for all workflow errors."""
    pass


class ValidationError(ProvisioningError):
    """Raised when a gating predicate fails. Never fatal; the user may correct and retry."""

    def __init__(self, message: str, reasons: Optional[List[str]] = None):
        super().__init__(message)
        self.reasons = reasons or []


class InvalidTransitionError(ProvisioningError):
    """Raised when a stage jump is not a legal transition."""
    pass


class PermissionDeniedError(ProvisioningError):
    """Raised when the caller lacks the capability for a step."""

    def __init__(self, resource: str, action: str):
        super().__init__(f"Missing permission {resource}/{action}")
        self.resource = resource
        self.action = action


class ModuleNotFoundError(ProvisioningError):
    """Raised when a module id is not in the provider's catalog."""

    def __init__(self, provider: str, module_id: str):
        super().__init__(f"Module '{module_id}' not found for provider '{provider}'")
        self.provider = provider
        self.module_id = module_id


class ConnectivityError(ProvisioningError):
    """Raised when a credential test or account connect fails."""
    pass


class SubmissionError(ProvisioningError):
    """Raised when the deployment backend rejects a job."""
    pass


class ExecutionError(ProvisioningError):
    """Raised when log scanning detects a failed deployment."""
    pass


class TransientPollError(ProvisioningError):
    """Raised when fetching deployment logs fails. Never terminates a run."""
    pass


class DeploymentTimeoutError(ProvisioningError):
    """Raised when a deployment exceeds the maximum poll duration."""
    pass
