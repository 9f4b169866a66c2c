"""
Provisioning workflow engine.
Owns one session's WorkflowState and drives it through the five wizard stages:
connection, existing resources, module selection, configuration and create.

All mutations go through this class. After every mutation the engine re-derives
the cost estimate and IaC preview when the change affects them, saves the
non-secret snapshot and notifies subscribers.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple
import asyncio
import copy
import logging

from provisioner.catalog.module_catalog import ModuleCatalog, get_module_catalog
from provisioner.domain.account_models import CloudAccount, CredentialCheck
from provisioner.domain.cost_models import CostEstimate
from provisioner.domain.deployment_models import DeploymentRun
from provisioner.domain.errors import (
    ConnectivityError,
    InvalidTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from provisioner.domain.module_models import ModuleConfig, RequirementStatus
from provisioner.domain.providers import Provider, PROVIDER_REGIONS, default_region
from provisioner.domain.workflow_models import RECOMPUTE_EVENTS, Stage, WorkflowEvent, WorkflowState
from provisioner.pricing.pricing_resolver import PricingResolver
from provisioner.providers.base import ProviderCapability, mask_identifier
from provisioner.providers.registry import get_provider_capability
from provisioner.services import permissions as perms
from provisioner.services.cost_estimator import CostEstimator
from provisioner.services.deployment_monitor import DeploymentMonitor
from provisioner.services.iac_generator import IaCGenerator
from provisioner.services.platform_client import PlatformAPIError, PlatformClient
from provisioner.services.snapshot_service import SnapshotService
from provisioner.services.validation_rules import (
    check_advance,
    module_errors,
    requirement_report,
    submission_blockers,
)


logger = logging.getLogger(__name__)


# Permission required to leave each stage forward
STAGE_PERMISSIONS = {
    Stage.CONNECTION: perms.READ_CREDENTIALS,
    Stage.EXISTING_RESOURCES: perms.CONFIGURE_AGENT,
    Stage.MODULE_SELECTION: perms.CONFIGURE_AGENT,
    Stage.CONFIGURE: perms.READ_AGENT,
}

# Configuration seeded the first time a module is selected
DEFAULT_MODULE_CONFIGS: Dict[Tuple[Provider, str], ModuleConfig] = {
    (Provider.AWS, "ec2"): {"instanceType": "t2.micro", "amiId": "", "vpcId": ""},
    (Provider.AWS, "s3"): {"storageClass": "STANDARD", "versioning": True, "encryption": "AES256"},
    (Provider.AWS, "vpc"): {"cidrBlock": "10.0.0.0/16", "subnetCount": 2},
    (Provider.AWS, "kms"): {"alias": "", "description": "KMS key for encryption", "enableKeyRotation": True},
    (Provider.AWS, "ebs"): {"volumeType": "gp3", "size": 8},
    (Provider.AWS, "efs"): {
        "performanceMode": "generalPurpose",
        "throughputMode": "provisioned",
        "provisionedThroughput": 100,
        "encrypted": True,
        "environment": "prod",
    },
    (Provider.AWS, "lb"): {
        "lbType": "alb",
        "vpcId": "",
        "subnets": [],
        "targetPort": 80,
        "enableHttps": False,
        "certificateArn": "",
    },
    (Provider.AWS, "route53"): {
        "domainName": "",
        "recordName": "",
        "recordType": "A",
        "target": "",
        "routingPolicy": "simple",
        "enableHealthCheck": False,
    },
    (Provider.AWS, "ecr"): {"imageTagMutability": "MUTABLE", "scanOnPush": True},
    (Provider.AWS, "iam"): {"create_user": False, "create_role": False},
    (Provider.AWS, "lambda"): {"runtime": "python3.9", "handler": "lambda_function.lambda_handler"},
    (Provider.AWS, "sns"): {"emailSubscription": ""},
    (Provider.AWS, "cloudwatch"): {"retentionInDays": 14},
    (Provider.AWS, "cloudtrail"): {"trailName": "", "isMultiRegionTrail": False, "enableLogFileValidation": False},
    (Provider.GCP, "compute"): {"machineType": "e2-micro"},
    (Provider.GCP, "gke"): {"machineType": "e2-medium", "nodeCount": 1},
    (Provider.AZURE, "vm"): {"vmSize": "Standard_B1s"},
}

Observer = Callable[[WorkflowEvent, WorkflowState], None]


def default_module_config(provider: Provider, module_id: str, region: str) -> ModuleConfig:
    """Build the configuration seeded for a newly selected module."""
    seeded: ModuleConfig = {"name": "", "region": region}
    seeded.update(copy.deepcopy(DEFAULT_MODULE_CONFIGS.get((provider, module_id), {})))
    return seeded


class WorkflowEngine:
    """State machine for one provisioning wizard session."""

    def __init__(
        self,
        session_id: Optional[str] = None,
        permissions: Optional[perms.PermissionChecker] = None,
        state: Optional[WorkflowState] = None,
        catalog: Optional[ModuleCatalog] = None,
        platform_client: Optional[PlatformClient] = None,
        pricing_resolver: Optional[PricingResolver] = None,
        deployment_monitor: Optional[DeploymentMonitor] = None,
        snapshot_service: Optional[SnapshotService] = None,
        capability_factory: Callable[..., ProviderCapability] = get_provider_capability
    ):
        """
        Args:
            session_id: Snapshot key; no snapshot is written when omitted
            permissions: Authorization capability (all permissions when omitted)
            state: Initial state (fresh state when omitted)
            catalog: Module catalog
            platform_client: Backend client shared by providers and monitor
            pricing_resolver: Live pricing resolver
            deployment_monitor: Deployment submit / poll monitor
            snapshot_service: Snapshot store
            capability_factory: Provider capability lookup
        """
        self.session_id = session_id
        self.permissions = permissions or perms.AllowAllPermissions()
        self.state = state or WorkflowState()
        self.catalog = catalog or get_module_catalog()
        self.platform_client = platform_client or PlatformClient()
        self.pricing_resolver = pricing_resolver or PricingResolver(catalog=self.catalog)
        self.deployment_monitor = deployment_monitor or DeploymentMonitor(self.platform_client)
        self.snapshot_service = snapshot_service
        self.cost_estimator = CostEstimator(self.catalog)
        self.iac_generator = IaCGenerator(self.catalog)
        self._capability_factory = capability_factory
        self._capabilities: Dict[Provider, ProviderCapability] = {}
        self._observers: List[Observer] = []
        self._monitor_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Restore / persistence
    # ------------------------------------------------------------------

    @classmethod
    def restore(cls, session_id: str, snapshot_service: SnapshotService, **kwargs: Any) -> "WorkflowEngine":
        """
        Create an engine from the session's snapshot.

        A missing, expired or corrupt snapshot yields a fresh initial state.

        Args:
            session_id: Snapshot key
            snapshot_service: Snapshot store
            **kwargs: Further WorkflowEngine arguments

        Returns:
            WorkflowEngine for the session
        """
        data = snapshot_service.get_snapshot(session_id)
        state = None
        if data is not None:
            try:
                state = WorkflowState.from_dict(data)
            except (AttributeError, KeyError, TypeError, ValueError) as error:
                logger.warning(f"Discarding unreadable workflow snapshot: {error}")
        engine = cls(session_id=session_id, snapshot_service=snapshot_service, state=state, **kwargs)
        if state is None:
            engine.save_snapshot()
        return engine

    def save_snapshot(self) -> None:
        if self.snapshot_service is None or not self.session_id:
            return
        self.snapshot_service.save_snapshot(self.session_id, self.state.to_dict())

    # ------------------------------------------------------------------
    # Observers and derived data
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a state-change observer.

        Returns:
            Function that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _emit(self, *events: WorkflowEvent) -> None:
        if any(event in RECOMPUTE_EVENTS for event in events):
            self.recompute()
        self.save_snapshot()
        for event in events:
            for observer in list(self._observers):
                try:
                    observer(event, self.state)
                except Exception as error:
                    logger.error(f"Workflow observer failed on {event.value}: {error}")

    def cost_estimate(self) -> CostEstimate:
        """Current cost estimate with one line item per selected module."""
        state = self.state
        return self.cost_estimator.estimate_total(
            state.provider,
            state.region,
            state.selected_module_ids,
            state.module_config_by_module_id,
            state.pricing_overrides_by_module_id,
        )

    def recompute(self) -> None:
        """Re-derive the estimated cost and IaC preview from the current state."""
        state = self.state
        state.estimated_monthly_cost = self.cost_estimate().total_monthly_cost_usd
        state.iac_preview_text = self.iac_generator.generate(
            state.provider,
            state.region,
            state.credentials,
            state.selected_module_ids,
            state.module_config_by_module_id,
            capability=self.capability if state.provider else None,
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @property
    def capability(self) -> ProviderCapability:
        provider = self._require_provider()
        if provider not in self._capabilities:
            self._capabilities[provider] = self._capability_factory(provider, self.platform_client)
        return self._capabilities[provider]

    def _require_provider(self) -> Provider:
        if self.state.provider is None:
            raise ValidationError("Choose a cloud provider first", reasons=["provider is required"])
        return self.state.provider

    def _require_stage(self, *stages: Stage) -> None:
        if self.state.current_stage not in stages:
            allowed = ", ".join(stage.label for stage in stages)
            raise InvalidTransitionError(
                f"Not allowed in stage {self.state.current_stage.label} (allowed: {allowed})"
            )

    def require_permission(self, grant: perms.Grant) -> None:
        """
        Raises:
            PermissionDeniedError: If the caller lacks the grant
        """
        resource, action = grant
        if not self.permissions.has_permission(resource, action):
            raise PermissionDeniedError(resource, action)

    def ensure_can_enter(self) -> None:
        """Check the permission needed to open the wizard at all."""
        self.require_permission(perms.ENTER_WIZARD)

    # ------------------------------------------------------------------
    # Stage 1: provider, credentials and accounts
    # ------------------------------------------------------------------

    def select_provider(self, provider: Any) -> None:
        """
        Choose the provider, resetting every provider-scoped field.

        Raises:
            InvalidTransitionError: Outside the connection stage
            ValueError: For an unknown provider id
        """
        self._require_stage(Stage.CONNECTION)
        parsed = Provider.parse(provider)
        if parsed is None:
            raise ValueError("Provider is required")
        self.state.clear_provider_scope()
        self.state.provider = parsed
        self.state.region = default_region(parsed)
        logger.info(f"Provider switched to {parsed.value}")
        self._emit(WorkflowEvent.PROVIDER_CHANGED)

    def clear_provider(self) -> None:
        """Forget the provider. An in-flight deployment run is kept."""
        self._require_stage(Stage.CONNECTION)
        self.state.clear_provider_scope()
        self.state.provider = None
        self._emit(WorkflowEvent.PROVIDER_CHANGED)

    def _reset_connection_test(self) -> None:
        if not self.state.using_existing_account:
            self.state.connection_tested = False

    def set_credential(self, field: str, value: str) -> None:
        """
        Set one raw credential field.

        Any change while not using an existing account clears the successful
        connection test.
        """
        self._require_stage(Stage.CONNECTION)
        self._require_provider()
        value = "" if value is None else str(value)
        if self.state.credentials.get(field, "") == value:
            return
        self.state.credentials[field] = value
        self._reset_connection_test()
        self._emit(WorkflowEvent.CREDENTIALS_CHANGED)

    def update_credentials(self, values: Dict[str, str]) -> None:
        for field, value in values.items():
            if field == "region":
                self.set_region(value)
            else:
                self.set_credential(field, value)

    def set_account_name(self, name: str) -> None:
        self._require_provider()
        self.state.account_name = (name or "").strip()
        self._emit(WorkflowEvent.CREDENTIALS_CHANGED)

    def set_region(self, region: str) -> None:
        """
        Change the active region.

        Raises:
            ValidationError: If the region is not offered for the provider
        """
        provider = self._require_provider()
        if region not in PROVIDER_REGIONS[provider]:
            raise ValidationError(
                f"Unsupported region '{region}' for {provider.value}",
                reasons=[f"region must be one of {', '.join(PROVIDER_REGIONS[provider])}"],
            )
        if region == self.state.region:
            return
        self.state.region = region
        if self.state.current_stage is Stage.CONNECTION:
            self._reset_connection_test()
        self._emit(WorkflowEvent.REGION_CHANGED)

    async def refresh_accounts(self) -> List[CloudAccount]:
        """
        Reload the connected accounts of the current provider.

        A failed listing keeps the previous list and is logged.
        """
        provider = self._require_provider()
        try:
            accounts = await self.capability.list_accounts()
        except PlatformAPIError as error:
            logger.warning(f"Failed to list {provider.value} accounts: {error}")
            return list(self.state.connected_accounts)
        if self.state.provider is not provider:
            return accounts
        self.state.connected_accounts = accounts
        if self.state.selected_account_id and self.state.selected_account is None:
            self.state.selected_account_id = None
            self.state.using_existing_account = False
        self._emit(WorkflowEvent.ACCOUNT_SELECTED)
        return list(accounts)

    async def test_connection(self) -> CredentialCheck:
        """
        Run the provider's connectivity test on the entered credentials.

        Returns:
            The credential check; the test flag is set only on success and only
            if the credentials were not edited while the test was running
        """
        self._require_stage(Stage.CONNECTION)
        self._require_provider()
        missing = self.capability.missing_credential_fields(self.state.credentials, self.state.region)
        if missing:
            self.state.connection_tested = False
            self._emit(WorkflowEvent.CONNECTION_TESTED)
            return CredentialCheck(valid=False, error=f"Missing fields: {', '.join(missing)}")

        tested_inputs = (dict(self.state.credentials), self.state.region, self.state.provider)
        check = await self.capability.validate(dict(self.state.credentials), self.state.region)
        if tested_inputs != (self.state.credentials, self.state.region, self.state.provider):
            logger.info("Credentials changed during connection test; result discarded")
            return CredentialCheck(valid=False, error="Credentials changed during the test")

        self.state.connection_tested = check.valid
        if check.valid:
            logger.info(f"Connection test passed for {mask_identifier(check.normalized_account_id)}")
        else:
            logger.info(f"Connection test failed: {check.error}")
        self._emit(WorkflowEvent.CONNECTION_TESTED)
        return check

    async def connect_account(self) -> Optional[CloudAccount]:
        """
        Store the entered credentials as a connected account and select it.

        Returns:
            The new account when it could be found in the refreshed list

        Raises:
            PermissionDeniedError: Without Credentials/Create
            ValidationError: If credential fields are missing
            ConnectivityError: If validation or the connect call fails
        """
        self._require_stage(Stage.CONNECTION)
        self.require_permission(perms.CONNECT_CREDENTIALS)
        capability = self.capability
        missing = capability.missing_credential_fields(self.state.credentials, self.state.region)
        if missing:
            raise ValidationError("Credentials are incomplete", reasons=[f"{name} is required" for name in missing])

        credentials = dict(self.state.credentials)
        check = await capability.validate(credentials, self.state.region)
        if not check.valid:
            self.state.connection_tested = False
            self._emit(WorkflowEvent.CONNECTION_TESTED)
            raise ConnectivityError(check.error or "Validation failed")

        display_name = (
            self.state.account_name
            or check.suggested_display_name
            or capability.fallback_display_name(check.normalized_account_id)
        )
        result = await capability.connect(credentials, self.state.region, display_name, check)
        if not result.success:
            raise ConnectivityError(result.error or "Failed to connect account")

        try:
            accounts = await capability.list_accounts()
        except PlatformAPIError as error:
            raise ConnectivityError(f"Account connected but listing failed: {error}") from error

        self.state.connected_accounts = accounts
        self.state.connection_tested = True
        match = next(
            (
                account for account in accounts
                if (check.normalized_account_id and account.account_number == check.normalized_account_id)
                or account.id == result.account_id
            ),
            None,
        )
        events = [WorkflowEvent.ACCOUNT_SELECTED]
        if match is not None:
            self.state.selected_account_id = match.id
            self.state.using_existing_account = True
            if match.default_region in PROVIDER_REGIONS[capability.provider] and match.default_region != self.state.region:
                self.state.region = match.default_region
                events.append(WorkflowEvent.REGION_CHANGED)
            logger.info(f"Connected and selected account {mask_identifier(match.account_number or match.id)}")
        self._emit(*events)
        return match

    def use_existing_account(self, account_id: str) -> CloudAccount:
        """
        Select one of the connected accounts.

        Raises:
            PermissionDeniedError: Without Credentials/Read
            ValidationError: If the account is not connected
        """
        self._require_stage(Stage.CONNECTION)
        self.require_permission(perms.READ_CREDENTIALS)
        self._require_provider()
        account = next((a for a in self.state.connected_accounts if a.id == account_id), None)
        if account is None:
            raise ValidationError("Unknown account", reasons=[f"account '{account_id}' is not connected"])

        self.state.selected_account_id = account.id
        self.state.using_existing_account = True
        events = [WorkflowEvent.ACCOUNT_SELECTED]
        if account.default_region in PROVIDER_REGIONS[self.state.provider] and account.default_region != self.state.region:
            self.state.region = account.default_region
            events.append(WorkflowEvent.REGION_CHANGED)
        self._emit(*events)
        return account

    def use_new_credentials(self) -> None:
        """Switch back to entering raw credentials."""
        self._require_stage(Stage.CONNECTION)
        self.state.selected_account_id = None
        self.state.using_existing_account = False
        self.state.connection_tested = False
        self._emit(WorkflowEvent.ACCOUNT_SELECTED)

    # ------------------------------------------------------------------
    # Stage 2: existing resources
    # ------------------------------------------------------------------

    async def discover_resources(self) -> List[Dict[str, Any]]:
        """
        List resources previously deployed through the selected account.

        The result lives only in this process. A failed lookup yields an empty list.
        """
        self._require_stage(Stage.EXISTING_RESOURCES)
        if not self.state.selected_account_id:
            self.state.discovered_resources = []
            return []
        try:
            resources = await self.platform_client.list_resources(self.state.selected_account_id)
        except PlatformAPIError as error:
            logger.warning(f"Resource discovery failed: {error}")
            resources = []
        self.state.discovered_resources = resources
        return list(resources)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def advance(self) -> Stage:
        """
        Move from the current stage to the next one.

        Raises:
            InvalidTransitionError: From the last stage
            PermissionDeniedError: Without the stage's permission
            ValidationError: If the current stage's gate does not hold
        """
        current = self.state.current_stage
        if current is Stage.CREATE:
            raise InvalidTransitionError("Create is the last stage")
        self.require_permission(STAGE_PERMISSIONS[current])
        check_advance(current, self.state, self.capability if self.state.provider else None, self.catalog)

        self.state.current_stage = Stage(current + 1)
        logger.info(f"Stage advanced to {self.state.current_stage.label}")
        self._emit(WorkflowEvent.STAGE_CHANGED)
        return self.state.current_stage

    def go_to_stage(self, stage: Any) -> Stage:
        """
        Jump to a stage: backward to any earlier stage, forward only one step.

        Raises:
            InvalidTransitionError: For a forward jump of more than one stage
        """
        target = Stage(int(stage))
        current = self.state.current_stage
        if target == current + 1:
            return self.advance()
        if target > current:
            raise InvalidTransitionError(f"Cannot jump from {current.label} to {target.label}")
        if target != current:
            self.state.current_stage = target
            self._emit(WorkflowEvent.STAGE_CHANGED)
        return self.state.current_stage

    def back(self) -> Stage:
        """Go back one stage; at the connection stage this clears the provider."""
        if self.state.current_stage is Stage.CONNECTION:
            if self.state.provider is not None:
                self.clear_provider()
            return self.state.current_stage
        return self.go_to_stage(self.state.current_stage - 1)

    # ------------------------------------------------------------------
    # Stages 3 and 4: modules and configuration
    # ------------------------------------------------------------------

    def _seed_config(self, module_id: str) -> None:
        if module_id not in self.state.module_config_by_module_id:
            self.state.module_config_by_module_id[module_id] = default_module_config(
                self.state.provider, module_id, self.state.region
            )

    def select_module(self, module_id: str) -> None:
        """
        Make module_id the only selected module.

        Its configuration is seeded with defaults only the first time; earlier
        edits are kept when it is selected again.

        Raises:
            ModuleNotFoundError: If the provider has no such module
        """
        self._require_stage(Stage.MODULE_SELECTION)
        provider = self._require_provider()
        self.catalog.lookup(provider, module_id)
        self._seed_config(module_id)
        self.state.selected_module_ids = [module_id]
        self.state.pricing_overrides_by_module_id = {
            key: value for key, value in self.state.pricing_overrides_by_module_id.items() if key == module_id
        }
        self._emit(WorkflowEvent.MODULES_CHANGED)

    def add_module(self, module_id: str) -> None:
        """Add module_id to the selection (multi-module selection)."""
        self._require_stage(Stage.MODULE_SELECTION)
        provider = self._require_provider()
        self.catalog.lookup(provider, module_id)
        if module_id in self.state.selected_module_ids:
            return
        self._seed_config(module_id)
        self.state.selected_module_ids.append(module_id)
        self._emit(WorkflowEvent.MODULES_CHANGED)

    def remove_module(self, module_id: str) -> None:
        """Drop module_id from the selection. Its configuration is kept for re-selection."""
        self._require_stage(Stage.MODULE_SELECTION)
        if module_id not in self.state.selected_module_ids:
            return
        self.state.selected_module_ids.remove(module_id)
        self.state.pricing_overrides_by_module_id.pop(module_id, None)
        self._emit(WorkflowEvent.MODULES_CHANGED)

    def update_module_config(self, module_id: str, changes: Dict[str, Any]) -> ModuleConfig:
        """
        Merge changes into a selected module's configuration.

        Raises:
            ValidationError: If the module is not selected
        """
        self._require_stage(Stage.MODULE_SELECTION, Stage.CONFIGURE)
        if module_id not in self.state.selected_module_ids:
            raise ValidationError("Module is not selected", reasons=[f"select '{module_id}' first"])
        module_config = self.state.module_config_by_module_id.setdefault(module_id, {})
        module_config.update(copy.deepcopy(changes))
        self._emit(WorkflowEvent.CONFIG_CHANGED)
        return copy.deepcopy(module_config)

    def module_errors(self, module_id: str) -> List[str]:
        provider = self._require_provider()
        return module_errors(provider, module_id, self.state.module_config_by_module_id.get(module_id))

    def module_requirements(self) -> List[RequirementStatus]:
        """Dependency-closure report for the current selection."""
        if self.state.provider is None:
            return []
        return requirement_report(self.state.provider, self.state.selected_module_ids, self.catalog)

    async def refresh_pricing(self) -> Dict[str, Any]:
        """
        Resolve live prices for the selected modules.

        Results are written per module id; modules without a live price fall
        back to their static table. A result for a provider, region or module
        that is no longer active is dropped.
        """
        provider = self.state.provider
        if provider is None or not self.state.selected_module_ids:
            return {}
        region = self.state.region
        requested = list(self.state.selected_module_ids)
        overrides = await self.pricing_resolver.resolve(
            provider, region, requested, self.state.selected_account_id
        )
        if self.state.provider is not provider or self.state.region != region:
            return {}
        for module_id in requested:
            if module_id not in self.state.selected_module_ids:
                continue
            if module_id in overrides:
                self.state.pricing_overrides_by_module_id[module_id] = overrides[module_id]
            else:
                self.state.pricing_overrides_by_module_id.pop(module_id, None)
        self._emit(WorkflowEvent.PRICING_UPDATED)
        return copy.deepcopy(overrides)

    # ------------------------------------------------------------------
    # Stage 5: create
    # ------------------------------------------------------------------

    def acknowledge_confirmation(self, acknowledged: bool = True) -> None:
        self._require_stage(Stage.CREATE)
        self.state.confirmation_acknowledged = bool(acknowledged)
        self._emit(WorkflowEvent.CONFIRMATION_CHANGED)

    def build_deploy_payload(self) -> Dict[str, Any]:
        """
        Build the deployment payload.

        Raw credentials are only included when no connected account is used.
        """
        state = self.state
        payload: Dict[str, Any] = {
            "provider": self._require_provider().value,
            "region": state.region,
            "modules": list(state.selected_module_ids),
            "module_config": {
                module_id: copy.deepcopy(state.module_config_by_module_id.get(module_id, {}))
                for module_id in state.selected_module_ids
            },
            "account_id": state.selected_account_id if state.using_existing_account else None,
        }
        if not state.using_existing_account:
            payload["credentials"] = self.capability.deploy_credentials(state.credentials)
        return payload

    def _on_run_update(self, run: DeploymentRun) -> None:
        self.state.deployment = run
        self._emit(WorkflowEvent.DEPLOYMENT_UPDATED)

    async def submit_deployment(self) -> DeploymentRun:
        """
        Submit the deployment and start following its log in the background.

        Raises:
            PermissionDeniedError: Without Agent/Create
            ValidationError: Outside stage 5, without confirmation, while a run is active,
                or when new credentials were not re-entered and tested

        Returns:
            Copy of the new run (FAILED immediately when the submission was rejected)
        """
        self.require_permission(perms.CREATE_AGENT)
        blockers = submission_blockers(self.state, self.capability)
        if blockers:
            raise ValidationError("Deployment cannot be submitted", reasons=blockers)

        run = await self.deployment_monitor.start_run(
            self.state.provider, self.build_deploy_payload(), self.capability
        )
        self.state.deployment = copy.deepcopy(run)
        self._emit(WorkflowEvent.DEPLOYMENT_UPDATED)
        if not run.is_terminal:
            self._monitor_task = asyncio.ensure_future(
                self.deployment_monitor.monitor(run, self._on_run_update)
            )
        return copy.deepcopy(run)

    def resume_monitoring(self) -> bool:
        """Restart log polling for a restored run that was still running."""
        run = self.state.deployment
        if run is None or run.is_terminal or not run.deployment_id or self.is_monitoring:
            return False
        self._monitor_task = asyncio.ensure_future(
            self.deployment_monitor.monitor(copy.deepcopy(run), self._on_run_update)
        )
        return True

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def wait_for_deployment(self) -> Optional[DeploymentRun]:
        """Wait for the background monitor to finish and return the final run."""
        if self._monitor_task is not None:
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
        return copy.deepcopy(self.state.deployment)

    def cancel_monitoring(self) -> None:
        """Stop polling. Recorded log lines are left as they are."""
        if self.is_monitoring:
            self._monitor_task.cancel()
        self._monitor_task = None

    def reset(self) -> None:
        """Abandon the session: stop polling and start over from a fresh state."""
        self.cancel_monitoring()
        self.state = WorkflowState()
        logger.info("Workflow reset")
        self._emit(WorkflowEvent.RESET)
