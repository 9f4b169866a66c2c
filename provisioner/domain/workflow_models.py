"""
Domain models for the provisioning wizard.
WorkflowState is the aggregate root owned by one workflow engine per session.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from enum import Enum, IntEnum
import copy

from provisioner.domain.account_models import CloudAccount
from provisioner.domain.deployment_models import DeploymentRun, DeploymentStatus
from provisioner.domain.module_models import ModuleConfig, PriceTable
from provisioner.domain.providers import Provider


SNAPSHOT_VERSION = 1


class Stage(IntEnum):
    """The five wizard stages, in order."""
    CONNECTION = 1
    EXISTING_RESOURCES = 2
    MODULE_SELECTION = 3
    CONFIGURE = 4
    CREATE = 5

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


class CreatePhase(str, Enum):
    """Sub-states of the Create stage."""
    IDLE = "idle"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowEvent(str, Enum):
    """State-change events published by the workflow engine."""
    PROVIDER_CHANGED = "provider_changed"
    CREDENTIALS_CHANGED = "credentials_changed"
    CONNECTION_TESTED = "connection_tested"
    ACCOUNT_SELECTED = "account_selected"
    REGION_CHANGED = "region_changed"
    STAGE_CHANGED = "stage_changed"
    MODULES_CHANGED = "modules_changed"
    CONFIG_CHANGED = "config_changed"
    PRICING_UPDATED = "pricing_updated"
    CONFIRMATION_CHANGED = "confirmation_changed"
    DEPLOYMENT_UPDATED = "deployment_updated"
    RESET = "reset"


# Events after which cost and IaC preview must be re-derived
RECOMPUTE_EVENTS = frozenset({
    WorkflowEvent.PROVIDER_CHANGED,
    WorkflowEvent.REGION_CHANGED,
    WorkflowEvent.MODULES_CHANGED,
    WorkflowEvent.CONFIG_CHANGED,
    WorkflowEvent.PRICING_UPDATED,
})


@dataclass
class WorkflowState:
    """
    Everything one wizard session knows.

    Raw credentials, the connectivity-test flag and discovered resources are
    tied to the running process and never leave it through to_dict().
    """
    provider: Optional[Provider] = None
    current_stage: Stage = Stage.CONNECTION
    region: str = ""
    account_name: str = ""
    selected_account_id: Optional[str] = None
    using_existing_account: bool = False
    connected_accounts: List[CloudAccount] = field(default_factory=list)
    selected_module_ids: List[str] = field(default_factory=list)
    module_config_by_module_id: Dict[str, ModuleConfig] = field(default_factory=dict)
    pricing_overrides_by_module_id: Dict[str, PriceTable] = field(default_factory=dict)
    estimated_monthly_cost: float = 0.0
    iac_preview_text: str = ""
    confirmation_acknowledged: bool = False
    deployment: Optional[DeploymentRun] = None

    # Transient, process-local
    credentials: Dict[str, str] = field(default_factory=dict)
    connection_tested: bool = False
    discovered_resources: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def deployment_id(self) -> Optional[str]:
        return self.deployment.deployment_id if self.deployment else None

    @property
    def deployment_log_lines(self) -> List[str]:
        return list(self.deployment.log_lines) if self.deployment else []

    @property
    def terminal_state(self) -> Optional[str]:
        if self.deployment is None or not self.deployment.is_terminal:
            return None
        return self.deployment.status.value

    @property
    def create_phase(self) -> CreatePhase:
        if self.deployment is None:
            return CreatePhase.IDLE
        if self.deployment.status is DeploymentStatus.RUNNING:
            return CreatePhase.POLLING
        if self.deployment.status is DeploymentStatus.SUCCEEDED:
            return CreatePhase.SUCCEEDED
        return CreatePhase.FAILED

    @property
    def selected_account(self) -> Optional[CloudAccount]:
        for account in self.connected_accounts:
            if account.id == self.selected_account_id:
                return account
        return None

    def clear_provider_scope(self) -> None:
        """Drop every field that only makes sense for the current provider."""
        self.region = ""
        self.account_name = ""
        self.credentials = {}
        self.connection_tested = False
        self.selected_account_id = None
        self.using_existing_account = False
        self.connected_accounts = []
        self.selected_module_ids = []
        self.module_config_by_module_id = {}
        self.pricing_overrides_by_module_id = {}
        self.estimated_monthly_cost = 0.0
        self.iac_preview_text = ""
        self.confirmation_acknowledged = False
        self.discovered_resources = []

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the resumable, non-secret part of the state to a dictionary.

        Returns:
            JSON-serializable snapshot
        """
        return {
            "version": SNAPSHOT_VERSION,
            "provider": self.provider.value if self.provider else None,
            "current_stage": int(self.current_stage),
            "region": self.region,
            "account_name": self.account_name,
            "selected_account_id": self.selected_account_id,
            "using_existing_account": self.using_existing_account,
            "connected_accounts": [account.to_dict() for account in self.connected_accounts],
            "selected_module_ids": list(self.selected_module_ids),
            "module_config_by_module_id": copy.deepcopy(self.module_config_by_module_id),
            "pricing_overrides_by_module_id": copy.deepcopy(self.pricing_overrides_by_module_id),
            "estimated_monthly_cost": self.estimated_monthly_cost,
            "iac_preview_text": self.iac_preview_text,
            "confirmation_acknowledged": self.confirmation_acknowledged,
            "deployment": self.deployment.to_dict() if self.deployment else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        """
        Rebuild state from a snapshot.

        Args:
            data: Dictionary produced by to_dict()

        Returns:
            Restored WorkflowState

        Raises:
            KeyError, TypeError, ValueError: If the snapshot is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("Snapshot must be a mapping")
        if data.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {data.get('version')!r}")

        deployment_data = data.get("deployment")
        return cls(
            provider=Provider.parse(data.get("provider")),
            current_stage=Stage(int(data["current_stage"])),
            region=str(data.get("region") or ""),
            account_name=str(data.get("account_name") or ""),
            selected_account_id=data.get("selected_account_id"),
            using_existing_account=bool(data.get("using_existing_account")),
            connected_accounts=[
                CloudAccount.from_dict(item) for item in data.get("connected_accounts") or []
            ],
            selected_module_ids=[str(m) for m in data.get("selected_module_ids") or []],
            module_config_by_module_id=dict(data.get("module_config_by_module_id") or {}),
            pricing_overrides_by_module_id=dict(data.get("pricing_overrides_by_module_id") or {}),
            estimated_monthly_cost=float(data.get("estimated_monthly_cost") or 0.0),
            iac_preview_text=str(data.get("iac_preview_text") or ""),
            confirmation_acknowledged=bool(data.get("confirmation_acknowledged")),
            deployment=DeploymentRun.from_dict(deployment_data) if deployment_data else None,
        )
