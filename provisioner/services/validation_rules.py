"""
Validation rules engine.
Stage gating predicates and per-module configuration rules. Validity is always
derived from the current inputs; nothing here stores a 'valid' flag.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import re

from provisioner.catalog.module_catalog import ModuleCatalog, get_module_catalog
from provisioner.core.config import config
from provisioner.domain.errors import ModuleNotFoundError, ValidationError
from provisioner.domain.module_models import ModuleConfig, RequirementStatus, REQUIREMENT_RESOURCE
from provisioner.domain.providers import Provider
from provisioner.domain.workflow_models import Stage, WorkflowState
from provisioner.providers.base import ProviderCapability
from provisioner.providers.registry import get_provider_capability


KMS_ALIAS_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")
DOMAIN_PATTERN = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}$")
ROUTE53_RECORD_TYPES = ("A", "AAAA", "CNAME")
EXISTING_VPC_CHOICES = ("default", "use-selected-vpc")

ModuleRule = Callable[[ModuleConfig], List[str]]


def _filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True


def _require(module_config: ModuleConfig, *fields: str) -> List[str]:
    return [f"{name} is required" for name in fields if not _filled(module_config.get(name))]


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _ec2_rule(module_config: ModuleConfig) -> List[str]:
    # The default VPC and the VPC selected in this wizard carry their own
    # networking; any other VPC needs an explicit subnet, security group and key
    if module_config.get("vpcId") in EXISTING_VPC_CHOICES:
        return _require(module_config, "name", "instanceType", "vpcId")
    return _require(
        module_config, "name", "instanceType", "vpcId", "subnetId", "securityGroupId", "keyName"
    )


def _iam_rule(module_config: ModuleConfig) -> List[str]:
    if module_config.get("create_user") and _filled(module_config.get("user_name")):
        return []
    if (
        module_config.get("create_role")
        and _filled(module_config.get("role_name"))
        and _filled(module_config.get("assume_role_policy"))
    ):
        return []
    return ["Create a user with user_name or a role with role_name and assume_role_policy"]


def _lb_rule(module_config: ModuleConfig) -> List[str]:
    errors = _require(module_config, "name", "lbType", "vpcId", "subnets")
    if module_config.get("lbType") == "alb" and module_config.get("enableHttps"):
        errors += _require(module_config, "certificateArn")
    return errors


def _kms_rule(module_config: ModuleConfig) -> List[str]:
    alias = str(module_config.get("alias") or "")
    if not KMS_ALIAS_PATTERN.match(alias):
        return ["alias must start with a lowercase letter or digit and contain only a-z, 0-9 and '-'"]
    return []


def _route53_rule(module_config: ModuleConfig) -> List[str]:
    errors = []
    if not DOMAIN_PATTERN.match(str(module_config.get("domainName") or "")):
        errors.append("domainName must be a valid domain name")
    if not _filled(module_config.get("target")):
        errors.append("target is required")
    if module_config.get("recordType") not in ROUTE53_RECORD_TYPES:
        errors.append(f"recordType must be one of {', '.join(ROUTE53_RECORD_TYPES)}")
    if module_config.get("routingPolicy") == "weighted":
        weight = _number(module_config.get("weight"))
        if weight is None or not 0 <= weight <= 255:
            errors.append("weight must be between 0 and 255 for weighted routing")
    if module_config.get("enableHealthCheck") and not _filled(module_config.get("healthCheckUrl")):
        errors.append("healthCheckUrl is required when health checks are enabled")
    return errors


def _efs_rule(module_config: ModuleConfig) -> List[str]:
    errors = _require(module_config, "name", "throughputMode")
    if module_config.get("throughputMode") == "provisioned":
        throughput = _number(module_config.get("provisionedThroughput"))
        if throughput is None or throughput <= 0:
            errors.append("provisionedThroughput must be greater than 0")
    return errors


MODULE_RULES: Dict[Tuple[Provider, str], ModuleRule] = {
    (Provider.AWS, "ec2"): _ec2_rule,
    (Provider.AWS, "s3"): lambda c: _require(c, "name", "storageClass"),
    (Provider.AWS, "vpc"): lambda c: _require(c, "name", "cidrBlock"),
    (Provider.AWS, "eks"): lambda c: _require(c, "clusterName", "nodeCount", "instanceType"),
    (Provider.AWS, "cloudwatch"): lambda c: _require(c, "logGroupName"),
    (Provider.AWS, "sns"): lambda c: _require(c, "name", "emailSubscription"),
    (Provider.AWS, "iam"): _iam_rule,
    (Provider.AWS, "ecr"): lambda c: _require(c, "name"),
    (Provider.AWS, "lambda"): lambda c: _require(c, "name", "runtime"),
    (Provider.AWS, "dynamodb"): lambda c: _require(c, "name"),
    (Provider.AWS, "lb"): _lb_rule,
    (Provider.AWS, "kms"): _kms_rule,
    (Provider.AWS, "route53"): _route53_rule,
    (Provider.AWS, "efs"): _efs_rule,
}


def module_errors(provider: Provider, module_id: str, module_config: Optional[ModuleConfig]) -> List[str]:
    """
    Validate one module's configuration.

    Modules without a dedicated rule are always valid.

    Returns:
        Human-readable problems; empty when the configuration is valid
    """
    rule = MODULE_RULES.get((Provider.parse(provider), module_id))
    if rule is None:
        return []
    return rule(module_config or {})


def is_module_valid(provider: Provider, module_id: str, module_config: Optional[ModuleConfig]) -> bool:
    return not module_errors(provider, module_id, module_config)


def requirement_report(
    provider: Provider,
    selected_module_ids: Iterable[str],
    catalog: Optional[ModuleCatalog] = None
) -> List[RequirementStatus]:
    """
    Check the dependency closure of the selection.

    Module requirements are satisfied when the required module is also
    selected; resource requirements are listed for display only.

    Args:
        provider: Active provider
        selected_module_ids: Current selection
        catalog: Module catalog (global catalog when omitted)

    Returns:
        One RequirementStatus per selected module, in selection order
    """
    catalog = catalog or get_module_catalog()
    selected = list(dict.fromkeys(selected_module_ids))
    report = []
    for module_id in selected:
        try:
            descriptor = catalog.lookup(provider, module_id)
        except ModuleNotFoundError:
            report.append(RequirementStatus(module_id=module_id, unsatisfied=[module_id]))
            continue
        status = RequirementStatus(module_id=module_id)
        for requirement in descriptor.requirements:
            if requirement.kind == REQUIREMENT_RESOURCE:
                status.resources.append(requirement.name)
            elif requirement.name in selected:
                status.satisfied.append(requirement.name)
            else:
                status.unsatisfied.append(requirement.name)
        report.append(status)
    return report


def _connection_blockers(state: WorkflowState, capability: Optional[ProviderCapability]) -> List[str]:
    if state.provider is None:
        return ["Choose a cloud provider"]
    if state.using_existing_account:
        if state.selected_account_id and state.selected_account is not None:
            return []
        return ["Select one of your connected accounts"]
    capability = capability or get_provider_capability(state.provider)
    blockers = [
        f"{name} is required"
        for name in capability.missing_credential_fields(state.credentials, state.region)
    ]
    if not state.connection_tested:
        blockers.append("Test the connection before continuing")
    return blockers


def _module_selection_blockers(state: WorkflowState, catalog: Optional[ModuleCatalog]) -> List[str]:
    if state.provider is None:
        return ["Choose a cloud provider"]
    if not state.selected_module_ids:
        return ["Select at least one module"]
    blockers = []
    for module_id in state.selected_module_ids:
        for problem in module_errors(
            state.provider, module_id, state.module_config_by_module_id.get(module_id)
        ):
            blockers.append(f"{module_id}: {problem}")
    if config.ENFORCE_MODULE_DEPENDENCIES:
        for status in requirement_report(state.provider, state.selected_module_ids, catalog):
            for missing in status.unsatisfied:
                blockers.append(f"{status.module_id}: requires module '{missing}'")
    return blockers


def advance_blockers(
    stage: Stage,
    state: WorkflowState,
    capability: Optional[ProviderCapability] = None,
    catalog: Optional[ModuleCatalog] = None
) -> List[str]:
    """
    List the reasons the given stage cannot be left forward.

    Stage 5 has no forward transition; its gate is the submission gate.

    Args:
        stage: Stage being left
        state: Current workflow state
        capability: Provider capability (looked up when omitted)
        catalog: Module catalog (global catalog when omitted)

    Returns:
        Reasons; empty when the stage may advance
    """
    stage = Stage(stage)
    if stage is Stage.CONNECTION:
        return _connection_blockers(state, capability)
    if stage is Stage.MODULE_SELECTION:
        return _module_selection_blockers(state, catalog)
    if stage is Stage.CREATE:
        return submission_blockers(state, capability)
    if state.provider is None:
        return ["Choose a cloud provider"]
    return []


def submission_blockers(
    state: WorkflowState,
    capability: Optional[ProviderCapability] = None
) -> List[str]:
    """
    Reasons a deployment may not be submitted yet.

    Raw credentials are never persisted, so a session restored on the
    new-credentials path has to enter and test them again before it deploys.
    """
    blockers = []
    if state.current_stage is not Stage.CREATE:
        blockers.append("Deployments are submitted from the Create stage")
    if not state.confirmation_acknowledged:
        blockers.append("Acknowledge the confirmation before deploying")
    if state.deployment is not None and not state.deployment.is_terminal:
        blockers.append("A deployment is already running")
    if state.provider is not None and not state.using_existing_account:
        capability = capability or get_provider_capability(state.provider)
        if capability.missing_credential_fields(state.credentials, state.region) or not state.connection_tested:
            blockers.append("Re-enter and test the credentials before deploying")
    return blockers


def can_advance(
    stage: Stage,
    state: WorkflowState,
    capability: Optional[ProviderCapability] = None,
    catalog: Optional[ModuleCatalog] = None
) -> bool:
    """Whether the given stage's gating predicate holds for the state."""
    return not advance_blockers(stage, state, capability, catalog)


def check_advance(
    stage: Stage,
    state: WorkflowState,
    capability: Optional[ProviderCapability] = None,
    catalog: Optional[ModuleCatalog] = None
) -> None:
    """
    Raise when the stage may not advance.

    Raises:
        ValidationError: With the blocking reasons
    """
    blockers = advance_blockers(stage, state, capability, catalog)
    if blockers:
        raise ValidationError(f"Cannot leave stage {Stage(stage).label}", reasons=blockers)
