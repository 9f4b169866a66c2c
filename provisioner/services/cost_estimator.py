"""
Cost estimator service.
Applies per-module monthly cost formulas to module configuration and a price table.

Every function here is pure: the same (config, price table) always yields the
same figure, and nothing is cached or fetched.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging

from provisioner.catalog.module_catalog import ModuleCatalog, get_module_catalog
from provisioner.core.config import config
from provisioner.domain.cost_models import CostEstimate, CostLineItem
from provisioner.domain.errors import ModuleNotFoundError
from provisioner.domain.module_models import ModuleConfig, PriceTable
from provisioner.domain.providers import Provider


logger = logging.getLogger(__name__)


HOURS_PER_MONTH = config.HOURS_PER_MONTH

# (monthly cost, formula description, assumptions)
FormulaResult = Tuple[float, str, List[str]]
Formula = Callable[[ModuleConfig, PriceTable], FormulaResult]


def _rate(table: PriceTable, key: str, default: float) -> float:
    """Scalar rate for key, or default when the table has no usable value."""
    value = table.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _quantity(module_config: ModuleConfig, key: str, default: float) -> float:
    """Configured quantity, or default when unset, zero or not a number."""
    value = module_config.get(key)
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number else default


def _ec2(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    instance_type = module_config.get("instanceType") or "t2.micro"
    hourly = _rate(table, instance_type, 0.0116)
    return hourly * HOURS_PER_MONTH, f"{instance_type} hourly * {HOURS_PER_MONTH}", [
        f"Instance type: {instance_type}",
        "On-demand Linux, running 24/7",
    ]


def _s3(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    storage_class = module_config.get("storageClass") or "STANDARD"
    rate = _rate(table, storage_class, _rate(table, "storage", 0.023))
    return rate * HOURS_PER_MONTH, f"{storage_class} rate * {HOURS_PER_MONTH}", [
        f"Storage class: {storage_class}",
    ]


def _vpc(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    nat = _rate(table, "natGateway", 0.045)
    return nat * HOURS_PER_MONTH, f"NAT gateway hourly * {HOURS_PER_MONTH}", [
        "One NAT gateway, data processing not included",
    ]


def _lambda(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    requests = _quantity(module_config, "requestsPerMonth", 1e6)
    duration_ms = _quantity(module_config, "avgDurationMs", 1000)
    memory_mb = _quantity(module_config, "memoryMB", 128)
    request_cost = requests * _rate(table, "requests", 0.0000002)
    gb_seconds = (requests * duration_ms / 1000) * (memory_mb / 1024)
    duration_cost = gb_seconds * _rate(table, "duration", 0.0000166667)
    return request_cost + duration_cost, "requests * rate + GB-seconds * rate", [
        f"{int(requests)} requests/month",
        f"{int(duration_ms)} ms average duration",
        f"{int(memory_mb)} MB memory",
    ]


def _dynamodb(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    read = _quantity(module_config, "readCapacityUnits", 5)
    write = _quantity(module_config, "writeCapacityUnits", 5)
    storage_gb = _quantity(module_config, "storageGB", 1)
    cost = (
        read * HOURS_PER_MONTH * 60 * _rate(table, "read", 0.25)
        + write * HOURS_PER_MONTH * 60 * _rate(table, "write", 1.25)
        + storage_gb * _rate(table, "storage", 0.25)
    )
    return cost, f"RCU/WCU * {HOURS_PER_MONTH} * 60 * rate + GB * rate", [
        f"{int(read)} read / {int(write)} write capacity units",
        f"{storage_gb:g} GB stored",
    ]


def _kms(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    return _rate(table, "key", 1.0), "per key per month", ["One customer managed key"]


def _route53(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    return _rate(table, "hostedZone", 0.5), "per hosted zone per month", ["Query charges not included"]


def _efs(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    storage_gb = _quantity(module_config, "storageGB", 10)
    return storage_gb * _rate(table, "storage", 0.30), "GB * monthly rate", [f"{storage_gb:g} GB stored"]


def _sns(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    publish = _quantity(module_config, "publishCount", 1e6)
    sms = _quantity(module_config, "smsCount", 100)
    cost = publish * _rate(table, "publish", 0.5 / 1e6) + sms * _rate(table, "sms", 0.00645)
    return cost, "publishes * rate + SMS * rate", [
        f"{int(publish)} publishes/month",
        f"{int(sms)} SMS/month",
    ]


def _cloudwatch(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    log_gb = _quantity(module_config, "logGB", 1)
    metrics = _quantity(module_config, "metricsCount", 1)
    cost = log_gb * _rate(table, "logs", 0.57) + metrics * _rate(table, "metrics", 0.30)
    return cost, "log GB * rate + metrics * rate", [
        f"{log_gb:g} GB logs ingested",
        f"{int(metrics)} custom metrics",
    ]


def _ecr(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    storage_gb = _quantity(module_config, "storageGB", 10)
    return storage_gb * _rate(table, "storage", 0.10), "GB * monthly rate", [f"{storage_gb:g} GB images"]


def _lb(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    lb_type = module_config.get("lbType") or "alb"
    hourly = _rate(table, lb_type, 0.0225)
    return hourly * HOURS_PER_MONTH, f"{lb_type} hourly * {HOURS_PER_MONTH}", [
        f"Load balancer type: {lb_type}",
        "LCU charges not included",
    ]


def _azure_vm(module_config: ModuleConfig, table: PriceTable) -> FormulaResult:
    vm_size = module_config.get("vmSize") or "Standard_B1s"
    hourly = _rate(table, vm_size, _rate(table, "instance", 0.041))
    return hourly * HOURS_PER_MONTH, f"{vm_size} hourly * {HOURS_PER_MONTH}", [
        f"VM size: {vm_size}",
        "Pay-as-you-go Linux, running 24/7",
    ]


FORMULAS: Dict[Tuple[Provider, str], Formula] = {
    (Provider.AWS, "ec2"): _ec2,
    (Provider.AWS, "s3"): _s3,
    (Provider.AWS, "vpc"): _vpc,
    (Provider.AWS, "lambda"): _lambda,
    (Provider.AWS, "dynamodb"): _dynamodb,
    (Provider.AWS, "kms"): _kms,
    (Provider.AWS, "route53"): _route53,
    (Provider.AWS, "efs"): _efs,
    (Provider.AWS, "sns"): _sns,
    (Provider.AWS, "cloudwatch"): _cloudwatch,
    (Provider.AWS, "ecr"): _ecr,
    (Provider.AWS, "lb"): _lb,
    (Provider.AZURE, "vm"): _azure_vm,
}


def _fallback(table: Any) -> FormulaResult:
    """Scalar price * 730, or the sum of named scalar rates * 730."""
    if isinstance(table, dict):
        total = sum(
            float(value) for value in table.values()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        )
        return total * HOURS_PER_MONTH, f"sum of rates * {HOURS_PER_MONTH}", []
    if isinstance(table, (int, float)) and not isinstance(table, bool):
        return float(table) * HOURS_PER_MONTH, f"rate * {HOURS_PER_MONTH}", []
    return 0.0, "unpriced", ["No price data"]


def has_formula(provider: Provider, module_id: str) -> bool:
    return (Provider.parse(provider), module_id) in FORMULAS


def estimate(
    provider: Provider,
    module_id: str,
    module_config: Optional[ModuleConfig],
    price_table: PriceTable
) -> float:
    """
    Estimate the monthly USD cost of one module.

    Args:
        provider: Cloud provider the module belongs to
        module_id: Catalog module id
        module_config: The module's configuration (may be None or empty)
        price_table: Live table when resolved, otherwise the static catalog table

    Returns:
        Monthly cost in USD
    """
    return _evaluate(provider, module_id, module_config, price_table)[0]


def _evaluate(
    provider: Provider,
    module_id: str,
    module_config: Optional[ModuleConfig],
    price_table: PriceTable
) -> FormulaResult:
    formula = FORMULAS.get((Provider.parse(provider), module_id))
    if formula is None:
        return _fallback(price_table)
    return formula(module_config or {}, price_table if isinstance(price_table, dict) else {})


class CostEstimator:
    """Builds cost estimates for a set of selected modules."""

    def __init__(self, catalog: Optional[ModuleCatalog] = None):
        self.catalog = catalog or get_module_catalog()

    def estimate_line_item(
        self,
        provider: Provider,
        region: str,
        module_id: str,
        module_config: Optional[ModuleConfig],
        overrides: Dict[str, PriceTable]
    ) -> CostLineItem:
        """
        Estimate one selected module.

        Args:
            provider: Active provider
            region: Active region
            module_id: Selected module id
            module_config: The module's configuration
            overrides: Live price tables keyed by module id

        Returns:
            CostLineItem for the module

        Raises:
            ModuleNotFoundError: If the module is not in the provider's catalog
        """
        descriptor = self.catalog.lookup(provider, module_id)
        live_table = overrides.get(module_id)
        table = live_table if live_table else descriptor.price_table()
        cost, formula, assumptions = _evaluate(provider, module_id, module_config, table)
        return CostLineItem(
            provider=Provider.parse(provider).value,
            module_id=module_id,
            module_name=descriptor.name,
            region=region,
            monthly_cost_usd=cost,
            pricing_source="live" if live_table else "static",
            formula=formula,
            assumptions=assumptions,
        )

    def estimate_total(
        self,
        provider: Optional[Provider],
        region: str,
        selected_module_ids: Iterable[str],
        config_by_module: Dict[str, ModuleConfig],
        overrides: Optional[Dict[str, PriceTable]] = None
    ) -> CostEstimate:
        """
        Estimate the monthly total of exactly the selected modules.

        Modules missing from the catalog are skipped with a warning so one
        stale id never blocks the rest of the estimate.

        Args:
            provider: Active provider (None yields an empty estimate)
            region: Active region
            selected_module_ids: Currently selected module ids
            config_by_module: Configuration keyed by module id
            overrides: Live price tables keyed by module id

        Returns:
            CostEstimate whose total is the sum of its line items
        """
        overrides = overrides or {}
        line_items: List[CostLineItem] = []
        if provider is not None:
            for module_id in dict.fromkeys(selected_module_ids):
                try:
                    line_items.append(
                        self.estimate_line_item(
                            provider, region, module_id, config_by_module.get(module_id), overrides
                        )
                    )
                except ModuleNotFoundError as error:
                    logger.warning(f"Skipping cost for unknown module: {error}")

        return CostEstimate(
            currency="USD",
            total_monthly_cost_usd=sum(item.monthly_cost_usd for item in line_items),
            line_items=line_items,
            region=region,
        )
