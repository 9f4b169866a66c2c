"""
Per-provider module catalog.
Built once from the static tables and never mutated afterwards.
"""
from typing import Any, Dict, List, Optional, Tuple
import logging

from provisioner.catalog.aws_modules import AWS_MODULES
from provisioner.catalog.azure_modules import AZURE_MODULES
from provisioner.catalog.gcp_modules import GCP_MODULES
from provisioner.domain.errors import ModuleNotFoundError
from provisioner.domain.module_models import (
    ModuleDescriptor,
    Requirement,
    REQUIREMENT_MODULE,
    REQUIREMENT_RESOURCE,
)
from provisioner.domain.providers import Provider


logger = logging.getLogger(__name__)


_TABLES: Dict[Provider, List[Dict[str, Any]]] = {
    Provider.AWS: AWS_MODULES,
    Provider.AZURE: AZURE_MODULES,
    Provider.GCP: GCP_MODULES,
}


def _build_descriptors(rows: List[Dict[str, Any]]) -> Tuple[ModuleDescriptor, ...]:
    """
    Turn raw table rows into descriptors.

    A requirement naming another module id of the same table becomes a module
    requirement; anything else is a free-form resource requirement.
    """
    module_ids = {row["id"] for row in rows}
    descriptors = []
    for row in rows:
        requirements = tuple(
            Requirement(
                kind=REQUIREMENT_MODULE if name in module_ids and name != row["id"] else REQUIREMENT_RESOURCE,
                name=name,
            )
            for name in row.get("requirements", [])
        )
        descriptors.append(
            ModuleDescriptor(
                id=row["id"],
                name=row["name"],
                description=row.get("description", ""),
                price=dict(row.get("price", {})),
                requirements=requirements,
                iac_resources=tuple(row.get("iac_resources", [])),
                category=row.get("category", "general"),
            )
        )
    return tuple(descriptors)


class ModuleCatalog:
    """Static registry of provisionable modules per provider."""

    def __init__(self, tables: Optional[Dict[Provider, List[Dict[str, Any]]]] = None):
        tables = tables if tables is not None else _TABLES
        self._modules: Dict[Provider, Tuple[ModuleDescriptor, ...]] = {
            provider: _build_descriptors(rows) for provider, rows in tables.items()
        }
        self._index: Dict[Provider, Dict[str, ModuleDescriptor]] = {
            provider: {descriptor.id: descriptor for descriptor in descriptors}
            for provider, descriptors in self._modules.items()
        }
        logger.info(
            "Module catalog loaded: %s",
            ", ".join(f"{p.value}={len(m)}" for p, m in self._modules.items())
        )

    def modules_for(self, provider: Provider) -> List[ModuleDescriptor]:
        """
        List the modules available for a provider, in catalog order.

        Args:
            provider: Cloud provider

        Returns:
            Ordered list of module descriptors (empty for an unknown provider)
        """
        return list(self._modules.get(Provider.parse(provider), ()))

    def lookup(self, provider: Provider, module_id: str) -> ModuleDescriptor:
        """
        Find a module by id.

        Args:
            provider: Cloud provider
            module_id: Catalog id such as 'ec2'

        Returns:
            The module descriptor

        Raises:
            ModuleNotFoundError: If the provider has no such module
        """
        parsed = Provider.parse(provider)
        descriptor = self._index.get(parsed, {}).get(module_id)
        if descriptor is None:
            raise ModuleNotFoundError(parsed.value if parsed else str(provider), module_id)
        return descriptor

    def contains(self, provider: Provider, module_id: str) -> bool:
        return module_id in self._index.get(Provider.parse(provider), {})


_module_catalog: Optional[ModuleCatalog] = None


def get_module_catalog() -> ModuleCatalog:
    """
    Get the global module catalog instance.

    Returns:
        ModuleCatalog instance
    """
    global _module_catalog
    if _module_catalog is None:
        _module_catalog = ModuleCatalog()
    return _module_catalog
