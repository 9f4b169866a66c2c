"""
Domain models for the module catalog.
Defines catalog entries, their requirements and the dependency check result.
"""
from typing import Any, Dict, List, Tuple, Union
from dataclasses import dataclass, field
import copy


# A price point is either a scalar rate or a map keyed by a config variant
# (e.g. instance type -> hourly rate).
PricePoint = Union[float, Dict[str, float]]
PriceTable = Dict[str, PricePoint]

# Mutable per-module key/value settings edited by the user
ModuleConfig = Dict[str, Any]

REQUIREMENT_MODULE = "module"
REQUIREMENT_RESOURCE = "resource"


@dataclass(frozen=True)
class Requirement:
    """A prerequisite declared by a module: another module id or a named resource."""
    kind: str  # "module" | "resource"
    name: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"kind": self.kind, "name": self.name}


@dataclass(frozen=True)
class ModuleDescriptor:
    """Immutable catalog entry for a provisionable module."""
    id: str
    name: str
    description: str
    price: PriceTable
    requirements: Tuple[Requirement, ...] = ()
    iac_resources: Tuple[str, ...] = ()
    category: str = "general"

    def price_table(self) -> PriceTable:
        """Return a private copy of the static price table."""
        return copy.deepcopy(self.price)

    def module_dependencies(self) -> List[str]:
        """Return the ids of other modules this module requires."""
        return [req.name for req in self.requirements if req.kind == REQUIREMENT_MODULE]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": self.price_table(),
            "requirements": [req.to_dict() for req in self.requirements],
            "iac_resources": list(self.iac_resources),
        }


@dataclass
class RequirementStatus:
    """Outcome of the dependency-closure check for one selected module."""
    module_id: str
    satisfied: List[str] = field(default_factory=list)
    unsatisfied: List[str] = field(default_factory=list)
    resources: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unsatisfied

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "module_id": self.module_id,
            "satisfied": list(self.satisfied),
            "unsatisfied": list(self.unsatisfied),
            "resources": list(self.resources),
            "ok": self.ok,
        }
