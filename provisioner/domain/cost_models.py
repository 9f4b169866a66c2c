"""
Domain models for cost estimation.
Defines the structure of module cost estimates and line items.
"""
from typing import List, Dict, Any
from dataclasses import dataclass, field


@dataclass
class CostLineItem:
    """Represents the monthly cost contribution of one selected module."""
    provider: str
    module_id: str
    module_name: str
    region: str
    monthly_cost_usd: float
    pricing_source: str  # "live" | "static"
    formula: str  # e.g. "hourly * 730"
    assumptions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "module_id": self.module_id,
            "module_name": self.module_name,
            "region": self.region,
            "monthly_cost_usd": round(self.monthly_cost_usd, 2),
            "pricing_source": self.pricing_source,
            "formula": self.formula,
            "assumptions": list(self.assumptions),
        }


@dataclass
class CostEstimate:
    """Represents the estimate for the currently selected modules."""
    currency: str
    total_monthly_cost_usd: float
    line_items: List[CostLineItem]
    region: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        # Sort line items by monthly_cost_usd descending
        sorted_items = sorted(
            self.line_items,
            key=lambda x: x.monthly_cost_usd,
            reverse=True
        )

        return {
            "currency": self.currency,
            "total_monthly_cost_usd": round(self.total_monthly_cost_usd, 2),
            "region": self.region,
            "line_items": [item.to_dict() for item in sorted_items],
        }
