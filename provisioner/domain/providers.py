"""
Cloud provider identities and static provider facts.
"""
from enum import Enum
from typing import Dict, List, Optional


class Provider(str, Enum):
    """Supported cloud providers."""
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Provider"]:
        """
        Parse a provider id, tolerating case differences.

        Args:
            value: Provider id such as 'aws' or 'AWS'

        Returns:
            Provider, or None if value is empty

        Raises:
            ValueError: If value names an unknown provider
        """
        if value is None or value == "":
            return None
        if isinstance(value, Provider):
            return value
        return cls(str(value).strip().lower())


PROVIDER_DISPLAY_NAMES: Dict[Provider, str] = {
    Provider.AWS: "AWS",
    Provider.AZURE: "Azure",
    Provider.GCP: "Google Cloud",
}

# First entry is the default region applied when the provider is chosen
PROVIDER_REGIONS: Dict[Provider, List[str]] = {
    Provider.AWS: ["us-east-1", "us-west-2", "eu-central-1", "ap-southeast-1"],
    Provider.GCP: ["us-central1", "europe-west1", "asia-east1", "australia-southeast1"],
    Provider.AZURE: ["eastus", "westeurope", "southeastasia", "brazilsouth"],
}


def default_region(provider: Provider) -> str:
    """Return the default region for a provider."""
    return PROVIDER_REGIONS[provider][0]
