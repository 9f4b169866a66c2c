"""
Provider capability lookup.
"""
from typing import Dict, Optional, Type

from provisioner.domain.providers import Provider
from provisioner.providers.aws import AWSProvider
from provisioner.providers.azure import AzureProvider
from provisioner.providers.base import ProviderCapability
from provisioner.providers.gcp import GCPProvider
from provisioner.services.platform_client import PlatformClient


PROVIDER_CAPABILITIES: Dict[Provider, Type[ProviderCapability]] = {
    Provider.AWS: AWSProvider,
    Provider.AZURE: AzureProvider,
    Provider.GCP: GCPProvider,
}


def get_provider_capability(
    provider: Provider,
    platform_client: Optional[PlatformClient] = None
) -> ProviderCapability:
    """
    Get the capability implementation for a provider.

    Args:
        provider: Provider enum value or id string
        platform_client: Backend client shared by the capability

    Returns:
        ProviderCapability instance

    Raises:
        ValueError: If the provider is unknown or empty
    """
    parsed = Provider.parse(provider)
    if parsed is None:
        raise ValueError("Provider is required")
    return PROVIDER_CAPABILITIES[parsed](platform_client)
