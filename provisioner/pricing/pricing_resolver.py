"""
Pricing resolver.
Combines live price tables from the provider pricing clients with the static
catalog tables. A live fetch failure is a cache-miss: the module is simply
absent from the result and callers fall back to the static table.
"""
from typing import Any, Callable, Dict, Iterable, Optional
import logging

from provisioner.catalog.module_catalog import ModuleCatalog, get_module_catalog
from provisioner.domain.module_models import PriceTable
from provisioner.domain.providers import Provider
from provisioner.pricing.aws_pricing_client import AWSPricingClient, AWSPricingError
from provisioner.pricing.azure_pricing_client import AzurePricingClient, AzurePricingError


logger = logging.getLogger(__name__)


def _default_client_factories() -> Dict[Provider, Callable[[], Any]]:
    # GCP has no live source; its static tables are always used
    return {
        Provider.AWS: AWSPricingClient,
        Provider.AZURE: AzurePricingClient,
    }


class PricingResolver:
    """Resolves live price overrides for the currently selected modules."""

    def __init__(
        self,
        clients: Optional[Dict[Provider, Any]] = None,
        catalog: Optional[ModuleCatalog] = None
    ):
        """
        Args:
            clients: Optional provider -> pricing client map. Clients expose
                `async fetch_module_prices(module_id, region)`. When omitted,
                clients are created lazily on first use.
            catalog: Module catalog used to pick static fallbacks
        """
        self._clients: Dict[Provider, Any] = dict(clients) if clients is not None else {}
        self._factories = {} if clients is not None else _default_client_factories()
        self.catalog = catalog or get_module_catalog()

    def _client_for(self, provider: Provider) -> Optional[Any]:
        if provider in self._clients:
            return self._clients[provider]
        factory = self._factories.get(provider)
        if factory is None:
            return None
        try:
            client = factory()
        except Exception as error:
            logger.warning(f"Live pricing unavailable for {provider.value}: {error}")
            return None
        self._clients[provider] = client
        return client

    async def resolve(
        self,
        provider: Provider,
        region: str,
        module_ids: Iterable[str],
        account_id: Optional[str] = None
    ) -> Dict[str, PriceTable]:
        """
        Fetch live price tables for the given modules.

        Args:
            provider: Active cloud provider
            region: Active region
            module_ids: Modules to resolve (only these are queried)
            account_id: Connected account, used for log context only

        Returns:
            Mapping of module id -> live price table. Modules whose fetch
            failed or that have no live source are absent.
        """
        provider = Provider.parse(provider)
        wanted = list(dict.fromkeys(module_ids))
        resolved: Dict[str, PriceTable] = {}
        if provider is None or not region:
            return resolved

        client = self._client_for(provider)
        if client is None:
            return resolved

        for module_id in wanted:
            if not self.catalog.contains(provider, module_id):
                continue
            try:
                table = await client.fetch_module_prices(module_id, region)
            except (AWSPricingError, AzurePricingError) as error:
                logger.warning(
                    f"Live pricing miss for {provider.value}/{module_id} in {region}: {error}"
                )
                continue
            except Exception as error:
                logger.warning(
                    f"Unexpected live pricing failure for {provider.value}/{module_id} "
                    f"(account={account_id}): {error}"
                )
                continue
            if table:
                resolved[module_id] = table

        logger.info(
            "Resolved live pricing for %d of %d modules (%s, %s)",
            len(resolved), len(wanted),
            provider.value, region
        )
        return resolved

    def effective_table(
        self,
        provider: Provider,
        module_id: str,
        overrides: Dict[str, PriceTable]
    ) -> PriceTable:
        """
        Pick the live table for a module if present, else its static catalog table.

        Raises:
            ModuleNotFoundError: If the module is not in the provider's catalog
        """
        if module_id in overrides and overrides[module_id]:
            return dict(overrides[module_id])
        return self.catalog.lookup(provider, module_id).price_table()
