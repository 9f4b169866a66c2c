"""
Azure Retail Prices API client.
Uses public REST API (no authentication required).
"""
from typing import Dict, Any, Optional
import copy
import logging
from datetime import datetime, timedelta
import httpx

from provisioner.core.config import config
from provisioner.domain.module_models import PriceTable


logger = logging.getLogger(__name__)


# VM sizes offered by the vm module's configuration form
VM_SKUS = ("Standard_B1s", "Standard_B2s", "Standard_D2s_v3", "Standard_D4s_v3")


class AzurePricingError(Exception):
    """Raised when Azure pricing lookup fails."""
    pass


class AzurePricingClient:
    """Client for querying Azure Retail Prices API."""

    # In-memory cache: "module:region" -> (price table, timestamp)
    _cache: Dict[str, tuple] = {}

    API_BASE_URL = "https://prices.azure.com/api/retail/prices"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize Azure pricing client.

        Args:
            transport: Optional httpx transport (used by tests)
        """
        self.cache_ttl = timedelta(seconds=config.PRICING_CACHE_TTL_SECONDS)
        self.timeout = 10.0
        self._transport = transport

    def supports(self, module_id: str) -> bool:
        return module_id == "vm"

    def _get_cached_table(self, cache_key: str) -> Optional[PriceTable]:
        if cache_key in self._cache:
            table, timestamp = self._cache[cache_key]
            if datetime.now() - timestamp < self.cache_ttl:
                return copy.deepcopy(table)
            del self._cache[cache_key]
        return None

    def _cache_table(self, cache_key: str, table: PriceTable) -> None:
        self._cache[cache_key] = (copy.deepcopy(table), datetime.now())

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def _normalize_region(self, region: str) -> str:
        """
        Normalize Azure region name for pricing API.
        Pricing API uses ARM region names like 'eastus'.
        """
        return region.lower().replace(" ", "")

    async def fetch_module_prices(self, module_id: str, region: str) -> Optional[PriceTable]:
        """
        Get the live price table for one module.

        Only the vm module has a live source; its table maps VM size -> hourly
        Linux pay-as-you-go price.

        Args:
            module_id: Catalog module id
            region: Azure region (e.g., 'eastus')

        Returns:
            Price table, or None if the module has no live source or nothing was found

        Raises:
            AzurePricingError: If the API call fails
        """
        if not self.supports(module_id):
            return None

        normalized_region = self._normalize_region(region)
        cache_key = f"{module_id}:{normalized_region}"
        cached = self._get_cached_table(cache_key)
        if cached is not None:
            return cached

        sku_filter = " or ".join(f"armSkuName eq '{sku}'" for sku in VM_SKUS)
        params = {
            "$filter": f"armRegionName eq '{normalized_region}' "
                       f"and serviceName eq 'Virtual Machines' "
                       f"and priceType eq 'Consumption' "
                       f"and ({sku_filter})"
        }

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(self.API_BASE_URL, params=params, timeout=self.timeout)
                response.raise_for_status()
                data: Dict[str, Any] = response.json()
        except httpx.HTTPStatusError as error:
            logger.error(f"Azure pricing API HTTP error: {error}")
            raise AzurePricingError(f"Failed to query Azure pricing: {error.response.status_code}") from error
        except httpx.RequestError as error:
            logger.error(f"Azure pricing API request error: {error}")
            raise AzurePricingError(f"Failed to connect to Azure pricing API: {str(error)}") from error
        except ValueError as error:
            raise AzurePricingError(f"Invalid Azure pricing response: {str(error)}") from error

        table: PriceTable = {}
        for item in data.get("Items", []):
            product_name = item.get("productName", "")
            sku_name = item.get("skuName", "")
            # Linux pay-as-you-go only
            if "Windows" in product_name or "Spot" in sku_name or "Low Priority" in sku_name:
                continue
            sku = item.get("armSkuName")
            price = item.get("retailPrice")
            if sku and price is not None and sku not in table:
                table[sku] = float(price)

        if not table:
            logger.warning(f"No live Azure prices found for {module_id} in {normalized_region}")
            return None

        self._cache_table(cache_key, table)
        return copy.deepcopy(table)
