"""
AWS Pricing API client.
Uses boto3 to query the AWS Price List API for per-module live price tables.
"""
from typing import Dict, Any, List, Optional
import asyncio
import copy
import json
import logging
from datetime import datetime, timedelta

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from provisioner.core.config import config
from provisioner.domain.module_models import PriceTable
from provisioner.pricing.aws_region_map import get_aws_pricing_location, get_aws_usage_type


logger = logging.getLogger(__name__)


# Modules whose live table is a fixed published rate sheet rather than a Price List query
FIXED_LIVE_TABLES: Dict[str, PriceTable] = {
    "lambda": {"requests": 0.0000002, "duration": 0.0000166667},
    "dynamodb": {"read": 0.25, "write": 1.25, "storage": 0.25},
    "kms": {"key": 1.0},
    "route53": {"hostedZone": 0.5},
    "efs": {"storage": 0.30},
    "sns": {"publish": 0.5 / 1e6, "sms": 0.00645},
    "cloudwatch": {"logs": 0.57, "metrics": 0.30},
    "ecr": {"storage": 0.10},
    "lb": {"alb": 0.0225, "nlb": 0.0225, "gwlb": 0.012},
}

QUERIED_MODULES = ("ec2", "s3", "vpc")

# Price List storageClass attribute -> S3 API storage class
_S3_STORAGE_CLASSES: Dict[str, str] = {
    "General Purpose": "STANDARD",
    "Infrequent Access": "STANDARD_IA",
    "Intelligent-Tiering": "INTELLIGENT_TIERING",
    "Archive": "GLACIER",
    "Archive Instant Retrieval": "GLACIER_IR",
}

# Price List result pages read per query
_MAX_PAGES = 5


class AWSPricingError(Exception):
    """Raised when AWS pricing lookup fails."""
    pass


class AWSPricingClient:
    """Client for querying AWS pricing using boto3."""

    # In-memory cache: "module:region" -> (price table, timestamp)
    _cache: Dict[str, tuple] = {}

    def __init__(self, pricing_client: Any = None):
        """
        Initialize AWS pricing client.

        Args:
            pricing_client: Optional pre-built boto3 'pricing' client
        """
        if pricing_client is None:
            boto_config = BotoConfig(
                connect_timeout=10,
                read_timeout=10,
                retries={'max_attempts': 0}  # A failed fetch is a cache-miss, not retried
            )
            pricing_client = boto3.client(
                'pricing',
                region_name=config.AWS_PRICING_REGION,
                config=boto_config
            )
        self.pricing_client = pricing_client
        self.cache_ttl = timedelta(seconds=config.PRICING_CACHE_TTL_SECONDS)

    def supports(self, module_id: str) -> bool:
        return module_id in QUERIED_MODULES or module_id in FIXED_LIVE_TABLES

    def _get_cached_table(self, cache_key: str) -> Optional[PriceTable]:
        """Get cached table if still valid."""
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

    def _query_prices(
        self,
        service_code: str,
        region: str,
        filters: List[Dict[str, str]],
        key_attribute: Optional[str] = None,
        default_key: str = "default"
    ) -> Dict[str, float]:
        """
        Query on-demand unit prices for a service in a region.

        Args:
            service_code: Price List service code (e.g., 'AmazonEC2')
            region: AWS region code
            filters: Extra TERM_MATCH filters
            key_attribute: Product attribute used as the result key
            default_key: Key used when the attribute is missing

        Returns:
            Mapping of attribute value -> USD unit price

        Raises:
            AWSPricingError: If the API call fails or the region is unknown
        """
        location = get_aws_pricing_location(region)
        if location is None:
            raise AWSPricingError(f"AWS region code '{region}' not found in region map")

        request: Dict[str, Any] = {
            'ServiceCode': service_code,
            'Filters': [{'Type': 'TERM_MATCH', 'Field': 'location', 'Value': location}] + filters,
            'FormatVersion': 'aws_v1',
            'MaxResults': 100,
        }

        prices: Dict[str, float] = {}
        try:
            for _ in range(_MAX_PAGES):
                response = self.pricing_client.get_products(**request)
                for raw_product in response.get('PriceList', []):
                    product = json.loads(raw_product) if isinstance(raw_product, str) else raw_product
                    price = self._on_demand_price(product)
                    if price is None:
                        continue
                    attributes = product.get('product', {}).get('attributes', {})
                    key = attributes.get(key_attribute, default_key) if key_attribute else default_key
                    prices[key] = price

                next_token = response.get('NextToken')
                if not next_token:
                    break
                request['NextToken'] = next_token
        except ClientError as error:
            logger.error(f"AWS pricing API error for {service_code}: {error}")
            raise AWSPricingError(f"Failed to query AWS pricing: {str(error)}") from error
        except (BotoCoreError, ValueError, KeyError) as error:
            logger.error(f"Error reading AWS pricing response for {service_code}: {error}")
            raise AWSPricingError(f"Failed to parse AWS pricing response: {str(error)}") from error

        return prices

    @staticmethod
    def _on_demand_price(product: Dict[str, Any]) -> Optional[float]:
        """Extract the first On-Demand USD unit price of a Price List product."""
        terms = product.get('terms', {}).get('OnDemand', {})
        if not terms:
            return None
        term = terms[next(iter(terms))]
        dimensions = term.get('priceDimensions', {})
        if not dimensions:
            return None
        usd = dimensions[next(iter(dimensions))].get('pricePerUnit', {}).get('USD')
        try:
            return float(usd)
        except (TypeError, ValueError):
            return None

    async def fetch_module_prices(self, module_id: str, region: str) -> Optional[PriceTable]:
        """
        Get the live price table for one module.

        Price List queries are blocking boto3 calls and run in a worker thread.

        Args:
            module_id: Catalog module id (e.g., 'ec2')
            region: AWS region code

        Returns:
            Price table, or None if the module has no live source or nothing was found

        Raises:
            AWSPricingError: If the Price List query fails
        """
        if module_id in FIXED_LIVE_TABLES:
            return copy.deepcopy(FIXED_LIVE_TABLES[module_id])
        if module_id not in QUERIED_MODULES:
            return None

        cache_key = f"{module_id}:{region}"
        cached = self._get_cached_table(cache_key)
        if cached is not None:
            return cached

        if module_id == "ec2":
            prices = await asyncio.to_thread(
                self._query_prices,
                'AmazonEC2',
                region,
                [
                    {'Type': 'TERM_MATCH', 'Field': 'operatingSystem', 'Value': 'Linux'},
                    {'Type': 'TERM_MATCH', 'Field': 'tenancy', 'Value': 'Shared'},
                    {'Type': 'TERM_MATCH', 'Field': 'preInstalledSw', 'Value': 'NA'},
                    {'Type': 'TERM_MATCH', 'Field': 'capacitystatus', 'Value': 'Used'},
                ],
                key_attribute='instanceType'
            )
            table: PriceTable = dict(prices)
        elif module_id == "s3":
            prices = await asyncio.to_thread(
                self._query_prices,
                'AmazonS3',
                region,
                [{'Type': 'TERM_MATCH', 'Field': 'productFamily', 'Value': 'Storage'}],
                key_attribute='storageClass',
                default_key='STANDARD'
            )
            table = {_S3_STORAGE_CLASSES.get(name, name): price for name, price in prices.items()}
        else:
            usage_type = get_aws_usage_type(region, "NatGateway-Hours")
            prices = await asyncio.to_thread(
                self._query_prices,
                'AmazonVPC',
                region,
                [{'Type': 'TERM_MATCH', 'Field': 'usagetype', 'Value': usage_type}]
            )
            table = {"natGateway": prices["default"]} if "default" in prices else {}

        if not table:
            logger.warning(f"No live AWS prices found for {module_id} in {region}")
            return None

        self._cache_table(cache_key, table)
        return copy.deepcopy(table)
