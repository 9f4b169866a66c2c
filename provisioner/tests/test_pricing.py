"""
Tests for live pricing clients and the pricing resolver.
"""

import json
import threading
import httpx
import pytest
from unittest.mock import AsyncMock, Mock
from botocore.exceptions import ClientError

from provisioner.domain.providers import Provider
from provisioner.pricing.aws_pricing_client import AWSPricingClient, AWSPricingError
from provisioner.pricing.aws_region_map import get_aws_pricing_location, get_aws_usage_type
from provisioner.pricing.azure_pricing_client import AzurePricingClient, AzurePricingError
from provisioner.pricing.pricing_resolver import PricingResolver


@pytest.fixture(autouse=True)
def clear_pricing_caches():
    """Pricing caches are class-level; isolate every test."""
    AWSPricingClient.clear_cache()
    AzurePricingClient.clear_cache()
    yield
    AWSPricingClient.clear_cache()
    AzurePricingClient.clear_cache()


def price_list_product(attributes, usd):
    return json.dumps({
        'product': {'attributes': attributes},
        'terms': {'OnDemand': {'TERM1': {'priceDimensions': {'DIM1': {'pricePerUnit': {'USD': usd}}}}}},
    })


@pytest.fixture
def boto_pricing():
    """Stub boto3 pricing client."""
    return Mock()


def test_region_map_lookups():
    """Region codes map to Price List locations and usage prefixes."""
    assert get_aws_pricing_location('us-east-1') == 'US East (N. Virginia)'
    assert get_aws_pricing_location('mars-1') is None
    assert get_aws_usage_type('eu-central-1', 'NatGateway-Hours') == 'EUC1-NatGateway-Hours'


@pytest.mark.asyncio
async def test_ec2_prices_keyed_by_instance_type(boto_pricing):
    """EC2 live table maps instance type to hourly price."""
    boto_pricing.get_products = Mock(return_value={'PriceList': [
        price_list_product({'instanceType': 't3.micro'}, '0.0104'),
        price_list_product({'instanceType': 't3.small'}, '0.0208'),
    ]})
    client = AWSPricingClient(pricing_client=boto_pricing)

    table = await client.fetch_module_prices('ec2', 'us-east-1')

    assert table == {'t3.micro': 0.0104, 't3.small': 0.0208}
    filters = boto_pricing.get_products.call_args.kwargs['Filters']
    assert {'Type': 'TERM_MATCH', 'Field': 'location', 'Value': 'US East (N. Virginia)'} in filters


@pytest.mark.asyncio
async def test_price_list_queries_run_off_the_event_loop_thread(boto_pricing):
    """The blocking boto3 call runs in a worker thread so polling keeps going."""
    calling_threads = []

    def get_products(**kwargs):
        calling_threads.append(threading.get_ident())
        return {'PriceList': [price_list_product({'instanceType': 't3.micro'}, '0.0104')]}

    boto_pricing.get_products = Mock(side_effect=get_products)
    client = AWSPricingClient(pricing_client=boto_pricing)

    table = await client.fetch_module_prices('ec2', 'us-east-1')

    assert table == {'t3.micro': 0.0104}
    assert calling_threads and threading.get_ident() not in calling_threads


@pytest.mark.asyncio
async def test_price_list_pages_are_followed(boto_pricing):
    """NextToken pages are read until exhausted."""
    boto_pricing.get_products = Mock(side_effect=[
        {'PriceList': [price_list_product({'instanceType': 't3.micro'}, '0.0104')], 'NextToken': 'page-2'},
        {'PriceList': [price_list_product({'instanceType': 'm5.large'}, '0.096')]},
    ])
    client = AWSPricingClient(pricing_client=boto_pricing)

    table = await client.fetch_module_prices('ec2', 'us-east-1')

    assert table == {'t3.micro': 0.0104, 'm5.large': 0.096}
    assert boto_pricing.get_products.call_args.kwargs['NextToken'] == 'page-2'


@pytest.mark.asyncio
async def test_s3_storage_classes_are_mapped(boto_pricing):
    """S3 Price List storage classes are keyed by API storage class."""
    boto_pricing.get_products = Mock(return_value={'PriceList': [
        price_list_product({'storageClass': 'General Purpose'}, '0.023'),
        price_list_product({'storageClass': 'Infrequent Access'}, '0.0125'),
    ]})
    client = AWSPricingClient(pricing_client=boto_pricing)

    assert await client.fetch_module_prices('s3', 'us-east-1') == {'STANDARD': 0.023, 'STANDARD_IA': 0.0125}


@pytest.mark.asyncio
async def test_vpc_uses_regional_nat_gateway_usage_type(boto_pricing):
    """VPC live table carries the NAT gateway hourly rate."""
    boto_pricing.get_products = Mock(return_value={'PriceList': [price_list_product({}, '0.052')]})
    client = AWSPricingClient(pricing_client=boto_pricing)

    table = await client.fetch_module_prices('vpc', 'eu-central-1')

    assert table == {'natGateway': 0.052}
    filters = boto_pricing.get_products.call_args.kwargs['Filters']
    assert {'Type': 'TERM_MATCH', 'Field': 'usagetype', 'Value': 'EUC1-NatGateway-Hours'} in filters


@pytest.mark.asyncio
async def test_fixed_tables_need_no_query(boto_pricing):
    """Rate-sheet modules return their fixed table without calling AWS."""
    client = AWSPricingClient(pricing_client=boto_pricing)

    assert await client.fetch_module_prices('kms', 'us-east-1') == {'key': 1.0}
    assert await client.fetch_module_prices('cloudfront', 'us-east-1') is None
    boto_pricing.get_products.assert_not_called()


@pytest.mark.asyncio
async def test_live_tables_are_cached(boto_pricing):
    """A second fetch for the same module and region is served from cache."""
    boto_pricing.get_products = Mock(return_value={'PriceList': [price_list_product({'instanceType': 't3.micro'}, '0.0104')]})
    client = AWSPricingClient(pricing_client=boto_pricing)

    await client.fetch_module_prices('ec2', 'us-east-1')
    await client.fetch_module_prices('ec2', 'us-east-1')

    assert boto_pricing.get_products.call_count == 1


@pytest.mark.asyncio
async def test_aws_client_errors_are_wrapped(boto_pricing):
    """boto errors surface as AWSPricingError."""
    boto_pricing.get_products = Mock(side_effect=ClientError(
        {'Error': {'Code': 'AccessDeniedException', 'Message': 'denied'}}, 'GetProducts'
    ))
    client = AWSPricingClient(pricing_client=boto_pricing)

    with pytest.raises(AWSPricingError):
        await client.fetch_module_prices('ec2', 'us-east-1')


@pytest.mark.asyncio
async def test_unknown_region_is_an_error(boto_pricing):
    """Regions missing from the map cannot be queried."""
    client = AWSPricingClient(pricing_client=boto_pricing)
    with pytest.raises(AWSPricingError):
        await client.fetch_module_prices('s3', 'mars-1')


@pytest.mark.asyncio
async def test_azure_vm_prices_skip_windows_and_spot():
    """Azure VM table keeps Linux pay-as-you-go prices only."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen['filter'] = request.url.params['$filter']
        return httpx.Response(200, json={'Items': [
            {'armSkuName': 'Standard_B1s', 'retailPrice': 0.05, 'productName': 'Virtual Machines BS Series Windows', 'skuName': 'B1s'},
            {'armSkuName': 'Standard_B1s', 'retailPrice': 0.002, 'productName': 'Virtual Machines BS Series', 'skuName': 'B1s Spot'},
            {'armSkuName': 'Standard_B1s', 'retailPrice': 0.0104, 'productName': 'Virtual Machines BS Series', 'skuName': 'B1s'},
            {'armSkuName': 'Standard_B2s', 'retailPrice': 0.0416, 'productName': 'Virtual Machines BS Series', 'skuName': 'B2s'},
        ]})

    client = AzurePricingClient(transport=httpx.MockTransport(handler))
    table = await client.fetch_module_prices('vm', 'East US')

    assert table == {'Standard_B1s': 0.0104, 'Standard_B2s': 0.0416}
    assert "armRegionName eq 'eastus'" in seen['filter']


@pytest.mark.asyncio
async def test_azure_http_error_is_wrapped():
    """Azure HTTP failures surface as AzurePricingError."""
    client = AzurePricingClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    with pytest.raises(AzurePricingError):
        await client.fetch_module_prices('vm', 'eastus')


@pytest.mark.asyncio
async def test_azure_modules_without_live_source():
    """Only the vm module has a live Azure source."""
    client = AzurePricingClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    assert await client.fetch_module_prices('blob', 'eastus') is None


@pytest.mark.asyncio
async def test_resolver_treats_failures_as_cache_miss():
    """A failing module is absent while the others resolve."""
    client = Mock()
    client.fetch_module_prices = AsyncMock(side_effect=[
        {'t2.micro': 0.0116},
        AWSPricingError('throttled'),
        {'key': 1.0},
    ])
    resolver = PricingResolver(clients={Provider.AWS: client})

    resolved = await resolver.resolve(Provider.AWS, 'us-east-1', ['ec2', 's3', 'kms'])

    assert resolved == {'ec2': {'t2.micro': 0.0116}, 'kms': {'key': 1.0}}


@pytest.mark.asyncio
async def test_resolver_only_queries_requested_catalog_modules():
    """Only requested ids present in the catalog are fetched."""
    client = Mock()
    client.fetch_module_prices = AsyncMock(return_value=None)
    resolver = PricingResolver(clients={Provider.AWS: client})

    resolved = await resolver.resolve(Provider.AWS, 'us-east-1', (m for m in ['ec2', 'vm', 'ec2']))

    assert resolved == {}
    client.fetch_module_prices.assert_awaited_once_with('ec2', 'us-east-1')


@pytest.mark.asyncio
async def test_resolver_without_live_source_returns_nothing():
    """GCP has no live source."""
    resolver = PricingResolver()
    assert await resolver.resolve(Provider.GCP, 'us-central1', ['compute']) == {}


def test_effective_table_prefers_live_table():
    """Live table if present, otherwise the static catalog table."""
    resolver = PricingResolver(clients={})
    assert resolver.effective_table(Provider.AWS, 's3', {'s3': {'STANDARD': 0.024}}) == {'STANDARD': 0.024}
    assert resolver.effective_table(Provider.AWS, 's3', {})['storage'] == 0.023
