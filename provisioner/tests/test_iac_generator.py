"""
Tests for the IaC preview generator.
"""

import pytest
from provisioner.domain.providers import Provider
from provisioner.providers.base import REDACTED
from provisioner.services.iac_generator import IaCGenerator, generate


@pytest.fixture
def generator():
    return IaCGenerator()


def test_empty_without_provider_or_modules(generator):
    """No provider or no selected module renders nothing."""
    assert generator.generate(None, 'us-east-1', {}, ['s3'], {}) == ''
    assert generator.generate(Provider.AWS, 'us-east-1', {}, [], {}) == ''


def test_aws_secret_key_is_never_rendered(generator, aws_credentials):
    """Raw AWS keys never appear; the redaction token does."""
    text = generator.generate(Provider.AWS, 'us-east-1', aws_credentials, ['s3'], {'s3': {'name': 'logs'}})
    assert aws_credentials['secret_key'] not in text
    assert aws_credentials['access_key'] not in text
    assert f'secret_key = "{REDACTED}"' in text


def test_secret_pasted_into_config_is_scrubbed(generator, aws_credentials):
    """A secret value typed into a config field is redacted as well."""
    config = {'s3': {'name': aws_credentials['secret_key']}}
    text = generator.generate(Provider.AWS, 'us-east-1', aws_credentials, ['s3'], config)
    assert aws_credentials['secret_key'] not in text


def test_azure_client_secret_is_redacted(generator):
    """Azure renders ids but never the client secret."""
    credentials = {
        'tenant_id': 'tenant-123',
        'client_id': 'client-456',
        'client_secret': 'super-secret-value',
        'subscription_id': 'sub-789',
    }
    text = generator.generate(Provider.AZURE, 'eastus', credentials, ['vnet'], {})
    assert 'super-secret-value' not in text
    assert 'sub-789' in text
    assert 'provider "azurerm"' in text


def test_gcp_key_is_never_rendered(generator, gcp_key_json):
    """The GCP header shows the project but not the key."""
    text = generator.generate(Provider.GCP, 'us-central1', {'key_json': gcp_key_json}, ['storage'], {})
    assert 'demo-project' in text
    assert 'PRIVATE KEY' not in text


def test_sections_follow_selection_order(generator):
    """One section per selected module, in selection order."""
    text = generator.generate(Provider.AWS, 'us-east-1', {}, ['vpc', 'ec2'], {'ec2': {'vpcId': 'use-selected-vpc'}})
    assert text.index('# VPC Resources') < text.index('# EC2 Resources')
    assert 'subnet_id = aws_subnet.main.id' in text


def test_vpc_subnets_split_by_count(generator):
    """Subnet count is split into public and private halves."""
    text = generator.generate(Provider.AWS, 'us-east-1', {}, ['vpc'], {'vpc': {'subnetCount': 4}})
    assert 'public_subnets   = ["10.0.1.0/24", "10.0.2.0/24"]' in text
    assert 'private_subnets  = ["10.0.3.0/24", "10.0.4.0/24"]' in text


def test_generic_template_lists_resource_types(generator):
    """Modules without a template render one block per declared resource type."""
    text = generator.generate(Provider.AZURE, 'eastus', {}, ['blob'], {'blob': {'name': 'assets'}})
    assert 'resource "azurerm_storage_container" "assets"' in text


def test_unknown_modules_are_skipped(generator):
    """Ids missing from the catalog do not break the preview."""
    text = generator.generate(Provider.AWS, 'us-east-1', {}, ['s3', 'bogus'], {})
    assert '# S3 Resources' in text
    assert 'bogus' not in text


def test_generation_is_deterministic(aws_credentials):
    """Same inputs give byte-identical output."""
    args = (Provider.AWS, 'us-west-2', aws_credentials, ['vpc', 's3', 'kms'], {'s3': {'name': 'b'}})
    assert generate(*args) == generate(*args)
