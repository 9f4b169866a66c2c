"""
Tests for provider capabilities and the platform backend client.
"""

import json
import httpx
import pytest
from unittest.mock import AsyncMock

from provisioner.domain.account_models import CredentialCheck
from provisioner.domain.providers import Provider
from provisioner.providers.aws import AWSProvider
from provisioner.providers.azure import AzureProvider
from provisioner.providers.base import REDACTED, mask_identifier
from provisioner.providers.gcp import GCPProvider, parse_service_account_key
from provisioner.providers.registry import get_provider_capability
from provisioner.services.platform_client import PlatformAPIError, PlatformClient


def test_registry_returns_capability_per_provider(mock_platform):
    """The registry is the single provider lookup."""
    assert isinstance(get_provider_capability('aws', mock_platform), AWSProvider)
    assert isinstance(get_provider_capability(Provider.AZURE, mock_platform), AzureProvider)
    assert isinstance(get_provider_capability('gcp', mock_platform), GCPProvider)
    with pytest.raises(ValueError):
        get_provider_capability('')
    with pytest.raises(ValueError):
        get_provider_capability('oracle')


def test_missing_credential_fields_include_region(mock_platform):
    """Empty fields and an empty region are reported."""
    capability = AzureProvider(mock_platform)
    missing = capability.missing_credential_fields({'tenant_id': 't', 'client_id': ' '}, '')
    assert missing == ['client_id', 'client_secret', 'subscription_id', 'region']


def test_redact_hides_secret_fields_only(mock_platform, aws_credentials):
    """Secret fields are replaced by the redaction token."""
    redacted = AWSProvider(mock_platform).redact(aws_credentials)
    assert redacted == {'access_key': aws_credentials['access_key'], 'secret_key': REDACTED}


def test_mask_identifier_keeps_last_four():
    """Account ids are masked for logs."""
    assert mask_identifier('123456789012') == '****9012'
    assert mask_identifier('abc') == '****'
    assert mask_identifier(None) == '<none>'


@pytest.mark.asyncio
async def test_aws_validate_returns_normalized_account(mock_platform, aws_credentials):
    """A valid key pair yields the AWS account id."""
    mock_platform.post_json = AsyncMock(return_value={'valid': True, 'accountId': '123456789012', 'suggestedName': 'prod'})

    check = await AWSProvider(mock_platform).validate(aws_credentials, 'us-east-1')

    assert check.valid
    assert check.normalized_account_id == '123456789012'
    assert check.suggested_display_name == 'prod'
    payload = mock_platform.post_json.call_args.args[1]
    assert payload['accessKeyId'] == aws_credentials['access_key']
    assert payload['region'] == 'us-east-1'


@pytest.mark.asyncio
async def test_aws_validate_failure_is_reported_not_raised(mock_platform, aws_credentials):
    """Rejected or unreachable validation gives an invalid check."""
    mock_platform.post_json = AsyncMock(return_value={'valid': False, 'error': 'InvalidClientTokenId'})
    check = await AWSProvider(mock_platform).validate(aws_credentials, 'us-east-1')
    assert not check.valid
    assert check.error == 'InvalidClientTokenId'

    mock_platform.post_json = AsyncMock(side_effect=PlatformAPIError('Failed to reach platform backend'))
    check = await AWSProvider(mock_platform).validate(aws_credentials, 'us-east-1')
    assert not check.valid


@pytest.mark.asyncio
async def test_aws_connect_sends_display_name(mock_platform, aws_credentials):
    """Connect posts the credentials with the chosen display name."""
    mock_platform.post_json = AsyncMock(return_value={'_id': 'acc-9'})
    check = CredentialCheck(valid=True, normalized_account_id='123456789012')

    result = await AWSProvider(mock_platform).connect(aws_credentials, 'us-east-1', 'Staging', check)

    assert result.success
    assert result.account_id == 'acc-9'
    path, payload = mock_platform.post_json.call_args.args
    assert path == '/api/aws/connect'
    assert payload['accountName'] == 'Staging'


@pytest.mark.asyncio
async def test_connect_failure_is_a_result(mock_platform, aws_credentials):
    """Backend rejection is returned as a failed ConnectResult."""
    mock_platform.post_json = AsyncMock(side_effect=PlatformAPIError('Account already connected', 409))
    result = await AWSProvider(mock_platform).connect(aws_credentials, 'us-east-1', 'x', CredentialCheck(valid=True))
    assert not result.success
    assert result.error == 'Account already connected'


@pytest.mark.asyncio
async def test_account_lists_are_parsed_per_provider(mock_platform, aws_account_record):
    """Each provider maps its account records to CloudAccount."""
    mock_platform.get_json = AsyncMock(return_value=[aws_account_record, {'accountName': 'no id'}])
    accounts = await AWSProvider(mock_platform).list_accounts()
    assert len(accounts) == 1
    assert accounts[0].id == 'acc-1'
    assert accounts[0].account_number == '123456789012'
    assert accounts[0].default_region == 'us-west-2'

    mock_platform.get_json = AsyncMock(return_value={'accounts': [
        {'id': 'az-1', 'accountName': 'Azure Prod', 'subscriptionId': 'sub-1', 'region': 'westeurope'},
    ]})
    accounts = await AzureProvider(mock_platform).list_accounts()
    assert accounts[0].account_number == 'sub-1'
    assert accounts[0].default_region == 'westeurope'

    mock_platform.get_json = AsyncMock(return_value=[
        {'_id': 'g-1', 'projectId': 'demo-project', 'region': 'europe-west1'},
    ])
    accounts = await GCPProvider(mock_platform).list_accounts()
    assert accounts[0].display_name == 'demo-project'


def test_gcp_key_parsing(gcp_key_json):
    """Keys must be JSON objects with project, email and private key."""
    assert parse_service_account_key(gcp_key_json)['project_id'] == 'demo-project'
    with pytest.raises(ValueError):
        parse_service_account_key('not json')
    with pytest.raises(ValueError):
        parse_service_account_key(json.dumps({'project_id': 'p'}))


@pytest.mark.asyncio
async def test_gcp_validate_is_local(mock_platform, gcp_key_json):
    """GCP validation parses the key without calling the backend."""
    check = await GCPProvider(mock_platform).validate({'key_json': gcp_key_json}, 'us-central1')
    assert check.valid
    assert check.normalized_account_id == 'demo-project'
    mock_platform.post_json.assert_not_called()

    check = await GCPProvider(mock_platform).validate({'key_json': '{}'}, 'us-central1')
    assert not check.valid


def test_fallback_display_name(mock_platform):
    """Fallback names combine the provider and the account id."""
    assert AWSProvider(mock_platform).fallback_display_name('123') == 'AWS Account (123)'


def test_deploy_credentials_use_backend_field_names(mock_platform, aws_credentials):
    """Deploy credentials are renamed for the deploy backend."""
    assert AWSProvider(mock_platform).deploy_credentials(aws_credentials) == {
        'accessKey': aws_credentials['access_key'],
        'secretKey': aws_credentials['secret_key'],
    }


@pytest.mark.asyncio
async def test_platform_client_returns_log_text():
    """Deployment logs are returned as plain text."""
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == '/api/terraform/logs/dep-1'
        assert request.headers['Authorization'] == 'Bearer token-1'
        return httpx.Response(200, text='Apply complete!')

    client = PlatformClient(access_token='token-1', base_url='http://platform.test', transport=httpx.MockTransport(handler))
    assert await client.get_deployment_logs('dep-1') == 'Apply complete!'


@pytest.mark.asyncio
async def test_platform_client_maps_error_status():
    """Error statuses raise PlatformAPIError with the backend's message."""
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={'error': 'Invalid module'}))
    client = PlatformClient(base_url='http://platform.test', transport=transport)

    with pytest.raises(PlatformAPIError) as exc_info:
        await client.submit_deployment('/api/terraform/deploy', {})
    assert exc_info.value.status_code == 400
    assert str(exc_info.value) == 'Invalid module'


@pytest.mark.asyncio
async def test_platform_client_maps_connection_errors():
    """Transport failures raise PlatformAPIError."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError('refused', request=request)

    client = PlatformClient(base_url='http://platform.test', transport=httpx.MockTransport(handler))
    with pytest.raises(PlatformAPIError):
        await client.get_json('/api/aws/get-aws-accounts')


@pytest.mark.asyncio
async def test_list_resources_passes_account_id():
    """Inventory listing filters by account id."""
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params['accountId'] == 'acc-1'
        return httpx.Response(200, json={'resources': [{'id': 'i-1'}, 'junk']})

    client = PlatformClient(base_url='http://platform.test', transport=httpx.MockTransport(handler))
    assert await client.list_resources('acc-1') == [{'id': 'i-1'}]
