"""
Azure provider capability.
"""
from typing import Any, Dict, Optional
import logging

from provisioner.domain.account_models import CloudAccount, ConnectResult, CredentialCheck
from provisioner.domain.providers import Provider
from provisioner.providers.base import ProviderCapability, REDACTED, mask_identifier
from provisioner.services.platform_client import PlatformAPIError


logger = logging.getLogger(__name__)


class AzureProvider(ProviderCapability):
    """Service-principal based Azure connections."""

    provider = Provider.AZURE
    credential_fields = ("tenant_id", "client_id", "client_secret", "subscription_id")
    secret_fields = ("client_secret",)
    deploy_endpoint = "/api/azure/terraform/deploy"
    accounts_path = "/api/azure/accounts"
    validate_path = "/api/azure/validate-credentials"
    connect_path = "/api/azure/connect"

    def _credential_payload(self, credentials: Dict[str, str], region: str) -> Dict[str, Any]:
        return {
            "clientId": credentials.get("client_id", ""),
            "clientSecret": credentials.get("client_secret", ""),
            "tenantId": credentials.get("tenant_id", ""),
            "subscriptionId": credentials.get("subscription_id", ""),
            "region": region,
        }

    async def validate(self, credentials: Dict[str, str], region: str) -> CredentialCheck:
        try:
            body = await self.platform_client.post_json(
                self.validate_path,
                self._credential_payload(credentials, region)
            )
        except PlatformAPIError as error:
            return CredentialCheck(valid=False, error=str(error))

        if not body.get("valid"):
            return CredentialCheck(valid=False, error=body.get("error") or "Validation failed")

        subscription_id = credentials.get("subscription_id") or None
        logger.info(f"Azure credentials validated for subscription {mask_identifier(subscription_id)}")
        return CredentialCheck(
            valid=True,
            normalized_account_id=subscription_id,
            suggested_display_name=body.get("subscriptionName"),
        )

    async def connect(
        self,
        credentials: Dict[str, str],
        region: str,
        display_name: str,
        check: CredentialCheck
    ) -> ConnectResult:
        payload = self._credential_payload(credentials, region)
        payload["accountName"] = display_name
        return await self._post_connect(self.connect_path, payload, check.normalized_account_id)

    def parse_account(self, item: Dict[str, Any]) -> Optional[CloudAccount]:
        account_id = item.get("_id") or item.get("id")
        if not account_id:
            return None
        subscription_id = item.get("subscriptionId")
        return CloudAccount(
            id=str(account_id),
            display_name=item.get("accountName") or self.fallback_display_name(subscription_id),
            provider=self.provider.value,
            default_region=item.get("region") or "",
            account_number=str(subscription_id) if subscription_id else None,
        )

    def render_iac_header(self, region: str, credentials: Dict[str, str]) -> str:
        # Subscription, tenant and client ids are identifiers, not secrets
        return (
            "# Terraform Azure Provider Configuration\n"
            "provider \"azurerm\" {\n"
            "  features {}\n"
            f"  subscription_id = \"{credentials.get('subscription_id') or 'your-subscription-id'}\"\n"
            f"  tenant_id       = \"{credentials.get('tenant_id') or 'your-tenant-id'}\"\n"
            f"  client_id       = \"{credentials.get('client_id') or 'your-client-id'}\"\n"
            f"  client_secret   = \"{REDACTED}\"\n"
            "}\n"
        )

    def deploy_credentials(self, credentials: Dict[str, str]) -> Dict[str, str]:
        return {
            "tenantId": credentials.get("tenant_id", ""),
            "clientId": credentials.get("client_id", ""),
            "clientSecret": credentials.get("client_secret", ""),
            "subscriptionId": credentials.get("subscription_id", ""),
        }
