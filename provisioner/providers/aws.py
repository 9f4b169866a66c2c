"""
AWS provider capability.
"""
from typing import Any, Dict, Optional
import logging

from provisioner.domain.account_models import CloudAccount, ConnectResult, CredentialCheck
from provisioner.domain.providers import Provider
from provisioner.providers.base import ProviderCapability, REDACTED, mask_identifier
from provisioner.services.platform_client import PlatformAPIError


logger = logging.getLogger(__name__)


class AWSProvider(ProviderCapability):
    """Access-key based AWS connections."""

    provider = Provider.AWS
    credential_fields = ("access_key", "secret_key")
    secret_fields = ("secret_key",)
    deploy_endpoint = "/api/terraform/deploy"
    accounts_path = "/api/aws/get-aws-accounts"
    validate_path = "/api/aws/validate-credentials"
    connect_path = "/api/aws/connect"

    def _credential_payload(self, credentials: Dict[str, str], region: str) -> Dict[str, Any]:
        return {
            "accessKeyId": credentials.get("access_key", ""),
            "secretAccessKey": credentials.get("secret_key", ""),
            "region": region,
        }

    async def validate(self, credentials: Dict[str, str], region: str) -> CredentialCheck:
        """
        Validate access keys through the platform backend (STS identity check).

        Args:
            credentials: access_key / secret_key
            region: AWS region

        Returns:
            CredentialCheck with the AWS account id as normalized id
        """
        try:
            body = await self.platform_client.post_json(
                self.validate_path,
                self._credential_payload(credentials, region)
            )
        except PlatformAPIError as error:
            return CredentialCheck(valid=False, error=str(error))

        if not body.get("valid"):
            return CredentialCheck(valid=False, error=body.get("error") or "Validation failed")

        account_number = body.get("accountId")
        logger.info(f"AWS credentials validated for account {mask_identifier(account_number)}")
        return CredentialCheck(
            valid=True,
            normalized_account_id=str(account_number) if account_number else None,
            suggested_display_name=body.get("suggestedName"),
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
        account_number = item.get("accountId")
        return CloudAccount(
            id=str(account_id),
            display_name=item.get("accountName") or self.fallback_display_name(account_number),
            provider=self.provider.value,
            default_region=item.get("awsRegion") or item.get("region") or "",
            account_number=str(account_number) if account_number else None,
        )

    def render_iac_header(self, region: str, credentials: Dict[str, str]) -> str:
        return (
            "# Terraform AWS Provider Configuration\n"
            "provider \"aws\" {\n"
            f"  region     = \"{region}\"\n"
            f"  access_key = \"{REDACTED}\"\n"
            f"  secret_key = \"{REDACTED}\"\n"
            "}\n"
        )

    def deploy_credentials(self, credentials: Dict[str, str]) -> Dict[str, str]:
        return {
            "accessKey": credentials.get("access_key", ""),
            "secretKey": credentials.get("secret_key", ""),
        }
