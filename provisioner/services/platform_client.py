"""
Platform backend API client.
Handles account, deployment and inventory calls to the provisioning platform.
"""
from typing import Any, Dict, List, Optional
import logging
import httpx

from provisioner.core.config import config


logger = logging.getLogger(__name__)


LOGS_PATH = "/api/terraform/logs/{deployment_id}"
RESOURCES_PATH = "/api/terraform/resources"


class PlatformAPIError(Exception):
    """Raised when the platform backend rejects a call or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PlatformClient:
    """Service for making platform backend API calls."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize platform client.

        Args:
            access_token: Optional bearer token forwarded to the backend
            base_url: Backend base URL (defaults to PLATFORM_API_BASE_URL)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or config.PLATFORM_API_BASE_URL).rstrip("/")
        self.timeout = config.PLATFORM_API_TIMEOUT
        self.headers = {"Accept": "application/json"}
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Pull the backend's error text out of a failed response."""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.RequestError as error:
            logger.warning(f"Platform API request error for {method} {path}: {error}")
            raise PlatformAPIError(f"Failed to reach platform backend: {str(error)}") from error

        if response.is_error:
            message = self._error_message(response)
            logger.warning(f"Platform API {method} {path} returned {response.status_code}: {message}")
            raise PlatformAPIError(message, status_code=response.status_code)
        return response

    async def post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON body.

        Args:
            path: Backend path such as '/api/aws/connect'
            payload: JSON body

        Returns:
            Decoded response body (empty dict when the body is not an object)

        Raises:
            PlatformAPIError: If the request fails or returns an error status
        """
        response = await self._request("POST", path, json=payload)
        try:
            body = response.json()
        except ValueError as error:
            raise PlatformAPIError(f"Invalid JSON from {path}") from error
        return body if isinstance(body, dict) else {}

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a path and return the decoded JSON body.

        Raises:
            PlatformAPIError: If the request fails or returns an error status
        """
        response = await self._request("GET", path, params=params)
        try:
            return response.json()
        except ValueError as error:
            raise PlatformAPIError(f"Invalid JSON from {path}") from error

    async def get_deployment_logs(self, deployment_id: str) -> str:
        """
        Fetch the full log text of a deployment.

        Args:
            deployment_id: Deployment identifier returned on submission

        Returns:
            Raw log text (cumulative)

        Raises:
            PlatformAPIError: If the request fails
        """
        response = await self._request("GET", LOGS_PATH.format(deployment_id=deployment_id))
        return response.text

    async def submit_deployment(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a deployment job.

        Args:
            endpoint: Provider-specific deploy path
            payload: Deployment payload

        Returns:
            Backend answer, e.g. {"success": true, "deploymentId": "..."}

        Raises:
            PlatformAPIError: If the request fails or returns an error status
        """
        return await self.post_json(endpoint, payload)

    async def list_resources(self, account_id: str) -> List[Dict[str, Any]]:
        """
        List resources previously deployed through an account.

        Args:
            account_id: Connected account id

        Returns:
            List of resource dictionaries

        Raises:
            PlatformAPIError: If the request fails
        """
        body = await self.get_json(RESOURCES_PATH, params={"accountId": account_id})
        if isinstance(body, dict):
            body = body.get("resources") or body.get("deployments") or []
        return [item for item in body if isinstance(item, dict)] if isinstance(body, list) else []
