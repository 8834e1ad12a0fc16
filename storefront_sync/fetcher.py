"""Fetches the admin-authored configuration document for a tenant."""

import json
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .errors import DecodeError, NetworkError, ServerError
from .models import ConfigDocument, SessionContext

logger = logging.getLogger(__name__)


class ConfigFetcher:
    """Pulls the full ConfigDocument over request/response. Never retries."""

    CONFIG_PATH = "/api/get-form"

    def __init__(
        self,
        context: SessionContext,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            context: Session identity (api base, app id, optional bearer token)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.context = context
        headers = {"Accept": "application/json"}
        if context.auth_token:
            headers["Authorization"] = f"Bearer {context.auth_token}"
        self.client = httpx.AsyncClient(
            base_url=context.api_base,
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
            transport=transport,
        )

    async def fetch(self, tenant_id: Optional[str] = None) -> ConfigDocument:
        """
        Fetch the configuration document.

        Args:
            tenant_id: Tenant to fetch; defaults to the session's tenant

        Returns:
            The decoded ConfigDocument

        Raises:
            ValueError: If the tenant id is empty
            NetworkError: If the backend is unreachable or times out
            ServerError: On a non-2xx response
            DecodeError: If the body is not a successful configuration document
        """
        tenant_id = self.context.tenant_id if tenant_id is None else tenant_id
        if not tenant_id or not tenant_id.strip():
            raise ValueError("tenant_id must not be empty")

        params = {"adminId": tenant_id}
        if self.context.app_id:
            params["appId"] = self.context.app_id

        logger.info(f"Fetching configuration for tenant {tenant_id}")
        try:
            response = await self.client.get(self.CONFIG_PATH, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out fetching configuration: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Could not reach {self.context.api_base}: {e}") from e

        logger.debug(f"Configuration response: status={response.status_code}")
        if not response.is_success:
            raise ServerError(response.status_code)

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Configuration body is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")
        if data.get("success") is not True:
            raise DecodeError("Configuration response did not report success")

        try:
            document = ConfigDocument.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"Malformed configuration document: {e}") from e

        widget_count = sum(len(page.widgets) for page in document.pages)
        logger.info(f"Loaded {len(document.pages)} page(s), {widget_count} widget(s)")
        return document

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "ConfigFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
