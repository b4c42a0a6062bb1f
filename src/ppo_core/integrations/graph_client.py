"""Identity provider client (Microsoft Graph application registrations)."""
import logging
from typing import Optional

import httpx

from .base import ClientResult, HttpServiceClient

logger = logging.getLogger("ppo-core.integrations.graph")


class GraphClient(HttpServiceClient):
    service_name = "Microsoft Graph"

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def create_app_registration(self, display_name: str, description: str = "") -> ClientResult:
        logger.info(f"Creating app registration: {display_name}")
        result = await self._request("POST", "/applications", json={
            "displayName": display_name,
            "description": description,
            "signInAudience": "AzureADMyOrg",
        })
        if not result.success:
            return result
        return ClientResult.ok({
            "clientId": result.data.get("appId"),
            "objectId": result.data.get("id"),
            "displayName": result.data.get("displayName", display_name),
        })
