"""
Helius API Client

Enhanced (parsed) Solana transaction history for an address.
"""

from typing import Optional, List, Dict, Any

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.errors import UpstreamUnavailable, ErrorCategory


class HeliusClient(BaseProviderClient):
    """Async client for the Helius enhanced transactions API"""

    name = "helius"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(
            api_key=api_key if api_key is not None else settings.HELIUS_API_KEY,
            base_url=kwargs.pop("base_url", None) or settings.HELIUS_API_URL,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def get_address_transactions(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Fetch one page of parsed transactions, newest first.

        Args:
            address: Wallet address
            before: Signature cursor; only older transactions are returned
            limit: Page size

        Returns:
            Raw enhanced transactions
        """
        self._require_configured()

        params: Dict[str, Any] = {"api-key": self.api_key, "limit": limit}
        if before:
            params["before"] = before

        payload = await self._request(
            "GET", f"/v0/addresses/{address}/transactions", params=params
        )
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise UpstreamUnavailable(
                "Expected a list of transactions",
                provider=self.name,
                category=ErrorCategory.INVALID_RESPONSE,
            )
        return payload
