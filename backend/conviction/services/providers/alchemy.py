"""
Alchemy Base RPC Client

JSON-RPC access to Base: latest block height and ``alchemy_getAssetTransfers``.
"""

from typing import Optional, List, Dict, Any

from conviction.core.config import settings
from conviction.services.providers.base import BaseProviderClient
from conviction.services.providers.errors import UpstreamUnavailable, ErrorCategory


DEFAULT_TRANSFER_CATEGORIES = ["erc20"]


class AlchemyClient(BaseProviderClient):
    """Async JSON-RPC client for Alchemy's Base endpoint"""

    name = "alchemy"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        api_key = api_key if api_key is not None else settings.ALCHEMY_API_KEY
        rpc_url = kwargs.pop("base_url", None) or settings.ALCHEMY_BASE_RPC_URL
        super().__init__(
            api_key=api_key,
            base_url=f"{rpc_url.rstrip('/')}/{api_key or ''}",
            **kwargs,
        )
        self._rpc_id = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Issue one JSON-RPC call and return its ``result``"""
        self._require_configured()
        self._rpc_id += 1

        payload = await self._request(
            "POST",
            "",
            data={
                "id": self._rpc_id,
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
            },
        )

        if not isinstance(payload, dict):
            raise UpstreamUnavailable(
                "Malformed JSON-RPC response",
                provider=self.name,
                category=ErrorCategory.INVALID_RESPONSE,
            )
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamUnavailable(
                f"{method} failed: {message}",
                provider=self.name,
                response_data=payload,
            )
        return payload.get("result")

    async def get_block_number(self) -> int:
        """Latest Base block height"""
        result = await self._rpc("eth_blockNumber")
        try:
            return int(result, 16)
        except (TypeError, ValueError):
            raise UpstreamUnavailable(
                f"Invalid block number: {result!r}",
                provider=self.name,
                category=ErrorCategory.INVALID_RESPONSE,
            )

    async def get_asset_transfers(
        self,
        from_block: int,
        from_address: Optional[str] = None,
        to_address: Optional[str] = None,
        categories: Optional[List[str]] = None,
        max_count: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch transfers from ``from_block`` to the chain head.

        Exactly one of ``from_address`` / ``to_address`` is normally given:
        outgoing and incoming transfers are separate queries.
        """
        query: Dict[str, Any] = {
            "fromBlock": hex(max(0, from_block)),
            "toBlock": "latest",
            "category": categories or DEFAULT_TRANSFER_CATEGORIES,
            "withMetadata": True,
            "excludeZeroValue": True,
            "maxCount": hex(max_count or settings.ALCHEMY_MAX_TRANSFER_COUNT),
        }
        if from_address:
            query["fromAddress"] = from_address
        if to_address:
            query["toAddress"] = to_address

        result = await self._rpc("alchemy_getAssetTransfers", [query])
        if not result:
            return []
        return list(result.get("transfers") or [])
