"""
Client for the paid search endpoint.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import EndpointError


@dataclass(frozen=True)
class DataSource:
    """One named entry of a search response."""
    name: str
    description: str
    records: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class SearchResponse:
    sources: Dict[str, DataSource]

    @property
    def source_count(self) -> int:
        return len(self.sources)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SearchResponse":
        listing = (payload or {}).get("List") or {}
        if not isinstance(listing, dict):
            raise EndpointError("Malformed search response: 'List' must be a mapping")

        sources = {}
        for name, entry in listing.items():
            entry = entry or {}
            if not isinstance(entry, dict):
                raise EndpointError(f"Malformed search response: entry '{name}' must be a mapping")
            records = entry.get("Data") or []
            if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
                raise EndpointError(f"Malformed search response: 'Data' of '{name}' must be a list of objects")
            sources[name] = DataSource(
                name=name,
                description=str(entry.get("InfoLeak") or ""),
                records=records,
            )
        return cls(sources=sources)


class SearchClient:
    """POSTs queries to the search endpoint and parses its listing."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        if not url:
            raise ValueError("url is required and cannot be empty")
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def search(
        self,
        query: str,
        limit: int,
        language: str,
        user_address: str
    ) -> SearchResponse:
        """Run a paid query.

        Raises:
            EndpointError: On a non-2xx response, a transport failure or an
                undecodable body
        """
        body = {
            "request": query,
            "limit": limit,
            "lang": language,
            "userAddress": user_address,
        }
        try:
            resp = await self.client.post(self.url, json=body)
        except httpx.HTTPError as e:
            raise EndpointError(f"Search request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if not resp.is_success:
            message = "Search failed"
            if isinstance(data, dict) and data.get("error"):
                message = str(data["error"])
            raise EndpointError(message, status_code=resp.status_code)

        if not isinstance(data, dict):
            raise EndpointError("Search endpoint returned an invalid body", status_code=resp.status_code)

        return SearchResponse.from_payload(data)

    async def aclose(self) -> None:
        await self.client.aclose()
