# app/search_engine.py
import logging
from typing import Any

import httpx

from app.schemas import SearchHit

logger = logging.getLogger(__name__)

INPUTS_PATH = "/v2/inputs"
SEARCHES_PATH = "/v2/searches"


class SearchAPIError(Exception):
    """The visual search API could not be reached or rejected a request."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        text = super().__str__()
        if self.body is not None:
            return f"{text}: {self.body}"
        return text


def filter_hits(hits: list[SearchHit], threshold: float = 0.5) -> list[SearchHit]:
    # strictly greater, a hit scoring exactly the threshold is dropped
    return [hit for hit in hits if hit.score > threshold]


class SearchClient:
    """Client for the Clarifai inputs and searches endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.clarifai.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        ) as client:
            try:
                resp = await client.post(path, json=payload, headers=self.headers)
            except httpx.HTTPError as e:
                raise SearchAPIError(f"POST {path} failed: {e}") from e

        if resp.is_error:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            raise SearchAPIError(
                f"POST {path} returned {resp.status_code}",
                status_code=resp.status_code,
                body=body,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise SearchAPIError(f"POST {path} returned invalid JSON", body=resp.text) from e

    async def index_image(self, image_url: str, metadata: dict[str, Any] | None = None) -> None:
        """Add ``image_url`` to the searchable corpus."""
        data: dict[str, Any] = {"image": {"url": image_url}}
        if metadata:
            data["metadata"] = metadata
        await self._post(INPUTS_PATH, {"inputs": [{"data": data}]})
        logger.info(f"Indexed image in search API: {image_url}")

    async def search_by_image(self, image_url: str) -> list[SearchHit]:
        """Return the API's hits for ``image_url``, in the order it ranked them."""
        payload = {
            "query": {
                "ands": [
                    {"input": {"data": {"image": {"url": image_url}}}}
                ]
            }
        }
        data = await self._post(SEARCHES_PATH, payload)
        try:
            hits = [SearchHit.from_api(hit) for hit in data.get("hits") or []]
        except (AttributeError, TypeError, ValueError) as e:
            # pydantic's ValidationError is a ValueError
            raise SearchAPIError(f"POST {SEARCHES_PATH} returned malformed hits", body=data) from e
        logger.info(f"Search API returned {len(hits)} hit(s) for {image_url}")
        return hits
