# app/schemas.py
from typing import Any

from pydantic import BaseModel


class SearchHit(BaseModel):
    reference: str
    score: float
    image_url: str | None = None
    metadata: dict[str, Any] = {}

    @classmethod
    def from_api(cls, hit: dict[str, Any]) -> "SearchHit":
        """Build a hit from one entry of the search API's ``hits`` list."""
        source = hit.get("input") or {}
        data = source.get("data") or {}
        image = data.get("image") or {}
        return cls(
            reference=str(source.get("id", "")),
            score=float(hit.get("score", 0.0)),
            image_url=image.get("url"),
            metadata=data.get("metadata") or {},
        )


class HealthStatus(BaseModel):
    status: str
