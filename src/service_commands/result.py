"""Structured command results."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# Reserved result key holding transport metadata
METADATA_KEY = "@http"


class HttpMetadata(BaseModel):
    """Transport metadata attached to every result built from a response."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    effective_uri: str
    headers: dict[str, list[str]] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: httpx.Response, request: httpx.Request) -> HttpMetadata:
        """Capture status, effective URI and headers of a round trip."""
        headers: dict[str, list[str]] = {}
        for name, value in response.headers.multi_items():
            headers.setdefault(name, []).append(value)
        return cls(
            status_code=response.status_code,
            effective_uri=str(request.url),
            headers=headers,
        )


class Result(BaseModel):
    """The outcome of a successful command.

    Results are read-only: accessors return values or copies, and
    metadata is attached by building a new Result.

    Example:
        result = Result(data={"id": 1, "name": "widget"})
        result["name"]          # "widget"
        result.get("missing")   # None
        "id" in result          # True
    """

    model_config = ConfigDict(frozen=True)

    # Read-only view over a private copy of the mapping
    data: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("data", mode="after")
    @classmethod
    def _freeze_data(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("data")
    def _dump_data(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    @classmethod
    def from_mapping(cls, value: Result | Mapping[str, Any] | None) -> Result:
        """Coerce a mapping (or None) into a Result."""
        if isinstance(value, Result):
            return value
        return cls(data=dict(value or {}))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value with optional default."""
        return self.data.get(key, default)

    def has(self, key: str) -> bool:
        """Check whether a key is present."""
        return key in self.data

    def keys(self) -> list[str]:
        return list(self.data.keys())

    def items(self) -> list[tuple[str, Any]]:
        return list(self.data.items())

    def to_dict(self) -> dict[str, Any]:
        """Return a shallow copy of the result data."""
        return dict(self.data)

    @property
    def metadata(self) -> HttpMetadata | None:
        """Transport metadata, if the result came from a response."""
        raw = self.data.get(METADATA_KEY)
        if raw is None:
            return None
        return HttpMetadata.model_validate(raw)

    def with_metadata(self, metadata: HttpMetadata) -> Result:
        """Return a copy of this result with metadata stored under ``@http``."""
        return Result(data={**self.data, METADATA_KEY: metadata.model_dump()})

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.data)
